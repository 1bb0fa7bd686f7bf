import json
import threading
from dataclasses import replace

import pytest

from legendscan.strategies.legend_candle import batch
from legendscan.strategies.legend_candle.batch import BatchRunner, run_single
from legendscan.strategies.legend_candle.config import BatchConfig, DataFetchConfig, StrategyConfig, TradingConfig

HEADER = "open_time,open,high,low,close,volume,close_time,quote_volume,count,taker_buy_volume,taker_buy_quote_volume,ignore\n"


def _config(parallel=True, symbols=("ETHUSDT", "XRPUSDT"), timeframes=("1m", "1h")):
    return TradingConfig(
        mode="batch",
        batch=BatchConfig(parallel=parallel, concurrency_limit=2),
        symbols=symbols,
        timeframes=timeframes,
    )


def _fake_runner(calls, fail=()):
    def runner(cfg, info, kline_base, results_dir, cancel_event):
        calls.append((cfg.symbol, cfg.timeframe))
        if (cfg.symbol, cfg.timeframe) in fail:
            raise RuntimeError("boom")
        assert info.symbol == cfg.symbol
        assert not cancel_event.is_set()
        return {"symbol": cfg.symbol, "timeframe": cfg.timeframe, "total_trades": 1, "successful_trades": 1,
                "success_rate": 100.0, "config": None}

    return runner


def _info_fetcher(symbol_info, missing=()):
    def fetch(symbol, market_type, sub_type):
        if symbol in missing:
            raise ValueError(f"Symbol {symbol} not found")
        return replace(symbol_info, symbol=symbol)

    return fetch


@pytest.mark.parametrize("parallel", [True, False])
def test_batch_isolates_failures_and_writes_summary(tmp_path, symbol_info, parallel):
    calls = []
    runner = BatchRunner(
        _config(parallel=parallel),
        kline_base=tmp_path / "kline",
        results_dir=tmp_path / "results",
        runner=_fake_runner(calls, fail={("XRPUSDT", "1m")}),
        info_fetcher=_info_fetcher(symbol_info),
    )
    path = runner.run()

    assert sorted(calls) == [("ETHUSDT", "1h"), ("ETHUSDT", "1m"), ("XRPUSDT", "1h"), ("XRPUSDT", "1m")]
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert path.name.startswith("batch_summary_")
    assert payload["total_pairs"] == 2
    assert payload["total_timeframes"] == 2
    pairs = [(s["symbol"], s["timeframe"]) for s in payload["summaries"]]
    assert pairs == [("ETHUSDT", "1m"), ("ETHUSDT", "1h"), ("XRPUSDT", "1m"), ("XRPUSDT", "1h")]
    failed = [s for s in payload["summaries"] if "error" in s]
    assert failed == [
        {"symbol": "XRPUSDT", "timeframe": "1m", "total_trades": 0, "successful_trades": 0, "success_rate": 0.0,
         "config": None, "error": "boom"}
    ]


def test_batch_skips_symbols_without_info(tmp_path, symbol_info):
    calls = []
    runner = BatchRunner(
        _config(parallel=False),
        results_dir=tmp_path,
        runner=_fake_runner(calls),
        info_fetcher=_info_fetcher(symbol_info, missing={"XRPUSDT"}),
    )
    runner.run()
    assert calls == [("ETHUSDT", "1m"), ("ETHUSDT", "1h")]
    assert len(runner.summaries) == 2


def _single_pair(tmp_path, monkeypatch):
    csv = tmp_path / "ETHUSDT-test-2024-09.csv"
    rows = [(100, 100.5, 100, 100.5)] * 3 + [(100, 100, 100, 100), (100, 130, 70, 120)]
    lines = [HEADER]
    for n, (o, h, l, c) in enumerate(rows):
        t = 1725148800000 + n * 60_000
        lines.append(f"{t},{o},{h},{l},{c},1.0,{t + 59_999},100.0,5,0.5,50.0,0\n")
    csv.write_text("".join(lines), encoding="utf-8")
    monkeypatch.setattr(batch, "ensure_archives", lambda *args, **kwargs: [csv])

    return TradingConfig(
        symbol="ETHUSDT",
        timeframe="test",
        data_fetch=DataFetchConfig(2024, 9, 2024, 9),
        strategy=StrategyConfig(lookback_candles=3, threshold_multiplier=2.0),
    )


def test_cancelled_pair_writes_no_files(tmp_path, monkeypatch, symbol_info):
    cfg = _single_pair(tmp_path, monkeypatch)
    event = threading.Event()
    event.set()

    summary = run_single(cfg, symbol_info, tmp_path / "kline", tmp_path / "results", cancel_event=event)

    assert summary["error"] == "cancelled"
    assert summary["total_trades"] == 0
    assert not (tmp_path / "results" / "ETHUSDT" / "test_results.json").exists()
    assert not (tmp_path / "results" / "summary" / "ETHUSDT_test_summary.json").exists()


def test_run_single_end_to_end(tmp_path, monkeypatch, symbol_info):
    cfg = _single_pair(tmp_path, monkeypatch)
    summary = run_single(cfg, symbol_info, tmp_path / "kline", tmp_path / "results")

    assert summary["total_trades"] == 2
    assert summary["successful_trades"] == 1
    assert summary["success_rate"] == 50.0
    assert (tmp_path / "results" / "ETHUSDT" / "test_results.json").exists()
    saved = json.loads((tmp_path / "results" / "summary" / "ETHUSDT_test_summary.json").read_text(encoding="utf-8"))
    assert saved["config"]["strategy"]["threshold_multiplier"] == 2.0

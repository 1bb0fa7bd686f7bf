from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ...utils.data_loader import load_candles
from ...utils.metrics import generate_summary_report
from .config import TradingConfig, MarketConfig, TradeConfig, load_config
from .models import (
    BacktestResult,
    CandleSnapshot,
    Entry,
    EntryTrigger,
    RunStats,
    SymbolInfo,
    SymbolInfoNotSet,
    ThresholdResult,
    LONG,
    SHORT,
    UPWARD_THRESHOLD_MET,
    DOWNWARD_THRESHOLD_MET,
    format_time,
)

logger = logging.getLogger(__name__)

RESULTS_DIR = Path("results")


def move_pct(df: pd.DataFrame) -> pd.Series:
    opens = df["open"].astype(float)
    return (df["close"].astype(float) - opens).abs() / opens * 100


def average_move(window: pd.DataFrame) -> float:
    """Movimento médio abs(close - open) / open em % da janela de lookback."""
    return float(move_pct(window).mean())


def window_averages(moves: np.ndarray, lookback: int) -> np.ndarray:
    # elemento k = média de moves[k : k + lookback]
    if len(moves) < lookback:
        return np.empty(0, dtype=float)
    return np.lib.stride_tricks.sliding_window_view(moves, lookback).mean(axis=1)


def dynamic_threshold(avg_move: float, multiplier: float) -> float:
    return avg_move * multiplier


def is_legend_candle(current_move: float, avg_move: float, base_threshold: float) -> bool:
    return current_move >= avg_move * base_threshold


def price_thresholds(close: float, dyn_threshold: float) -> Tuple[float, float]:
    value = close * (dyn_threshold / 100)
    return close + value, close - value


def scan_for_entry(
    highs: np.ndarray,
    lows: np.ndarray,
    index: int,
    upward: float,
    downward: float,
    max_look_forward: int,
) -> Optional[EntryTrigger]:
    """
    Procura o primeiro candle após ``index`` que cruza um dos limites.

    O teste do limite superior vem antes do inferior, então um candle que
    cruza ambos gera LONG.
    """
    stop = min(index + max_look_forward + 1, len(highs))
    for checked, i in enumerate(range(index + 1, stop), start=1):
        if highs[i] >= upward:
            return EntryTrigger(LONG, UPWARD_THRESHOLD_MET, upward, i, checked)
        if lows[i] <= downward:
            return EntryTrigger(SHORT, DOWNWARD_THRESHOLD_MET, downward, i, checked)
    return None


class LegendCandleBacktester:
    """
    Varre uma série de candles de um símbolo/timeframe em busca de legend
    candles e simula a entrada nos candles seguintes.
    """

    def __init__(self, symbol: str, config: TradingConfig, symbol_info: Optional[SymbolInfo] = None):
        self.symbol = symbol
        self.config = config
        self.symbol_info = symbol_info
        self.candles = pd.DataFrame()
        self.results: List[ThresholdResult] = []
        self.total_candles = 0
        self.legend_candles = 0
        self.successful_trades = 0
        self.cancelled = False
        self._cols: Dict[str, np.ndarray] = {}

    def set_symbol_info(self, info: SymbolInfo) -> None:
        self.symbol_info = info

    @property
    def timeframe(self) -> str:
        return self.config.timeframe

    @property
    def lookback_period(self) -> int:
        return self.config.lookback_period

    def set_candles(self, df: pd.DataFrame) -> None:
        self.candles = df.reset_index(drop=True)
        self.total_candles = len(self.candles)

    def load_data(self, csv_path: str | Path) -> None:
        start_ms, end_ms = self.config.date_range_ms()
        df = load_candles([csv_path], start_ms, end_ms)
        frames = [f for f in (self.candles, df) if not f.empty]
        merged = pd.concat(frames, ignore_index=True) if frames else df
        self.set_candles(merged)

    def _columns(self) -> Dict[str, np.ndarray]:
        cols = {c: self.candles[c].to_numpy(dtype=float) for c in ("open", "high", "low", "close", "volume")}
        cols["open_time"] = self.candles["open_time"].to_numpy(dtype="int64")
        return cols

    def _snapshot(self, i: int) -> CandleSnapshot:
        c = self._cols
        return CandleSnapshot(
            open_time=int(c["open_time"][i]),
            open=float(c["open"][i]),
            high=float(c["high"][i]),
            low=float(c["low"][i]),
            close=float(c["close"][i]),
            volume=float(c["volume"][i]),
        )

    def process_candle(self, index: int, dyn_threshold: float, avg_move: float) -> Optional[ThresholdResult]:
        candle = self._snapshot(index)
        strategy = self.config.strategy
        meets_base = is_legend_candle(candle.move_pct, avg_move, strategy.threshold)

        logger.debug(
            "Candle %s | movimento %.2f%% | média %.2f%% | limiar dinâmico %.2f%% | base ok=%s",
            format_time(candle.open_time),
            candle.move_pct,
            avg_move,
            dyn_threshold,
            meets_base,
        )

        if strategy.require_base_threshold and not meets_base:
            return None

        upward, downward = price_thresholds(candle.close, dyn_threshold)
        trigger = scan_for_entry(
            self._cols["high"],
            self._cols["low"],
            index,
            upward,
            downward,
            self.config.trade.max_look_forward_candles,
        )
        entry = None
        if trigger is not None:
            entry = Entry(
                side=trigger.side,
                reason=trigger.reason,
                price=trigger.price,
                candles_until_threshold=trigger.candles_until_threshold,
                candle=self._snapshot(trigger.index),
            )

        result = ThresholdResult(
            legend_candle_no=self.legend_candles + 1,
            candle=candle,
            dynamic_threshold=dyn_threshold,
            upward_threshold=upward,
            downward_threshold=downward,
            meets_base_threshold=meets_base,
            entry=entry,
        )
        logger.debug(
            "Legend candle #%d em %s | close %s | up %.8f | down %.8f",
            result.legend_candle_no,
            result.timestamp,
            candle.close,
            upward,
            downward,
        )
        return result

    def find_thresholds(self, cancel_event: Optional[threading.Event] = None) -> List[ThresholdResult]:
        lookback = self.lookback_period
        n = len(self.candles)
        logger.info(
            "Iniciando %s %s com %d candles (lookback=%d, threshold=%s, multiplier=%s)",
            self.symbol,
            self.timeframe,
            n,
            lookback,
            self.config.strategy.threshold,
            self.config.strategy.threshold_multiplier,
        )

        self.results = []
        self.total_candles = n
        self.legend_candles = 0
        self.successful_trades = 0
        self.cancelled = False

        if n < lookback:
            logger.warning("Candles insuficientes (%d) para o lookback (%d)", n, lookback)
            self.total_candles = 0
            return self.results

        moves = move_pct(self.candles).to_numpy(dtype=float)
        averages = window_averages(moves, lookback)
        self._cols = self._columns()
        multiplier = self.config.strategy.threshold_multiplier

        for i in range(lookback, n):
            if cancel_event is not None and cancel_event.is_set():
                self.cancelled = True
                logger.warning("Execução %s %s cancelada no candle %d", self.symbol, self.timeframe, i)
                return self.results

            avg = float(averages[i - lookback])
            result = self.process_candle(i, dynamic_threshold(avg, multiplier), avg)
            if result is None:
                continue

            self.legend_candles += 1
            if self.legend_candles % 5 == 0:
                logger.info("Encontrados %d legend candles até agora...", self.legend_candles)
            self.results.append(result)
            if result.success:
                self.successful_trades += 1

        logger.info(
            "Processamento concluído: %d legend candles, %d entradas acionadas",
            self.legend_candles,
            self.successful_trades,
        )
        if self.symbol_info is None:
            raise SymbolInfoNotSet(f"Symbol info not set for {self.symbol} before finalizing results")
        return self.results

    def get_stats(self) -> RunStats:
        return RunStats(
            total_candles=self.total_candles,
            legend_candles=self.legend_candles,
            successful_trades=self.successful_trades,
        )

    def to_result(self) -> BacktestResult:
        if self.symbol_info is None:
            raise SymbolInfoNotSet(f"Symbol info not set for {self.symbol} before saving results")
        return BacktestResult(
            symbol=self.symbol,
            timeframe=self.timeframe,
            symbol_info=self.symbol_info,
            config=self.config.to_dict(),
            results=list(self.results),
            stats=self.get_stats(),
        )

    def save_results(self, results_dir: str | Path = RESULTS_DIR) -> Path:
        data = self.to_result().to_dict()
        out = Path(results_dir) / self.symbol
        out.mkdir(parents=True, exist_ok=True)
        path = out / f"{self.timeframe}_results.json"
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info("Resultados salvos em %s", path)
        return path

    def run(self, results_dir: str | Path = RESULTS_DIR, cancel_event: Optional[threading.Event] = None) -> BacktestResult:
        self.find_thresholds(cancel_event)
        if not self.cancelled:
            self.save_results(results_dir)
        return self.to_result()


def parse_year_month(value: str) -> Tuple[int, int]:
    try:
        year, month = value.split("-")
        return int(year), int(month)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Data inválida (use YYYY-MM): {value}") from None


def _config_from_args(args: argparse.Namespace) -> TradingConfig:
    cfg = load_config(args.config) if args.config else None
    if cfg is None:
        cfg = TradingConfig()
    cfg = cfg.for_target(args.symbol or cfg.symbol, args.timeframe or cfg.timeframe)

    data_fetch = cfg.data_fetch
    if args.start:
        data_fetch = replace(data_fetch, start_year=args.start[0], start_month=args.start[1])
    if args.end:
        data_fetch = replace(data_fetch, end_year=args.end[0], end_month=args.end[1])

    strategy = cfg.strategy
    if args.multiplier is not None:
        strategy = replace(strategy, threshold_multiplier=args.multiplier)
    if args.threshold is not None:
        strategy = replace(strategy, threshold=args.threshold)
    if args.require_base_threshold:
        strategy = replace(strategy, require_base_threshold=True)

    trade = cfg.trade
    if args.max_look_forward is not None:
        trade = TradeConfig(max_look_forward_candles=args.max_look_forward)

    market = cfg.market
    if args.market or args.sub_type:
        market = MarketConfig(type=args.market or market.type, sub_type=args.sub_type or market.sub_type)

    return replace(cfg, data_fetch=data_fetch, strategy=strategy, trade=trade, market=market)


def main(argv: Optional[List[str]] = None) -> int:
    from ...binance_client import fetch_symbol_info
    from ...cache.klines_archive import ensure_archives

    ap = argparse.ArgumentParser(description="Legend candle backtest (Binance klines)")
    ap.add_argument("--symbol", default=None)
    ap.add_argument("--timeframe", default=None)
    ap.add_argument("--config", default=None, help="Arquivo JSON de configuração")
    ap.add_argument("--market", choices=["futures", "spot"], default=None)
    ap.add_argument("--sub-type", dest="sub_type", choices=["um", "cm"], default=None)
    ap.add_argument("--start", type=parse_year_month, default=None, help="YYYY-MM")
    ap.add_argument("--end", type=parse_year_month, default=None, help="YYYY-MM")
    ap.add_argument("--multiplier", type=float, default=None)
    ap.add_argument("--threshold", type=float, default=None)
    ap.add_argument("--max-look-forward", dest="max_look_forward", type=int, default=None)
    ap.add_argument("--require-base-threshold", dest="require_base_threshold", action="store_true")
    ap.add_argument("--kline-dir", dest="kline_dir", default="kline")
    ap.add_argument("--results-dir", dest="results_dir", default=str(RESULTS_DIR))
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        cfg = _config_from_args(args)
        info = fetch_symbol_info(cfg.symbol, cfg.market.type, cfg.market.sub_type)
        print(f"Processando {cfg.symbol} @ {cfg.timeframe} | precisão de preço: {info.price_precision} casas")

        csv_files = ensure_archives(
            cfg.symbol,
            cfg.timeframe,
            cfg.data_fetch.start,
            cfg.data_fetch.end,
            cfg.market.type,
            cfg.market.sub_type,
            base=Path(args.kline_dir),
        )
        bt = LegendCandleBacktester(cfg.symbol, cfg, info)
        start_ms, end_ms = cfg.date_range_ms()
        bt.set_candles(load_candles(csv_files, start_ms, end_ms))
        result = bt.run(args.results_dir)
    except Exception as exc:
        logger.error("Erro executando backtest: %s", exc)
        return 1

    print(generate_summary_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())

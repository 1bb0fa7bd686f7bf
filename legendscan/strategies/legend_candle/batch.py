from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tqdm import tqdm

from ...binance_client import fetch_symbol_info
from ...cache.klines_archive import KLINE_DIR, ensure_archives
from ...utils.data_loader import load_candles
from ...utils.metrics import error_summary, summarize_result
from .backtest import LegendCandleBacktester, RESULTS_DIR
from .config import BatchConfig, TradingConfig, load_config
from .models import SymbolInfo

logger = logging.getLogger(__name__)


def save_summary(summary: Dict[str, Any], results_dir: Path) -> Path:
    out = Path(results_dir) / "summary"
    out.mkdir(parents=True, exist_ok=True)
    path = out / f"{summary['symbol']}_{summary['timeframe']}_summary.json"
    path.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")
    return path


def run_single(
    config: TradingConfig,
    symbol_info: SymbolInfo,
    kline_base: Path = KLINE_DIR,
    results_dir: Path = RESULTS_DIR,
    cancel_event: Optional[threading.Event] = None,
) -> Dict[str, Any]:
    """Executa um par símbolo/timeframe do início ao fim e retorna o resumo."""
    logger.info("=== Backtest %s - %s ===", config.symbol, config.timeframe)
    csv_files = ensure_archives(
        config.symbol,
        config.timeframe,
        config.data_fetch.start,
        config.data_fetch.end,
        config.market.type,
        config.market.sub_type,
        base=kline_base,
    )
    start_ms, end_ms = config.date_range_ms()
    bt = LegendCandleBacktester(config.symbol, config, symbol_info)
    bt.set_candles(load_candles(csv_files, start_ms, end_ms))
    result = bt.run(results_dir, cancel_event=cancel_event)
    if bt.cancelled:
        # execução parcial não gera resumo em disco
        return error_summary(config.symbol, config.timeframe, "cancelled")
    summary = summarize_result(result.to_dict())
    save_summary(summary, results_dir)
    return summary


class BatchRunner:
    """
    Roda todos os pares símbolo/timeframe da configuração.

    Cada tarefa é independente; uma falha vira um resumo de erro e não
    interrompe as demais.
    """

    def __init__(
        self,
        config: TradingConfig,
        kline_base: Path = KLINE_DIR,
        results_dir: Path = RESULTS_DIR,
        runner=run_single,
        info_fetcher=fetch_symbol_info,
    ):
        self.config = config
        self.kline_base = Path(kline_base)
        self.results_dir = Path(results_dir)
        self.runner = runner
        self.info_fetcher = info_fetcher
        self.cancel_event = threading.Event()
        self.summaries: List[Dict[str, Any]] = []

    def fetch_symbol_infos(self) -> Dict[str, SymbolInfo]:
        infos: Dict[str, SymbolInfo] = {}
        for symbol in self.config.symbols:
            try:
                infos[symbol] = self.info_fetcher(symbol, self.config.market.type, self.config.market.sub_type)
            except Exception as exc:
                logger.error("Falha ao buscar info de %s: %s", symbol, exc)
        return infos

    def tasks(self, infos: Dict[str, SymbolInfo]) -> List[Tuple[TradingConfig, SymbolInfo]]:
        return [
            (self.config.for_target(symbol, timeframe), infos[symbol])
            for symbol in self.config.symbols
            if symbol in infos
            for timeframe in self.config.timeframes
        ]

    def _run_task(self, cfg: TradingConfig, info: SymbolInfo) -> Dict[str, Any]:
        try:
            return self.runner(cfg, info, self.kline_base, self.results_dir, self.cancel_event)
        except Exception as exc:
            logger.error("Erro no backtest %s - %s: %s", cfg.symbol, cfg.timeframe, exc)
            return error_summary(cfg.symbol, cfg.timeframe, str(exc))

    def _run_sequential(self, tasks) -> List[Dict[str, Any]]:
        summaries = []
        for cfg, info in tqdm(tasks, desc="Backtests"):
            summaries.append(self._run_task(cfg, info))
        return summaries

    def _run_parallel(self, tasks, workers: int) -> List[Dict[str, Any]]:
        summaries = []
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._run_task, cfg, info) for cfg, info in tasks]
            try:
                for fut in tqdm(as_completed(futures), total=len(futures), desc="Backtests"):
                    summaries.append(fut.result())
            except KeyboardInterrupt:
                self.cancel_event.set()
                pool.shutdown(wait=True, cancel_futures=True)
                raise
        return summaries

    def run(self) -> Path:
        batch: BatchConfig = self.config.batch
        started = int(time.time() * 1000)
        logger.info(
            "Batch em modo %s | símbolos: %s | timeframes: %s",
            "paralelo" if batch.parallel else "sequencial",
            ", ".join(self.config.symbols),
            ", ".join(self.config.timeframes),
        )

        infos = self.fetch_symbol_infos()
        tasks = self.tasks(infos)
        logger.info("Total de combinações: %d", len(tasks))

        if batch.parallel:
            summaries = self._run_parallel(tasks, batch.concurrency_limit)
        else:
            summaries = self._run_sequential(tasks)

        # ordem estável independente da ordem de conclusão
        order = {(cfg.symbol, cfg.timeframe): n for n, (cfg, _) in enumerate(tasks)}
        summaries.sort(key=lambda s: order.get((s["symbol"], s["timeframe"]), len(order)))
        self.summaries = summaries

        out = self.results_dir / "summary"
        out.mkdir(parents=True, exist_ok=True)
        path = out / f"batch_summary_{started}.json"
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "total_pairs": len(self.config.symbols),
            "total_timeframes": len(self.config.timeframes),
            "summaries": summaries,
        }
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        failed = len([s for s in summaries if "error" in s])
        logger.info("Concluídos %d de %d backtests (%d com erro)", len(summaries) - failed, len(tasks), failed)
        return path


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Legend candle batch backtest across symbols/timeframes")
    ap.add_argument("--config", default=None, help="Arquivo JSON de configuração")
    ap.add_argument("--sequential", action="store_true")
    ap.add_argument("--concurrency", type=int, default=None)
    ap.add_argument("--kline-dir", dest="kline_dir", default=str(KLINE_DIR))
    ap.add_argument("--results-dir", dest="results_dir", default=str(RESULTS_DIR))
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        cfg = (load_config(args.config) if args.config else None) or TradingConfig(mode="batch")
        if args.sequential or args.concurrency is not None:
            cfg = replace(
                cfg,
                batch=BatchConfig(
                    parallel=cfg.batch.parallel and not args.sequential,
                    concurrency_limit=args.concurrency or cfg.batch.concurrency_limit,
                ),
            )
        path = BatchRunner(cfg, Path(args.kline_dir), Path(args.results_dir)).run()
    except KeyboardInterrupt:
        logger.warning("Batch interrompido pelo usuário")
        return 130
    except Exception as exc:
        logger.error("Erro executando batch: %s", exc)
        return 1

    print(f"Resumo do batch salvo em {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

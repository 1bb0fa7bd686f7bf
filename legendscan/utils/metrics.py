"""
Funções utilitárias para estatísticas e relatórios do scanner de legend candles
"""

from typing import Dict, List, Any, Optional

from ..strategies.legend_candle.models import BacktestResult, RunStats, ThresholdResult


def calculate_stats(results: List[ThresholdResult], total_candles: int) -> RunStats:
    """
    Recalcula as estatísticas de uma execução a partir da lista de resultados

    Args:
        results: Resultados (um por legend candle)
        total_candles: Total de candles carregados na execução

    Returns:
        RunStats consistente com a lista
    """
    return RunStats.from_results(results, total_candles)


def side_breakdown(results: List[ThresholdResult]) -> Dict[str, int]:
    counts = {"LONG": 0, "SHORT": 0, "none": 0}
    for r in results:
        counts[r.entry.side if r.entry is not None else "none"] += 1
    return counts


def avg_candles_until_threshold(results: List[ThresholdResult]) -> float:
    waits = [r.entry.candles_until_threshold for r in results if r.entry is not None]
    return sum(waits) / len(waits) if waits else 0.0


def generate_summary_report(result: BacktestResult) -> str:
    """
    Gera um relatório resumo de uma execução

    Args:
        result: Resultado completo da execução

    Returns:
        String formatada com o relatório
    """
    stats = result.stats
    sides = side_breakdown(result.results)
    report = []
    report.append("=" * 60)
    report.append(f"LEGEND CANDLES - {result.symbol} @ {result.timeframe}")
    report.append("=" * 60)
    report.append(f"Total de Candles: {stats.total_candles}")
    report.append(f"Legend Candles: {stats.legend_candles}")
    report.append(f"Entradas Acionadas: {stats.successful_trades}")
    report.append(f"Taxa de Sucesso: {stats.success_rate:.2f}%")
    report.append(f"")
    report.append(f"LONG: {sides['LONG']} | SHORT: {sides['SHORT']} | Sem entrada: {sides['none']}")
    report.append(f"Média de candles até o gatilho: {avg_candles_until_threshold(result.results):.2f}")
    report.append("=" * 60)
    return "\n".join(report)


def summarize_result(data: Dict[str, Any]) -> Dict[str, Any]:
    """Resumo por símbolo/timeframe a partir do dicionário serializado de uma execução."""
    trades = data.get("results") or []
    successful = len([t for t in trades if t.get("success")])
    return {
        "symbol": data["symbol"],
        "timeframe": data["timeframe"],
        "total_trades": len(trades),
        "successful_trades": successful,
        "success_rate": (successful / len(trades) * 100.0) if trades else 0.0,
        "config": data.get("config"),
    }


def error_summary(symbol: str, timeframe: str, message: Optional[str]) -> Dict[str, Any]:
    return {
        "symbol": symbol,
        "timeframe": timeframe,
        "total_trades": 0,
        "successful_trades": 0,
        "success_rate": 0.0,
        "config": None,
        "error": message or "Unknown error occurred",
    }

"""Estruturas de resultado do scanner de legend candles.

Os valores numéricos são mantidos em precisão total; o arredondamento para a
precisão de preço do símbolo acontece apenas em ``to_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Dict, Any, Iterable, List

import pandas as pd

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

LONG = "LONG"
SHORT = "SHORT"
UPWARD_THRESHOLD_MET = "UpwardThresholdMet"
DOWNWARD_THRESHOLD_MET = "DownwardThresholdMet"


class SymbolInfoNotSet(RuntimeError):
    """Precisão do símbolo ausente no momento de formatar/salvar resultados."""


def format_time(open_time_ms: int) -> str:
    return pd.to_datetime(int(open_time_ms), unit="ms").strftime(TIME_FORMAT)


def format_price(price: float, precision: int) -> str:
    return f"{float(price):.{precision}f}"


@dataclass(frozen=True)
class SymbolInfo:
    symbol: str
    base_asset: str
    quote_asset: str
    base_asset_precision: int
    quote_precision: int
    price_precision: int
    quantity_precision: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "baseAsset": self.base_asset,
            "quoteAsset": self.quote_asset,
            "baseAssetPrecision": self.base_asset_precision,
            "quotePrecision": self.quote_precision,
            "pricePrecision": self.price_precision,
            "quantityPrecision": self.quantity_precision,
        }


@dataclass(frozen=True)
class CandleSnapshot:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def move_pct(self) -> float:
        return abs(self.close - self.open) / self.open * 100

    def details(self, precision: int) -> Dict[str, Any]:
        return {
            "open": format_price(self.open, precision),
            "high": format_price(self.high, precision),
            "low": format_price(self.low, precision),
            "close": format_price(self.close, precision),
            "volume": self.volume,
        }


@dataclass(frozen=True)
class EntryTrigger:
    """Saída crua do simulador de entrada (sem formatação)."""

    side: str
    reason: str
    price: float
    index: int
    candles_until_threshold: int


@dataclass(frozen=True)
class Entry:
    side: str
    reason: str
    price: float
    candles_until_threshold: int
    candle: CandleSnapshot

    @property
    def time(self) -> str:
        return format_time(self.candle.open_time)

    def to_dict(self, info: SymbolInfo) -> Dict[str, Any]:
        p = info.price_precision
        return {
            "reason": self.reason,
            "side": self.side,
            "price": self.price,
            "formatted_price": f"{format_price(self.price, p)} {info.quote_asset}",
            "time": self.time,
            "candlesUntilThreshold": self.candles_until_threshold,
            "PositionEntryCandleDetails": self.candle.details(p),
        }


@dataclass(frozen=True)
class ThresholdResult:
    legend_candle_no: int
    candle: CandleSnapshot
    dynamic_threshold: float
    upward_threshold: float
    downward_threshold: float
    meets_base_threshold: bool
    entry: Optional[Entry] = None

    @property
    def success(self) -> bool:
        return self.entry is not None

    @property
    def timestamp(self) -> str:
        return format_time(self.candle.open_time)

    def to_dict(self, info: SymbolInfo) -> Dict[str, Any]:
        p = info.price_precision
        data: Dict[str, Any] = {
            "Legend_Candle_no": self.legend_candle_no,
            "timestamp": self.timestamp,
            "LegendCandle": {
                # percentual; precisão 0 cairia para inteiro
                "currentDynamicThreshold": format_price(self.dynamic_threshold, p or 2),
                "upwardThreshold": format_price(self.upward_threshold, p),
                "downwardThreshold": format_price(self.downward_threshold, p),
                "LegendCandleDifference": f"{self.candle.move_pct:.2f}",
                "LegendCandleDetails": self.candle.details(p),
                "meetsBaseThreshold": self.meets_base_threshold,
            },
            "success": self.success,
        }
        if self.entry is not None:
            data["entry"] = self.entry.to_dict(info)
        return data


@dataclass(frozen=True)
class RunStats:
    total_candles: int = 0
    legend_candles: int = 0
    successful_trades: int = 0

    @property
    def success_rate(self) -> float:
        if self.legend_candles == 0:
            return 0.0
        return self.successful_trades / self.legend_candles * 100.0

    @classmethod
    def from_results(cls, results: Iterable[ThresholdResult], total_candles: int) -> RunStats:
        results = list(results)
        return cls(
            total_candles=total_candles,
            legend_candles=len(results),
            successful_trades=sum(1 for r in results if r.success),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalCandles": self.total_candles,
            "legendCandles": self.legend_candles,
            "successfulTrades": self.successful_trades,
            "successRate": self.success_rate,
        }


@dataclass(frozen=True)
class BacktestResult:
    symbol: str
    timeframe: str
    symbol_info: SymbolInfo
    config: Dict[str, Any]
    results: List[ThresholdResult]
    stats: RunStats

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "symbolInfo": self.symbol_info.to_dict(),
            "config": self.config,
            "results": [r.to_dict(self.symbol_info) for r in self.results],
            "stats": self.stats.to_dict(),
        }

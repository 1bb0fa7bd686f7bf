from __future__ import annotations

import calendar
import json
import time
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, UTC
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Dict, Any, Mapping, Tuple

AVAILABLE_SYMBOLS: Tuple[str, ...] = (
    "ETHUSDT",
    "XRPUSDT",
    "ADAUSDT",
    "SOLUSDT",
    "LTCUSDT",
    "XMRUSDT",
    "1000SHIBUSDT",
)

AVAILABLE_TIMEFRAMES: Tuple[str, ...] = (
    "1m",
    "3m",
    "5m",
    "15m",
    "30m",
    "1h",
    "2h",
    "4h",
    "6h",
    "8h",
    "12h",
    "1d",
)

# Janela de lookback (em candles) por timeframe
LOOKBACK_BY_TIMEFRAME: Mapping[str, int] = MappingProxyType(
    {
        "1m": 200,
        "3m": 150,
        "5m": 120,
        "15m": 100,
        "30m": 80,
        "1h": 60,
        "2h": 48,
        "4h": 36,
        "6h": 24,
        "8h": 20,
        "12h": 15,
        "1d": 10,
    }
)

DEFAULT_LOOKBACK = 200


@dataclass(frozen=True)
class DataFetchConfig:
    start_year: int = 2024
    start_month: int = 9
    end_year: Optional[int] = 2024
    end_month: Optional[int] = 10

    def __post_init__(self) -> None:
        if not 1 <= self.start_month <= 12:
            raise ValueError(f"start_month fora do intervalo 1..12: {self.start_month}")
        if (self.end_year is None) != (self.end_month is None):
            raise ValueError("end_year e end_month devem ser informados juntos")
        if self.end_month is not None and not 1 <= self.end_month <= 12:
            raise ValueError(f"end_month fora do intervalo 1..12: {self.end_month}")

    @property
    def start(self) -> Tuple[int, int]:
        return self.start_year, self.start_month

    @property
    def end(self) -> Tuple[int, int]:
        if self.end_year is None or self.end_month is None:
            now = datetime.now(UTC)
            return now.year, now.month
        return self.end_year, self.end_month


@dataclass(frozen=True)
class TradeConfig:
    max_look_forward_candles: int = 100

    def __post_init__(self) -> None:
        if self.max_look_forward_candles < 1:
            raise ValueError("max_look_forward_candles deve ser >= 1")


@dataclass(frozen=True)
class StrategyConfig:
    lookback_candles: int = DEFAULT_LOOKBACK  # fallback para timeframes fora da tabela
    threshold: float = 15.0  # multiplicador base (checagem consultiva)
    threshold_multiplier: float = 15.0  # multiplicador usado no dimensionamento
    require_base_threshold: bool = False
    lookback_by_timeframe: Mapping[str, int] = field(default_factory=lambda: LOOKBACK_BY_TIMEFRAME)

    def __post_init__(self) -> None:
        if self.lookback_candles < 1:
            raise ValueError("lookback_candles deve ser >= 1")
        if any(v < 1 for v in self.lookback_by_timeframe.values()):
            raise ValueError("lookback_by_timeframe aceita apenas valores >= 1")
        object.__setattr__(self, "lookback_by_timeframe", MappingProxyType(dict(self.lookback_by_timeframe)))

    def to_dict(self) -> Dict[str, Any]:
        # asdict não copia MappingProxyType
        return {
            "lookback_candles": self.lookback_candles,
            "threshold": self.threshold,
            "threshold_multiplier": self.threshold_multiplier,
            "require_base_threshold": self.require_base_threshold,
            "lookback_by_timeframe": dict(self.lookback_by_timeframe),
        }


@dataclass(frozen=True)
class MarketConfig:
    type: str = "futures"  # "futures" | "spot"
    sub_type: str = "um"  # "um" | "cm" (apenas futures)

    def __post_init__(self) -> None:
        if self.type not in ("futures", "spot"):
            raise ValueError(f"Tipo de mercado não suportado: {self.type}")
        if self.sub_type not in ("um", "cm"):
            raise ValueError(f"Subtipo de futures não suportado: {self.sub_type}")

    @property
    def key(self) -> str:
        return self.sub_type if self.type == "futures" else "spot"


@dataclass(frozen=True)
class BatchConfig:
    parallel: bool = True
    concurrency_limit: int = 5

    def __post_init__(self) -> None:
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit deve ser >= 1")


@dataclass(frozen=True)
class TradingConfig:
    """Configuração imutável de uma execução (símbolo/timeframe + parâmetros)."""

    symbol: str = "ETHUSDT"
    timeframe: str = "1m"
    data_fetch: DataFetchConfig = field(default_factory=DataFetchConfig)
    trade: TradeConfig = field(default_factory=TradeConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    mode: str = "single"  # "single" | "batch"
    batch: BatchConfig = field(default_factory=BatchConfig)
    symbols: Tuple[str, ...] = AVAILABLE_SYMBOLS
    timeframes: Tuple[str, ...] = AVAILABLE_TIMEFRAMES

    def __post_init__(self) -> None:
        if self.mode not in ("single", "batch"):
            raise ValueError(f"Modo de backtest inválido: {self.mode}")
        object.__setattr__(self, "symbols", tuple(self.symbols))
        object.__setattr__(self, "timeframes", tuple(self.timeframes))

    @property
    def lookback_period(self) -> int:
        return self.strategy.lookback_by_timeframe.get(self.timeframe, self.strategy.lookback_candles)

    def for_target(self, symbol: str, timeframe: str) -> TradingConfig:
        return replace(self, symbol=symbol, timeframe=timeframe)

    def date_range_ms(self) -> Tuple[int, int]:
        """Retorna (início do mês inicial, último ms do mês final) em UTC."""
        sy, sm = self.data_fetch.start
        start_ms = calendar.timegm((sy, sm, 1, 0, 0, 0)) * 1000
        if self.data_fetch.end_year is None:
            return start_ms, int(time.time() * 1000)
        ey, em = self.data_fetch.end
        last_day = calendar.monthrange(ey, em)[1]
        end_ms = (calendar.timegm((ey, em, last_day, 23, 59, 59)) + 1) * 1000 - 1
        return start_ms, end_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "data_fetch": asdict(self.data_fetch),
            "trade": asdict(self.trade),
            "strategy": self.strategy.to_dict(),
            "market": asdict(self.market),
            "mode": self.mode,
            "batch": asdict(self.batch),
            "symbols": list(self.symbols),
            "timeframes": list(self.timeframes),
        }


def config_from_dict(data: Dict[str, Any]) -> TradingConfig:
    try:
        strategy = dict(data.get("strategy", {}))
        if "lookback_by_timeframe" in strategy:
            strategy["lookback_by_timeframe"] = {k: int(v) for k, v in strategy["lookback_by_timeframe"].items()}
        defaults = TradingConfig()
        return TradingConfig(
            symbol=data.get("symbol", defaults.symbol),
            timeframe=data.get("timeframe", defaults.timeframe),
            data_fetch=DataFetchConfig(**data.get("data_fetch", {})),
            trade=TradeConfig(**data.get("trade", {})),
            strategy=StrategyConfig(**strategy),
            market=MarketConfig(**data.get("market", {})),
            mode=data.get("mode", defaults.mode),
            batch=BatchConfig(**data.get("batch", {})),
            symbols=tuple(data.get("symbols", defaults.symbols)),
            timeframes=tuple(data.get("timeframes", defaults.timeframes)),
        )
    except TypeError as exc:
        raise ValueError(f"Config inválida: {exc}") from exc


def load_config(path: str | Path) -> Optional[TradingConfig]:
    path = Path(path)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Config JSON malformada em {path}: {exc}") from exc
    return config_from_dict(data)


def save_config(config: TradingConfig, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
    return path

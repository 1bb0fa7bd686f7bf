import pandas as pd
import pytest

from legendscan.strategies.legend_candle.config import StrategyConfig, TradeConfig, TradingConfig
from legendscan.strategies.legend_candle.models import SymbolInfo

# 2024-09-01 00:00:00 UTC
BASE_OPEN_TIME = 1725148800000
MINUTE_MS = 60_000


@pytest.fixture
def make_frame():
    """Builds a candle DataFrame from (open, high, low, close) tuples, one minute apart."""

    def _make(rows, start=BASE_OPEN_TIME, step=MINUTE_MS):
        records = []
        for n, (o, h, l, c) in enumerate(rows):
            open_time = start + n * step
            records.append(
                {
                    "open_time": open_time,
                    "open": float(o),
                    "high": float(h),
                    "low": float(l),
                    "close": float(c),
                    "volume": 10.0,
                    "close_time": open_time + step - 1,
                }
            )
        df = pd.DataFrame(records)
        df["Date"] = pd.to_datetime(df["open_time"], unit="ms")
        return df

    return _make


@pytest.fixture
def make_config():
    def _make(lookback=3, multiplier=2.0, threshold=15.0, max_look_forward=100, require_base=False):
        return TradingConfig(
            symbol="ETHUSDT",
            timeframe="test",
            trade=TradeConfig(max_look_forward_candles=max_look_forward),
            strategy=StrategyConfig(
                lookback_candles=lookback,
                threshold=threshold,
                threshold_multiplier=multiplier,
                require_base_threshold=require_base,
            ),
        )

    return _make


@pytest.fixture
def symbol_info():
    return SymbolInfo(
        symbol="ETHUSDT",
        base_asset="ETH",
        quote_asset="USDT",
        base_asset_precision=8,
        quote_precision=8,
        price_precision=2,
        quantity_precision=3,
    )

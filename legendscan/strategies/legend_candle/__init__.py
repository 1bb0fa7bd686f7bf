"""Legend candle scanner: volatility-scaled anomaly detection + entry simulation.

For each candle past the lookback window, the average open->close move of the
preceding candles is scaled by ``threshold_multiplier`` into a dynamic
threshold; the candle's close +/- that percentage gives the upward/downward
prices, and the following candles are scanned for the first one whose
high/low crosses either level.

Run a single backtest:
  poetry run python -m legendscan.strategies.legend_candle.backtest \
    --symbol ETHUSDT --timeframe 1m --start 2024-09 --end 2024-10

Run every configured symbol/timeframe pair:
  poetry run python -m legendscan.strategies.legend_candle.batch --concurrency 5
"""

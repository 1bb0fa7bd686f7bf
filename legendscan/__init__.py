"""Scanner de legend candles sobre klines históricos da Binance."""

"""
Funções utilitárias para carregamento de candles a partir dos CSVs mensais
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

KLINE_COLUMNS = [
    "open_time",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "close_time",
    "quote_volume",
    "count",
    "taker_buy_volume",
    "taker_buy_quote_volume",
    "ignore",
]

OHLC_COLUMNS = ["open", "high", "low", "close"]

PRICE_COLUMNS = ["open", "high", "low", "close", "volume", "quote_volume", "taker_buy_volume", "taker_buy_quote_volume"]

# Arquivos spot a partir de 2025 usam microssegundos
_MICROSECOND_CUTOFF = 10**14


def _has_header(path: Path) -> bool:
    with path.open("r", encoding="utf-8") as f:
        first = f.readline().strip()
    return bool(first) and not first[0].isdigit()


def read_klines_csv(path: str | Path) -> pd.DataFrame:
    """
    Lê um CSV de klines da Binance (com ou sem cabeçalho)

    Args:
        path: Caminho do arquivo CSV

    Returns:
        DataFrame com as colunas de kline e a coluna Date
    """
    path = Path(path)
    if path.stat().st_size == 0:
        return pd.DataFrame(columns=KLINE_COLUMNS + ["Date"])
    if _has_header(path):
        df = pd.read_csv(path)
    else:
        df = pd.read_csv(path, header=None, names=KLINE_COLUMNS)
    if df.empty:
        return pd.DataFrame(columns=KLINE_COLUMNS + ["Date"])

    for col in ("open_time", "close_time"):
        ts = pd.to_numeric(df[col]).astype("int64")
        df[col] = ts.where(ts < _MICROSECOND_CUTOFF, ts // 1000)
    for col in PRICE_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    df["Date"] = pd.to_datetime(df["open_time"], unit="ms")
    return df


def filter_date_range(df: pd.DataFrame, start_ms: int, end_ms: int) -> pd.DataFrame:
    mask = (df["open_time"] >= start_ms) & (df["open_time"] <= end_ms)
    return df.loc[mask]


def validate_candles(df: pd.DataFrame) -> pd.DataFrame:
    """Rejeita candles com OHLC não numérico/infinito ou open zero."""
    ohlc = df[OHLC_COLUMNS].astype("float64")
    bad = ~np.isfinite(ohlc).all(axis=1) | (ohlc["open"] == 0)
    if bad.any():
        row = df.loc[bad].iloc[0]
        values = ", ".join(f"{col}={row[col]}" for col in OHLC_COLUMNS)
        raise ValueError(f"Candle inválido ({values}) em open_time={row['open_time']}")
    return df


def load_candles(paths: Iterable[str | Path], start_ms: int, end_ms: Optional[int] = None) -> pd.DataFrame:
    """
    Carrega e concatena CSVs mensais em uma série ordenada e sem duplicatas

    Args:
        paths: Arquivos CSV (um por mês)
        start_ms: Início do intervalo (ms, inclusivo)
        end_ms: Fim do intervalo (ms, inclusivo)

    Returns:
        DataFrame ordenado por open_time
    """
    frames = []
    for path in paths:
        df = read_klines_csv(path)
        if end_ms is not None:
            df = filter_date_range(df, start_ms, end_ms)
        else:
            df = df.loc[df["open_time"] >= start_ms]
        logger.info("Carregados %d candles de %s", len(df), path)
        frames.append(df)

    if not frames:
        return pd.DataFrame(columns=KLINE_COLUMNS + ["Date"])

    df = pd.concat(frames, ignore_index=True)
    df = df.sort_values("open_time", kind="stable").drop_duplicates(subset="open_time", keep="last").reset_index(drop=True)
    return validate_candles(df)

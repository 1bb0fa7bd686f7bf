from __future__ import annotations

import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Iterator, List, Tuple

import requests

logger = logging.getLogger(__name__)

ARCHIVE_ROOT = "https://data.binance.vision/data"
KLINE_DIR = Path("kline")

_MONTH_RE = re.compile(r"(\d{4})-(\d{2})\.csv$")

YearMonth = Tuple[int, int]


def archive_base_url(market_type: str, sub_type: str = "um") -> str:
    if market_type == "futures":
        if sub_type not in ("um", "cm"):
            raise ValueError(f"Unsupported futures subType: {sub_type}")
        return f"{ARCHIVE_ROOT}/futures/{sub_type}"
    return f"{ARCHIVE_ROOT}/spot"


def archive_name(symbol: str, timeframe: str, year: int, month: int) -> str:
    return f"{symbol}-{timeframe}-{year}-{month:02d}"


def archive_url(symbol: str, timeframe: str, year: int, month: int, market_type: str = "futures", sub_type: str = "um") -> str:
    base = archive_base_url(market_type, sub_type)
    return f"{base}/monthly/klines/{symbol}/{timeframe}/{archive_name(symbol, timeframe, year, month)}.zip"


def kline_dir(base: Path, symbol: str, timeframe: str, market_type: str = "futures", sub_type: str = "um") -> Path:
    market_key = sub_type if market_type == "futures" else "spot"
    return Path(base) / market_key / symbol / timeframe / "csv"


def months_between(start: YearMonth, end: YearMonth) -> Iterator[YearMonth]:
    year, month = start
    while (year, month) <= end:
        yield year, month
        month += 1
        if month > 12:
            year, month = year + 1, 1


def missing_months(csv_dir: Path, symbol: str, timeframe: str, start: YearMonth, end: YearMonth) -> List[YearMonth]:
    return [
        (y, m)
        for y, m in months_between(start, end)
        if not (csv_dir / f"{archive_name(symbol, timeframe, y, m)}.csv").exists()
    ]


def csv_files_in_range(csv_dir: Path, start: YearMonth, end: YearMonth) -> List[Path]:
    if not csv_dir.exists():
        return []
    files = []
    for path in csv_dir.glob("*.csv"):
        match = _MONTH_RE.search(path.name)
        if not match:
            continue
        ym = (int(match.group(1)), int(match.group(2)))
        if start <= ym <= end:
            files.append(path)
    return sorted(files)


def download_archive(url: str, csv_dir: Path, timeout: float = 20.0) -> None:
    logger.info("Baixando %s", url)
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
        zf.extractall(csv_dir)


def ensure_archives(
    symbol: str,
    timeframe: str,
    start: YearMonth,
    end: YearMonth,
    market_type: str = "futures",
    sub_type: str = "um",
    base: Path = KLINE_DIR,
) -> List[Path]:
    """Garante os CSVs mensais no disco e retorna os arquivos do intervalo."""
    csv_dir = kline_dir(base, symbol, timeframe, market_type, sub_type)
    csv_dir.mkdir(parents=True, exist_ok=True)

    missing = missing_months(csv_dir, symbol, timeframe, start, end)
    if not missing:
        logger.info("Usando dados existentes para %s %s", symbol, timeframe)
    for year, month in missing:
        download_archive(archive_url(symbol, timeframe, year, month, market_type, sub_type), csv_dir)

    return csv_files_in_range(csv_dir, start, end)

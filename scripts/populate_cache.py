from __future__ import annotations

import argparse
import logging
from pathlib import Path

from legendscan.cache.klines_archive import KLINE_DIR, ensure_archives, kline_dir, missing_months
from legendscan.strategies.legend_candle.backtest import parse_year_month


def main() -> None:
    parser = argparse.ArgumentParser(description="Populate local monthly kline archives for one symbol/interval.")
    parser.add_argument("symbol", nargs="?", default="ETHUSDT", help="Trading pair symbol (default: ETHUSDT)")
    parser.add_argument("interval", nargs="?", default="1m", help="Interval (default: 1m)")
    parser.add_argument("--start", type=parse_year_month, default=(2024, 9), help="First month, YYYY-MM (default: 2024-09)")
    parser.add_argument("--end", type=parse_year_month, default=(2024, 10), help="Last month, YYYY-MM (default: 2024-10)")
    parser.add_argument("--market", choices=["futures", "spot"], default="futures")
    parser.add_argument("--sub-type", dest="sub_type", choices=["um", "cm"], default="um")
    parser.add_argument("--kline-dir", dest="kline_dir", default=str(KLINE_DIR))
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    base = Path(args.kline_dir)
    csv_dir = kline_dir(base, args.symbol, args.interval, args.market, args.sub_type)
    # Verifica o que falta ANTES de baixar
    missing = missing_months(csv_dir, args.symbol, args.interval, args.start, args.end)

    print(f"Fetching {args.symbol} {args.interval} from {args.start[0]}-{args.start[1]:02d} to {args.end[0]}-{args.end[1]:02d}...")
    files = ensure_archives(args.symbol, args.interval, args.start, args.end, args.market, args.sub_type, base=base)

    if not files:
        print("No data retrieved. Verify symbol/interval/date range.")
    elif not missing:
        print(f"Cache is already up-to-date ({len(files)} monthly files in {csv_dir}).")
    else:
        print(f"Cache updated: downloaded {len(missing)} month(s). Now contains {len(files)} monthly files in {csv_dir}.")


if __name__ == "__main__":
    main()

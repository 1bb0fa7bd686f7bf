import pytest

from legendscan.utils.data_loader import load_candles, read_klines_csv

HEADER = "open_time,open,high,low,close,volume,close_time,quote_volume,count,taker_buy_volume,taker_buy_quote_volume,ignore\n"


def _row(open_time, o=100.0, h=101.0, l=99.0, c=100.5, scale=1):
    t = open_time * scale
    return f"{t},{o},{h},{l},{c},5.0,{t + 59_999 * scale},500.0,12,2.5,250.0,0\n"


def test_reads_futures_csv_with_header(tmp_path):
    path = tmp_path / "ETHUSDT-1m-2024-09.csv"
    path.write_text(HEADER + _row(1725148800000) + _row(1725148860000), encoding="utf-8")

    df = read_klines_csv(path)
    assert list(df["open_time"]) == [1725148800000, 1725148860000]
    assert df["close"].iloc[0] == 100.5
    assert df["count"].iloc[1] == 12
    assert str(df["Date"].iloc[0]) == "2024-09-01 00:00:00"


def test_reads_headerless_spot_csv_with_microseconds(tmp_path):
    path = tmp_path / "ETHUSDT-1m-2025-01.csv"
    path.write_text(_row(1735689600000, scale=1000), encoding="utf-8")

    df = read_klines_csv(path)
    assert df["open_time"].iloc[0] == 1735689600000
    assert df["close_time"].iloc[0] == 1735689600000 + 59_999
    assert df["taker_buy_quote_volume"].iloc[0] == 250.0


def test_load_candles_filters_sorts_and_dedups(tmp_path):
    a = tmp_path / "a.csv"
    b = tmp_path / "b.csv"
    a.write_text(HEADER + _row(1725148920000) + _row(1725148800000), encoding="utf-8")
    b.write_text(HEADER + _row(1725148860000) + _row(1725148920000, c=101.0) + _row(1725149000000), encoding="utf-8")

    df = load_candles([a, b], 1725148800000, 1725148920000)
    assert list(df["open_time"]) == [1725148800000, 1725148860000, 1725148920000]
    assert df["close"].iloc[-1] == 101.0
    assert list(df.index) == [0, 1, 2]


def test_load_candles_rejects_zero_open(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text(HEADER + _row(1725148800000) + _row(1725148860000, o=0.0), encoding="utf-8")

    with pytest.raises(ValueError, match="open_time=1725148860000"):
        load_candles([path], 0, 2_000_000_000_000)


@pytest.mark.parametrize("field", [{"c": "abc"}, {"h": "inf"}, {"l": ""}])
def test_load_candles_rejects_non_numeric_prices(tmp_path, field):
    path = tmp_path / "bad.csv"
    path.write_text(HEADER + _row(1725148800000) + _row(1725148860000, **field) + _row(1725148920000), encoding="utf-8")

    with pytest.raises(ValueError, match="open_time=1725148860000"):
        load_candles([path], 0, 2_000_000_000_000)


def test_load_candles_without_files_is_empty():
    df = load_candles([], 0, 1)
    assert df.empty

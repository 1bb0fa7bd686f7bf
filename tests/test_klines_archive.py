import io
import zipfile
from unittest.mock import MagicMock

import pytest
import requests

from legendscan.cache import klines_archive
from legendscan.cache.klines_archive import (
    archive_url,
    csv_files_in_range,
    ensure_archives,
    kline_dir,
    missing_months,
    months_between,
)


def _zip_bytes(name, content="1,2,3\n"):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr(name, content)
    return buf.getvalue()


def test_archive_url_per_market():
    assert archive_url("ETHUSDT", "1m", 2024, 9) == (
        "https://data.binance.vision/data/futures/um/monthly/klines/ETHUSDT/1m/ETHUSDT-1m-2024-09.zip"
    )
    assert archive_url("ETHUSD_PERP", "1h", 2024, 10, "futures", "cm").startswith(
        "https://data.binance.vision/data/futures/cm/monthly/klines/ETHUSD_PERP/1h/"
    )
    assert archive_url("ETHUSDT", "1d", 2023, 1, "spot").endswith("/data/spot/monthly/klines/ETHUSDT/1d/ETHUSDT-1d-2023-01.zip")
    with pytest.raises(ValueError):
        archive_url("ETHUSDT", "1m", 2024, 9, "futures", "xx")


def test_kline_dir_layout(tmp_path):
    assert kline_dir(tmp_path, "ETHUSDT", "5m") == tmp_path / "um" / "ETHUSDT" / "5m" / "csv"
    assert kline_dir(tmp_path, "ETHUSDT", "5m", "spot") == tmp_path / "spot" / "ETHUSDT" / "5m" / "csv"


def test_months_between_crosses_year():
    assert list(months_between((2023, 11), (2024, 2))) == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]
    assert list(months_between((2024, 3), (2024, 2))) == []


def test_missing_months_and_range_listing(tmp_path):
    (tmp_path / "ETHUSDT-1m-2024-09.csv").write_text("x", encoding="utf-8")
    (tmp_path / "ETHUSDT-1m-2024-12.csv").write_text("x", encoding="utf-8")
    (tmp_path / "notes.csv").write_text("x", encoding="utf-8")

    assert missing_months(tmp_path, "ETHUSDT", "1m", (2024, 9), (2024, 10)) == [(2024, 10)]
    assert [p.name for p in csv_files_in_range(tmp_path, (2024, 9), (2024, 11))] == ["ETHUSDT-1m-2024-09.csv"]
    assert csv_files_in_range(tmp_path / "missing", (2024, 1), (2024, 2)) == []


def test_ensure_archives_downloads_only_missing_months(tmp_path, monkeypatch):
    csv_dir = kline_dir(tmp_path, "ETHUSDT", "1m")
    csv_dir.mkdir(parents=True)
    (csv_dir / "ETHUSDT-1m-2024-09.csv").write_text("cached", encoding="utf-8")

    response = MagicMock()
    response.content = _zip_bytes("ETHUSDT-1m-2024-10.csv")
    get = MagicMock(return_value=response)
    monkeypatch.setattr(klines_archive.requests, "get", get)

    files = ensure_archives("ETHUSDT", "1m", (2024, 9), (2024, 10), base=tmp_path)

    assert [p.name for p in files] == ["ETHUSDT-1m-2024-09.csv", "ETHUSDT-1m-2024-10.csv"]
    get.assert_called_once()
    assert get.call_args.args[0].endswith("ETHUSDT-1m-2024-10.zip")
    response.raise_for_status.assert_called_once()


def test_ensure_archives_propagates_http_errors(tmp_path, monkeypatch):
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("404 Not Found")
    monkeypatch.setattr(klines_archive.requests, "get", MagicMock(return_value=response))

    with pytest.raises(requests.HTTPError):
        ensure_archives("ETHUSDT", "1m", (2024, 9), (2024, 9), base=tmp_path)

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path

import pytest

from excel_dashboard.utils import format_brl, format_number_br, sha256_file, utcnow_iso


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1234.56, "1.234,56"),
        (1234.5, "1.234,5"),
        (150, "150"),
        (0, "0"),
        (-0.0001, "0"),
        (-9876543.21, "-9.876.543,21"),
        (0.1234, "0,123"),
    ],
)
def test_format_number_br(value: float, expected: str) -> None:
    assert format_number_br(value) == expected


def test_format_brl_prefixes_currency() -> None:
    assert format_brl(1234.56) == "R$ 1.234,56"


def test_sha256_file_matches_hashlib(tmp_path: Path) -> None:
    path = tmp_path / "data.csv"
    path.write_bytes(b"a,b\n1,2\n")

    assert sha256_file(path) == hashlib.sha256(b"a,b\n1,2\n").hexdigest()


def test_utcnow_iso_is_timezone_aware() -> None:
    assert datetime.fromisoformat(utcnow_iso()).tzinfo is not None

"""Shared helpers — pt-BR number formatting, hashing, timestamps."""

from __future__ import annotations

import hashlib
import math
from datetime import datetime, timezone
from pathlib import Path


def format_number_br(value: float, *, max_decimals: int = 3) -> str:
    """Format *value* the way pt-BR locales display numbers.

    Thousands are grouped with ``.``, the decimal mark is ``,`` and trailing
    zero decimals are dropped (``1234.5`` -> ``"1.234,5"``).
    """
    value = float(value)
    if not math.isfinite(value):
        return str(value)
    text = f"{value:,.{max_decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    if text == "-0":
        return "0"
    return text


def format_brl(value: float) -> str:
    """Return ``R$ <value>`` with pt-BR separators."""
    return f"R$ {format_number_br(value)}"


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

"""Column-mapping suggestions from spreadsheet headers."""

from __future__ import annotations

import re
from collections.abc import Iterable

from excel_dashboard.models import FIELD_ATTRS, ColumnMapping, resolve_field_name

# Ordered (field, patterns) table; first header matching any pattern wins.
FIELD_PATTERNS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("id", ("cnpj", "empresa", "cliente", "id")),
    ("date", ("data", "date", "competencia", "datavenda")),
    ("value", ("valor", "valor_total", "valortotal", "receita", "despesa", "amount")),
    ("category", ("categoria", "tipo", "descrição", "descricao", "categoria_despesa")),
    ("product", ("produto", "product", "item", "descricao")),
    ("quantity", ("quantidade", "quantity", "qty", "qtd")),
    ("unit_price", ("valor_unitario", "valorunitario", "unit_price", "preco")),
    ("stock", ("estoque", "stock", "estoqueatual")),
)

_COMPILED: dict[str, re.Pattern[str]] = {
    name: re.compile("|".join(patterns), re.IGNORECASE) for name, patterns in FIELD_PATTERNS
}


def match_field(field_name: str, header: object) -> bool:
    """Return True when *header* looks like a column for *field_name*."""
    return _COMPILED[resolve_field_name(field_name)].search(str(header)) is not None


def suggest_field(field_name: str, headers: Iterable[object]) -> str:
    for header in headers:
        if match_field(field_name, header):
            return str(header)
    return ""


def suggest_mapping(headers: Iterable[object]) -> ColumnMapping:
    """Guess a :class:`ColumnMapping` for *headers*.

    Never fails: fields with no matching header stay empty, and one header
    may be suggested for several fields.
    """
    headers = list(headers)
    return ColumnMapping(
        **{FIELD_ATTRS[name]: suggest_field(name, headers) for name, _patterns in FIELD_PATTERNS}
    )

from __future__ import annotations

import pytest

from excel_dashboard.mapping import FIELD_PATTERNS, match_field, suggest_mapping
from excel_dashboard.models import FIELD_ATTRS, ColumnMapping


def test_suggests_brazilian_sales_headers() -> None:
    headers = [
        "Empresa",
        "DataVenda",
        "Produto",
        "Categoria",
        "Quantidade",
        "Valor_Total",
        "Valor_Unitario",
        "Estoque",
    ]

    mapping = suggest_mapping(headers)

    assert mapping == ColumnMapping(
        id_col="Empresa",
        date_col="DataVenda",
        value_col="Valor_Total",
        category_col="Categoria",
        product_col="Produto",
        quantity_col="Quantidade",
        unit_price_col="Valor_Unitario",
        stock_col="Estoque",
    )


def test_matching_is_case_insensitive() -> None:
    mapping = suggest_mapping(["CNPJ", "DATE", "AMOUNT", "QTY", "STOCK"])

    assert mapping.id_col == "CNPJ"
    assert mapping.date_col == "DATE"
    assert mapping.value_col == "AMOUNT"
    assert mapping.quantity_col == "QTY"
    assert mapping.stock_col == "STOCK"


def test_first_matching_header_wins() -> None:
    mapping = suggest_mapping(["Valor_Unitario", "Valor_Total", "Data", "Cliente"])

    assert mapping.value_col == "Valor_Unitario"
    assert mapping.unit_price_col == "Valor_Unitario"
    assert mapping.id_col == "Cliente"


def test_one_header_can_fill_several_fields() -> None:
    mapping = suggest_mapping(["descricao"])

    assert mapping.category_col == "descricao"
    assert mapping.product_col == "descricao"


def test_no_match_leaves_fields_empty() -> None:
    mapping = suggest_mapping(["foo", "bar"])

    assert mapping == ColumnMapping()
    assert mapping.missing_required() == ["id", "date", "value"]


def test_empty_header_list() -> None:
    assert suggest_mapping([]) == ColumnMapping()


def test_suggestion_is_deterministic() -> None:
    headers = ["Cliente", "Competencia", "Receita", "Tipo"]

    assert suggest_mapping(headers) == suggest_mapping(list(headers))


def test_non_string_headers_are_stringified() -> None:
    mapping = suggest_mapping([2024, "Empresa"])

    assert mapping.id_col == "Empresa"
    assert mapping.date_col == ""


def test_pattern_table_covers_every_field_in_order() -> None:
    assert [name for name, _patterns in FIELD_PATTERNS] == list(FIELD_ATTRS)


@pytest.mark.parametrize(
    ("field_name", "header", "expected"),
    [
        ("date", "data_competencia", True),
        ("value", "Despesa", True),
        ("unit_price", "Preço", False),
        ("unit_price", "preco_medio", True),
        ("stock", "EstoqueAtual", True),
        ("company", "Empresa", True),
        ("quantity", "Valor", False),
    ],
)
def test_match_field(field_name: str, header: str, expected: bool) -> None:
    assert match_field(field_name, header) is expected


def test_match_field_rejects_unknown_field() -> None:
    with pytest.raises(ValueError, match="Unknown field"):
        match_field("colour", "Cor")

from decimal import Decimal

import pytest

from atelie.adapters.parsers import parse_decimal, parse_item_venda, parse_pares, parse_uso_insumo


def test_parse_decimal_com_virgula():
    assert parse_decimal("12,50") == Decimal("12.50")
    with pytest.raises(ValueError):
        parse_decimal("doze")


def test_parse_pares():
    assert parse_pares(["carretel=50", " cm = 100 "]) == {"carretel": Decimal("50"), "cm": Decimal("100")}
    assert parse_pares([]) == {}
    with pytest.raises(ValueError):
        parse_pares(["carretel"])
    with pytest.raises(ValueError):
        parse_pares(["=3"])


@pytest.mark.parametrize(
    "txt,esperado",
    [
        ("3:2.5:metro", {"insumo_id": 3, "quantidade": Decimal("2.5"), "unidade": "metro"}),
        ("3:2,5", {"insumo_id": 3, "quantidade": Decimal("2.5"), "unidade": None}),
        ("7:1:", {"insumo_id": 7, "quantidade": Decimal("1"), "unidade": None}),
    ],
)
def test_parse_uso_insumo(txt, esperado):
    assert parse_uso_insumo(txt) == esperado


@pytest.mark.parametrize("txt", ["3", "x:1", "1:2:3:4", "3:abc"])
def test_parse_uso_insumo_invalido(txt):
    with pytest.raises(ValueError):
        parse_uso_insumo(txt)


@pytest.mark.parametrize(
    "txt,margem,brinde",
    [
        ("4:3", None, False),
        ("4:1:45", Decimal("45"), False),
        ("4:1::brinde", None, True),
        ("4:1:30:b", Decimal("30"), True),
        ("4:1:30:nao", Decimal("30"), False),
    ],
)
def test_parse_item_venda(txt, margem, brinde):
    item = parse_item_venda(txt)
    assert item["produto_id"] == 4
    assert item["margem_simulada"] == margem
    assert item["eh_brinde"] is brinde


@pytest.mark.parametrize("txt", ["4", "4:1.5", "a:1", "4:1:2:3:4"])
def test_parse_item_venda_invalido(txt):
    with pytest.raises(ValueError):
        parse_item_venda(txt)

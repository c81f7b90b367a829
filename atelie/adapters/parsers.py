"""
Utilidades de parsing para os argumentos da linha de comando.

Este módulo interpreta os textos curtos digitados na CLI e os converte
nas estruturas aceitas pelos casos de uso:

- tabelas de conversão e custos adicionais ("carretel=50", "tag=0.30");
- itens de ficha técnica ("insumo_id:quantidade[:unidade]");
- itens de venda ("produto_id:quantidade[:margem][:brinde]").

Valores decimais aceitam vírgula ou ponto. Entradas malformadas geram
``ValueError`` com uma mensagem curta, que a CLI mostra ao usuário.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable

from atelie.domain.formulas import to_decimal

_BRINDE = {"b", "brinde", "gift", "1", "sim", "s", "true"}


def parse_decimal(txt: str) -> Decimal:
    """Ex.: "12,50" → Decimal("12.50")."""
    return to_decimal(txt)


def parse_pares(pares: Iterable[str]) -> Dict[str, Decimal]:
    """["carretel=50", "cm=100"] → {"carretel": Decimal("50"), "cm": Decimal("100")}."""
    out: Dict[str, Decimal] = {}
    for par in pares or []:
        chave, sep, valor = str(par).partition("=")
        if not sep or not chave.strip():
            raise ValueError(f"use chave=valor: {par!r}")
        out[chave.strip()] = to_decimal(valor)
    return out


def parse_uso_insumo(txt: str) -> Dict[str, object]:
    """"3:2.5:metro" → {"insumo_id": 3, "quantidade": Decimal("2.5"), "unidade": "metro"}."""
    partes = [p.strip() for p in str(txt).split(":")]
    if len(partes) not in (2, 3) or not partes[0].isdigit():
        raise ValueError(f"use insumo_id:quantidade[:unidade]: {txt!r}")
    return {
        "insumo_id": int(partes[0]),
        "quantidade": to_decimal(partes[1]),
        "unidade": partes[2] if len(partes) == 3 and partes[2] else None,
    }


def parse_item_venda(txt: str) -> Dict[str, object]:
    """Interpreta "produto_id:quantidade[:margem][:brinde]".

    Exemplos:
        "4:3"          → 3 unidades do produto 4 ao preço cadastrado
        "4:1:45"       → margem simulada de 45%
        "4:1::brinde"  → item de brinde sem margem simulada
    """
    partes = [p.strip() for p in str(txt).split(":")]
    if not 2 <= len(partes) <= 4 or not partes[0].isdigit():
        raise ValueError(f"use produto_id:quantidade[:margem][:brinde]: {txt!r}")
    if not partes[1].isdigit():
        raise ValueError(f"quantidade deve ser inteira: {txt!r}")
    margem = partes[2] if len(partes) >= 3 and partes[2] else None
    brinde = len(partes) == 4 and partes[3].lower() in _BRINDE
    return {
        "produto_id": int(partes[0]),
        "quantidade": int(partes[1]),
        "margem_simulada": to_decimal(margem) if margem is not None else None,
        "eh_brinde": brinde,
    }

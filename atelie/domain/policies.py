"""
Políticas de negócio do ateliê.

Este módulo reúne as regras de classificação usadas pelos casos de uso:
faixa de desconto progressivo por quantidade, alerta de estoque baixo,
situação da previsão de esgotamento e a máquina de estados da venda.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

# Status da venda
RASCUNHO = "rascunho"
FINALIZADA = "finalizada"
CANCELADA = "cancelada"
STATUS_VENDA = (RASCUNHO, FINALIZADA, CANCELADA)

# Situações da previsão de esgotamento
SEM_CONSUMO = "sem_consumo"
CRITICO = "critico"
ALERTA = "alerta"
ATENCAO = "atencao"
OK = "ok"
SITUACOES = (CRITICO, ALERTA, ATENCAO, OK, SEM_CONSUMO)


def percentual_desconto(quantidade_total: int) -> Decimal:
    """Percentual do desconto progressivo.

    Regras:
        - ``quantidade_total >= 3`` → 10%
        - ``quantidade_total == 2`` → 5%
        - caso contrário            → 0%
    """
    if quantidade_total >= 3:
        return Decimal("10")
    if quantidade_total == 2:
        return Decimal("5")
    return Decimal("0")


def estoque_baixo(estoque_atual: Any, estoque_minimo: Any) -> bool:
    """``True`` quando o estoque atual está no mínimo ou abaixo dele."""
    return Decimal(str(estoque_atual)) <= Decimal(str(estoque_minimo))


def situacao_estoque(dias_para_esgotar: Optional[int]) -> str:
    """Classifica a previsão de esgotamento de um insumo.

    Args:
        dias_para_esgotar: Dias até zerar o estoque, ou ``None`` quando
            não houve consumo no período analisado.

    Returns:
        ``'sem_consumo'``, ``'critico'`` (<= 7), ``'alerta'`` (<= 15),
        ``'atencao'`` (<= 30) ou ``'ok'``.
    """
    if dias_para_esgotar is None:
        return SEM_CONSUMO
    if dias_para_esgotar <= 7:
        return CRITICO
    if dias_para_esgotar <= 15:
        return ALERTA
    if dias_para_esgotar <= 30:
        return ATENCAO
    return OK


def pode_transicionar(atual: str, destino: str) -> bool:
    """Máquina de estados da venda.

    rascunho → finalizada, rascunho → cancelada, finalizada → cancelada.
    Nada sai de cancelada.
    """
    if atual == RASCUNHO:
        return destino in (FINALIZADA, CANCELADA)
    if atual == FINALIZADA:
        return destino == CANCELADA
    return False


def pode_editar(status: str) -> bool:
    """Somente vendas em rascunho têm os itens substituídos."""
    return status == RASCUNHO

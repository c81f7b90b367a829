"""
Tipos de erro do domínio.

Cada classe corresponde a um tipo semântico de falha. A CLI traduz
qualquer ``AtelieError`` em mensagem amigável e código de saída 1.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class AtelieError(Exception):
    """Base de todos os erros de negócio do ateliê."""


class NotFound(AtelieError):
    """Entidade não encontrada pelo id informado."""

    def __init__(self, entidade: str, ident) -> None:
        self.entidade = entidade
        self.ident = ident
        super().__init__(f"{entidade} não encontrado(a): {ident}")


class ValidationFailed(AtelieError, ValueError):
    """Dados inválidos: campo obrigatório ausente, fora da faixa ou duplicado."""

    def __init__(self, message: str, details: Optional[Iterable[str]] = None) -> None:
        self.details: List[str] = list(details or [])
        if self.details:
            message = f"{message}: {'; '.join(self.details)}"
        super().__init__(message)


class InvalidStateTransition(AtelieError):
    """Transição de status de venda não permitida."""

    def __init__(self, atual: str, destino: str) -> None:
        self.atual = atual
        self.destino = destino
        super().__init__(f"Transição inválida: {atual} -> {destino}")


class InsufficientStock(AtelieError):
    """Saída deixaria o estoque negativo."""

    def __init__(self, material: str, atual, solicitado) -> None:
        self.material = material
        self.atual = atual
        self.solicitado = solicitado
        super().__init__(
            f"Estoque insuficiente para saída de {material}: atual={atual}, solicitado={solicitado}"
        )


class UnresolvedUnitConversion(AtelieError):
    """Unidade usada sem fator de conversão válido para a unidade base."""

    def __init__(self, material: str, unidade: str, unidade_base: str) -> None:
        self.material = material
        self.unidade = unidade
        self.unidade_base = unidade_base
        super().__init__(
            f"Sem conversão de '{unidade}' para '{unidade_base}' no insumo {material}"
        )


class TransactionAborted(AtelieError):
    """Operação com várias escritas desfeita por completo."""

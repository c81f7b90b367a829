# atelie/domain/models.py
"""
Modelos (dataclasses) do domínio.

Observação importante:
- Os repositórios aceitam e devolvem dicionários; as dataclasses servem
  para montar cadastros com os valores padrão e para tipagem. Os casos
  de uso aceitam tanto o dicionário quanto a dataclass (via ``asdict``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from atelie.config import DEFAULTS

# Chaves aceitas no mapa de custos adicionais do produto
CUSTOS_ADICIONAIS = ("sacoPlastico", "caixaSacola", "tag", "adesivoLogo", "brinde", "outros")


@dataclass
class Material:
    """Insumo (matéria-prima) com estoque e tabela de conversões."""
    nome: str
    custo_unitario: Decimal
    categoria: str = DEFAULTS.categoria
    unidade: str = DEFAULTS.unidade_base
    estoque_atual: Decimal = Decimal("0")
    estoque_minimo: Decimal = Decimal(DEFAULTS.estoque_minimo)
    variacao: Optional[str] = None          # letra única A-Z
    conversoes: Dict[str, Decimal] = field(default_factory=dict)  # 1 base = F alternativas
    ativo: bool = True
    fornecedor: Optional[str] = None
    observacoes: Optional[str] = None
    imagem_url: Optional[str] = None


@dataclass
class UsoInsumo:
    """Linha da ficha técnica: quantidade de um insumo em qualquer unidade."""
    insumo_id: int
    quantidade: Decimal
    unidade: Optional[str] = None           # None = unidade base do insumo


@dataclass
class Produto:
    """Produto acabado com ficha técnica e campos de custo derivados."""
    nome: str
    descricao: Optional[str] = None
    categoria: str = DEFAULTS.categoria
    mao_de_obra_horas: Decimal = Decimal(DEFAULTS.mao_de_obra_horas)
    mao_de_obra_custo_hora: Decimal = Decimal(DEFAULTS.mao_de_obra_custo_hora)
    margem_lucro: Decimal = Decimal(DEFAULTS.margem_lucro)
    insumos: List[UsoInsumo] = field(default_factory=list)
    custos_adicionais: Dict[str, Decimal] = field(default_factory=dict)
    ativo: bool = True
    imagem_url: Optional[str] = None


@dataclass
class ItemVendaInput:
    """Item informado ao simular, criar ou editar uma venda."""
    produto_id: int
    quantidade: int = 1
    margem_simulada: Optional[Decimal] = None
    eh_brinde: bool = False
    observacoes: Optional[str] = None

# atelie/config.py
"""
Configurações globais e valores padrão do ateliê.
"""

import os
from dataclasses import dataclass, field
from typing import List


# Caminho padrão do banco de dados SQLite
DB_PATH = os.path.join(os.getcwd(), "atelie.db")

# Pasta padrão dos backups do banco
BACKUP_DIR = os.path.join(os.getcwd(), "backups")


@dataclass
class DefaultConfig:
    """Valores padrão de cadastro, precificação, relatórios e backup."""
    categoria: str = "Geral"
    unidade_base: str = "unidade"
    estoque_minimo: str = "1"
    mao_de_obra_horas: str = "0.5"
    mao_de_obra_custo_hora: str = "6.90"
    margem_lucro: str = "30"
    margens_simulacao: List[int] = field(default_factory=lambda: [20, 30, 40, 50, 60])
    dias_analise: int = 30
    limite_ranking: int = 10
    backup_prefixo: str = "atelie"
    backup_max_arquivos: int = 30
    backup_max_mb: int = 100
    backup_max_dias: int = 60
    backup_intervalo_horas: int = 24


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()

# atelie/infra/migrations.py
"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (material, produto, venda_cabecalho, venda_item)
V2: referência de imagem em material e produto

Valores monetários e quantidades ficam em TEXT decimal; colunas JSON
ficam em TEXT.
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Insumos (matéria-prima)
    """
    CREATE TABLE IF NOT EXISTS material (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nome TEXT NOT NULL,
        categoria TEXT NOT NULL DEFAULT 'Geral',
        custo_unitario TEXT NOT NULL,
        unidade TEXT NOT NULL DEFAULT 'unidade',
        estoque_atual TEXT NOT NULL DEFAULT '0',
        estoque_minimo TEXT NOT NULL DEFAULT '1',
        variacao TEXT,                      -- letra A-Z (opcional)
        conversoes TEXT NOT NULL DEFAULT '{}', -- JSON {unidade: fator}
        ativo INTEGER NOT NULL DEFAULT 1,
        fornecedor TEXT,
        observacoes TEXT,
        criado_em TEXT,
        atualizado_em TEXT
    );
    """,
    # Unicidade (nome, variacao); variação ausente conta como valor próprio
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_material_nome_variacao
        ON material (lower(nome), COALESCE(variacao, ''));
    """,
    # Produtos acabados (campos derivados gravados como cache)
    """
    CREATE TABLE IF NOT EXISTS produto (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nome TEXT NOT NULL UNIQUE,
        descricao TEXT,
        categoria TEXT NOT NULL DEFAULT 'Geral',
        mao_de_obra_horas TEXT NOT NULL DEFAULT '0.5',
        mao_de_obra_custo_hora TEXT NOT NULL DEFAULT '6.90',
        margem_lucro TEXT NOT NULL DEFAULT '30',
        insumos TEXT NOT NULL DEFAULT '[]',           -- JSON [{insumo_id, quantidade, unidade}]
        custos_adicionais TEXT NOT NULL DEFAULT '{}', -- JSON {chave: valor}
        custo_insumos TEXT NOT NULL DEFAULT '0.00',
        custo_mao_de_obra TEXT NOT NULL DEFAULT '0.00',
        custo_adicional TEXT NOT NULL DEFAULT '0.00',
        custo_total TEXT NOT NULL DEFAULT '0.00',
        preco_venda TEXT NOT NULL DEFAULT '0.00',
        ativo INTEGER NOT NULL DEFAULT 1,
        criado_em TEXT,
        atualizado_em TEXT
    );
    """,
    # Cabeçalho da venda
    """
    CREATE TABLE IF NOT EXISTS venda_cabecalho (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        codigo TEXT NOT NULL UNIQUE,
        data TEXT NOT NULL,
        subtotal TEXT NOT NULL DEFAULT '0.00',
        desconto_percentual TEXT NOT NULL DEFAULT '0',
        desconto_valor TEXT NOT NULL DEFAULT '0.00',
        total TEXT NOT NULL DEFAULT '0.00',
        custo_total TEXT NOT NULL DEFAULT '0.00',
        lucro_total TEXT NOT NULL DEFAULT '0.00',
        quantidade_total INTEGER NOT NULL DEFAULT 0,
        cliente TEXT,
        observacoes TEXT,
        status TEXT NOT NULL DEFAULT 'rascunho'
            CHECK (status IN ('rascunho', 'finalizada', 'cancelada')),
        criado_em TEXT,
        atualizado_em TEXT
    );
    """,
    # Itens da venda (produto_id é referência fraca: sem FK)
    """
    CREATE TABLE IF NOT EXISTS venda_item (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        venda_id INTEGER NOT NULL,
        produto_id INTEGER,
        produto_nome TEXT NOT NULL,
        quantidade INTEGER NOT NULL CHECK (quantidade >= 1),
        preco_unitario_original TEXT NOT NULL,
        margem_simulada TEXT,
        preco_unitario_final TEXT NOT NULL,
        valor_total TEXT NOT NULL,
        custo_unitario TEXT NOT NULL,
        custo_total TEXT NOT NULL,
        lucro TEXT NOT NULL,
        eh_brinde INTEGER NOT NULL DEFAULT 0,
        observacoes TEXT,
        insumos_snapshot TEXT NOT NULL DEFAULT '[]',  -- JSON (histórico)
        FOREIGN KEY (venda_id) REFERENCES venda_cabecalho(id) ON DELETE CASCADE
    );
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    _ensure_column(conn, "material", "imagem_url", "imagem_url TEXT")
    _ensure_column(conn, "produto", "imagem_url", "imagem_url TEXT")


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2

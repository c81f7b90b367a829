"""
Criação de views auxiliares para consultas frequentes.

Views criadas:
- vw_material_estoque:   insumos com valor em estoque e flag de estoque baixo.
- vw_vendas_finalizadas: cabeçalhos finalizados com ano-mês da venda.

Obs.:
- As views usam CAST para REAL e alimentam as telas de estoque e de
  vendas finalizadas da TUI; os relatórios somam em Decimal a partir das
  tabelas.
- Um conjunto de índices úteis também é criado, caso não existam.
"""

from __future__ import annotations

from .db import connect


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        c.executescript(
            """
            DROP VIEW IF EXISTS vw_material_estoque;
            CREATE VIEW vw_material_estoque AS
            SELECT
                id,
                nome,
                variacao,
                categoria,
                unidade,
                CAST(estoque_atual AS REAL)  AS estoque_atual,
                CAST(estoque_minimo AS REAL) AS estoque_minimo,
                ROUND(CAST(estoque_atual AS REAL) * CAST(custo_unitario AS REAL), 2) AS valor_estoque,
                CASE WHEN CAST(estoque_atual AS REAL) <= CAST(estoque_minimo AS REAL)
                     THEN 1 ELSE 0 END AS estoque_baixo
            FROM material
            WHERE ativo = 1;

            DROP VIEW IF EXISTS vw_vendas_finalizadas;
            CREATE VIEW vw_vendas_finalizadas AS
            SELECT
                id,
                codigo,
                date(data)            AS data,
                strftime('%Y-%m', data) AS ano_mes,
                cliente,
                quantidade_total,
                CAST(total AS REAL)       AS total,
                CAST(lucro_total AS REAL) AS lucro_total
            FROM venda_cabecalho
            WHERE status = 'finalizada';
            """
        )

        c.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_material_categoria ON material(categoria);
            CREATE INDEX IF NOT EXISTS idx_produto_categoria  ON produto(categoria);
            CREATE INDEX IF NOT EXISTS idx_venda_data         ON venda_cabecalho(data);
            CREATE INDEX IF NOT EXISTS idx_venda_status       ON venda_cabecalho(status);
            CREATE INDEX IF NOT EXISTS idx_item_venda         ON venda_item(venda_id);
            CREATE INDEX IF NOT EXISTS idx_item_produto       ON venda_item(produto_id);
            """
        )

# atelie/usecases/exportar.py
"""
Exportação das vendas para planilha XLSX (pandas + openpyxl).

Planilhas geradas:
- "Vendas Detalhadas": uma linha por venda, produtos agregados em texto
- "Resumo": período, quantidade de vendas e itens, faturamento, lucro e margem

O arquivo se chama vendas_<inicio>_ate_<fim>.xlsx (AAAAMMDD; "inicio" e
"fim" quando a data não é informada).
"""

from __future__ import annotations

import os
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd

from atelie.config import DB_PATH
from atelie.domain.formulas import ZERO, arredondar, margem_real
from atelie.domain.policies import FINALIZADA
from atelie.infra.repositories import VendaRepo
from atelie.infra.logger import log_file_operation, log_system_event
from atelie.usecases.relatorios import validar_periodo

COLUNAS_VENDAS = [
    "Data da Venda", "Código da Venda", "Cliente", "Produtos",
    "Qnt Produtos", "Total Final", "Lucro Total",
]
LARGURAS_VENDAS = [12, 18, 20, 40, 12, 12, 12]


def _moeda(valor: Decimal) -> str:
    return "R$ " + f"{arredondar(valor):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def _data_br(iso: str) -> str:
    return date.fromisoformat(iso[:10]).strftime("%d/%m/%Y")


def nome_arquivo(data_inicio: Optional[str], data_fim: Optional[str]) -> str:
    inicio = data_inicio.replace("-", "") if data_inicio else "inicio"
    fim = data_fim.replace("-", "") if data_fim else "fim"
    return f"vendas_{inicio}_ate_{fim}.xlsx"


def _linhas(vendas: List[Dict[str, Any]], itens: Dict[int, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    out = []
    for v in vendas:
        produtos = ", ".join(f"{i['produto_nome']} ({i['quantidade']}x)" for i in itens.get(v["id"], []))
        out.append({
            "Data da Venda": _data_br(v["data"]),
            "Código da Venda": v["codigo"],
            "Cliente": v["cliente"] or "Não informado",
            "Produtos": produtos,
            "Qnt Produtos": sum(i["quantidade"] for i in itens.get(v["id"], [])),
            "Total Final": _moeda(v["total"]),
            "Lucro Total": _moeda(v["lucro_total"]),
        })
    return out


def _resumo(vendas: List[Dict[str, Any]], qtd_itens: int, data_inicio, data_fim) -> List[Dict[str, Any]]:
    faturamento = sum((v["total"] for v in vendas), ZERO)
    lucro = sum((v["lucro_total"] for v in vendas), ZERO)
    periodo = f"{data_inicio or 'início'} até {data_fim or 'hoje'}"
    return [
        {"Período": "Informação", "Valor": periodo},
        {"Período": "", "Valor": ""},
        {"Período": "Total de Vendas", "Valor": len(vendas)},
        {"Período": "Total de Produtos Vendidos", "Valor": qtd_itens},
        {"Período": "Faturamento Total", "Valor": _moeda(faturamento)},
        {"Período": "Lucro Total", "Valor": _moeda(lucro)},
        {"Período": "Margem de Lucro", "Valor": f"{margem_real(faturamento, faturamento - lucro)}%".replace(".", ",")},
    ]


def exportar_vendas_excel(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    destino: str = ".",
    status: Optional[str] = FINALIZADA,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Gera a planilha de vendas do período na pasta ``destino``.

    Returns:
        ``{"path", "filename", "total_registros"}``.

    Raises:
        ValidationFailed: data inicial posterior à final ou data malformada.
    """
    inicio, fim = validar_periodo(data_inicio, data_fim)
    log_system_event("exportar_vendas_start", {"data_inicio": inicio, "data_fim": fim})
    try:
        repo = VendaRepo(db_path)
        vendas, _ = repo.list(status, inicio, fim)
        itens = repo.items_by_venda(v["id"] for v in vendas)
        linhas = _linhas(vendas, itens)
        qtd_itens = sum(l["Qnt Produtos"] for l in linhas)

        os.makedirs(destino, exist_ok=True)
        filename = nome_arquivo(inicio, fim)
        path = os.path.join(destino, filename)

        df_vendas = pd.DataFrame(linhas, columns=COLUNAS_VENDAS)
        df_resumo = pd.DataFrame(_resumo(vendas, qtd_itens, inicio, fim), columns=["Período", "Valor"])
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df_vendas.to_excel(writer, sheet_name="Vendas Detalhadas", index=False)
            df_resumo.to_excel(writer, sheet_name="Resumo", index=False)
            ws = writer.sheets["Vendas Detalhadas"]
            for col, largura in zip("ABCDEFG", LARGURAS_VENDAS):
                ws.column_dimensions[col].width = largura
            ws = writer.sheets["Resumo"]
            ws.column_dimensions["A"].width = 28
            ws.column_dimensions["B"].width = 24

        log_file_operation("export", path, rows_processed=len(linhas))
        return {"path": path, "filename": filename, "total_registros": len(linhas)}
    except Exception as e:
        log_system_event("exportar_vendas_error", {"error": str(e)}, level="error")
        raise

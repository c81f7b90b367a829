"""
UC: Vendas (fechamento com desconto progressivo e ciclo de vida).

- simular_venda(): prévia dos itens e totais, sem gravar
- criar_venda(): grava cabeçalho (rascunho) e itens numa única transação
- atualizar_venda(): só rascunho; recria os itens com custos atuais
- finalizar_venda / cancelar_venda / excluir_venda
- buscar_venda / listar_vendas

Obs.:
- Vendas não movimentam o estoque de insumos; cada item guarda apenas
  o registro histórico (insumos_snapshot) do produto no momento da venda.
- Produto inexistente em qualquer item aborta a operação inteira.
"""

from __future__ import annotations

import random
import sqlite3
from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from atelie.config import DB_PATH
from atelie.domain.errors import InvalidStateTransition, NotFound, ValidationFailed
from atelie.domain.formulas import (
    arredondar, calcular_custos_produto, calcular_item_venda, calcular_totais_venda, margem_real, to_decimal,
)
from atelie.domain.policies import CANCELADA, FINALIZADA, RASCUNHO, STATUS_VENDA, pode_editar, pode_transicionar
from atelie.infra.clock import SYSTEM_CLOCK, SystemClock
from atelie.infra.db import connect
from atelie.infra.repositories import MaterialRepo, ProdutoRepo, VendaRepo
from atelie.infra.logger import (
    log_transaction, log_venda, log_database_operation, log_system_event
)
from atelie.usecases.produtos import checar_ficha_tecnica, snapshot_insumos

CAMPOS_CABECALHO = (
    "subtotal", "desconto_percentual", "desconto_valor", "total",
    "custo_total", "lucro_total", "quantidade_total",
)
_TENTATIVAS_CODIGO = 5


# ----------------------
# util
# ----------------------

def _normalizar_itens(itens: Iterable[Any]) -> List[Dict[str, Any]]:
    """Valida a lista de itens informada; aceita dicts ou ItemVendaInput."""
    itens = list(itens or [])
    if not itens:
        raise ValidationFailed("Venda sem itens", ["informe ao menos um item"])
    erros: List[str] = []
    out: List[Dict[str, Any]] = []
    for i, item in enumerate(itens, start=1):
        if is_dataclass(item):
            item = asdict(item)
        if not isinstance(item, Mapping):
            erros.append(f"item #{i}: formato inválido")
            continue
        try:
            produto_id = int(item.get("produto_id"))
        except (TypeError, ValueError):
            erros.append(f"item #{i}: produto_id inválido")
            continue
        qtd = item.get("quantidade", 1)
        if isinstance(qtd, bool) or not isinstance(qtd, int):
            try:
                qtd = int(str(qtd).strip())
            except ValueError:
                erros.append(f"item #{i}: quantidade deve ser inteira")
                continue
        if qtd < 1:
            erros.append(f"item #{i}: quantidade deve ser >= 1")
            continue
        margem = item.get("margem_simulada")
        if margem is not None and margem != "":
            try:
                margem = to_decimal(margem)
            except ValueError:
                erros.append(f"item #{i}: margem_simulada inválida")
                continue
            if not 0 <= margem <= 1000:
                erros.append(f"item #{i}: margem_simulada deve estar entre 0 e 1000")
                continue
        else:
            margem = None
        out.append({
            "produto_id": produto_id,
            "quantidade": qtd,
            "margem_simulada": margem,
            "eh_brinde": bool(item.get("eh_brinde")),
            "observacoes": (str(item.get("observacoes")).strip() or None) if item.get("observacoes") else None,
        })
    if erros:
        raise ValidationFailed("Itens inválidos", erros)
    return out


def _validar_data(data: Optional[str], clock: SystemClock) -> str:
    if not data:
        return clock.today().isoformat()
    try:
        return date.fromisoformat(str(data).strip()[:10]).isoformat()
    except ValueError:
        raise ValidationFailed("Data inválida", [f"use AAAA-MM-DD: {data}"]) from None


def _produtos_dos_itens(itens: List[Dict[str, Any]], conn: sqlite3.Connection, db_path: str) -> Dict[int, Dict[str, Any]]:
    produtos = ProdutoRepo(db_path).get_many((it["produto_id"] for it in itens), conn)
    for it in itens:
        if it["produto_id"] not in produtos:
            raise NotFound("Produto", it["produto_id"])
    for p in produtos.values():
        checar_ficha_tecnica(p)
    return produtos


def _materiais_dos_produtos(produtos: Mapping[int, Mapping[str, Any]], conn: sqlite3.Connection, db_path: str):
    ids = [u["insumo_id"] for p in produtos.values() for u in p["insumos"]]
    return MaterialRepo(db_path).get_many(ids, conn)


def _montar_itens(itens, produtos, materiais) -> List[Dict[str, Any]]:
    out = []
    for it in itens:
        produto = produtos[it["produto_id"]]
        linha = calcular_item_venda(produto, it["quantidade"], it["margem_simulada"], it["eh_brinde"])
        linha["observacoes"] = it["observacoes"]
        linha["insumos_snapshot"] = snapshot_insumos(produto, materiais)
        out.append(linha)
    return out


def _itens_de_snapshot(itens: List[Dict[str, Any]], conn: sqlite3.Connection, db_path: str) -> List[Dict[str, Any]]:
    """Itens com nome, preço e custo gravados no produto neste momento."""
    produtos = _produtos_dos_itens(itens, conn, db_path)
    return _montar_itens(itens, produtos, _materiais_dos_produtos(produtos, conn, db_path))


def _itens_com_custos_atuais(itens: List[Dict[str, Any]], conn: sqlite3.Connection, db_path: str) -> List[Dict[str, Any]]:
    """Itens com custo e preço recalculados a partir dos custos atuais dos insumos."""
    produtos = _produtos_dos_itens(itens, conn, db_path)
    materiais = _materiais_dos_produtos(produtos, conn, db_path)
    atualizados = {}
    for pid, p in produtos.items():
        calc = calcular_custos_produto(
            p["insumos"], materiais,
            p["mao_de_obra_horas"], p["mao_de_obra_custo_hora"], p["margem_lucro"],
            p["custos_adicionais"],
        )
        atualizados[pid] = dict(p, custo_total=calc["custo_total"], preco_venda=calc["preco_venda"])
    return _montar_itens(itens, atualizados, materiais)


def _cabecalho(linhas: List[Dict[str, Any]]) -> Dict[str, Any]:
    totais = calcular_totais_venda(linhas)
    return {k: totais[k] for k in CAMPOS_CABECALHO}


def _gerar_codigo(conn: sqlite3.Connection, clock: SystemClock) -> str:
    """V + AAAAMMDDHHMMSS + 3 dígitos aleatórios, único na tabela."""
    base = "V" + clock.now().strftime("%Y%m%d%H%M%S")
    for _ in range(_TENTATIVAS_CODIGO):
        codigo = f"{base}{random.randint(0, 999):03d}"
        if conn.execute("SELECT 1 FROM venda_cabecalho WHERE codigo = ?", (codigo,)).fetchone() is None:
            return codigo
    raise ValidationFailed("Código de venda", ["não foi possível gerar um código único"])


def _itens_existentes(linhas: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "produto_id": l["produto_id"],
            "quantidade": l["quantidade"],
            "margem_simulada": l["margem_simulada"],
            "eh_brinde": l["eh_brinde"],
            "observacoes": l["observacoes"],
        }
        for l in linhas
    ]


def _com_totais(venda: Dict[str, Any], itens: List[Dict[str, Any]]) -> Dict[str, Any]:
    venda["itens"] = itens
    venda["margem_real"] = margem_real(venda["total"], venda["custo_total"])
    return venda


# ----------------------
# operações
# ----------------------

def simular_venda(itens: Iterable[Any], db_path: str = DB_PATH) -> Dict[str, Any]:
    """Prévia de itens e totais (desconto incluído) sem gravar nada."""
    normalizados = _normalizar_itens(itens)
    with connect(db_path) as c:
        linhas = _itens_de_snapshot(normalizados, c, db_path)
    for l in linhas:
        l.pop("insumos_snapshot")
    return {"itens": linhas, "totais": calcular_totais_venda(linhas)}


def criar_venda(
    itens: Iterable[Any],
    cliente: Optional[str] = None,
    observacoes: Optional[str] = None,
    data: Optional[str] = None,
    db_path: str = DB_PATH,
    clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Cria uma venda em rascunho.

    Cabeçalho e itens são gravados na mesma transação; qualquer falha
    (produto inexistente, quantidade inválida) desfaz tudo.

    Raises:
        ValidationFailed: lista vazia ou item inválido.
        NotFound: algum produto não existe.
    """
    log_system_event("criar_venda_start", {"cliente": cliente})
    try:
        normalizados = _normalizar_itens(itens)
        data_venda = _validar_data(data, clock)
        agora = clock.now().isoformat(timespec="seconds")
        repo = VendaRepo(db_path)
        with connect(db_path) as c:
            linhas = _itens_de_snapshot(normalizados, c, db_path)
            header = _cabecalho(linhas)
            header.update(
                codigo=_gerar_codigo(c, clock),
                data=data_venda,
                cliente=(cliente or "").strip() or None,
                observacoes=(observacoes or "").strip() or None,
                status=RASCUNHO,
                criado_em=agora,
                atualizado_em=agora,
            )
            venda_id = repo.insert_with_items(header, linhas, conn=c)
        log_database_operation("venda_cabecalho", "INSERT", 1, id=venda_id)
        log_database_operation("venda_item", "INSERT_MANY", len(linhas), venda_id=venda_id)
        log_venda("criar", venda_id, codigo=header["codigo"], total=str(header["total"]),
                  quantidade_total=header["quantidade_total"])
        log_transaction("criar_venda", {"itens": len(linhas)}, result={"id": venda_id, "codigo": header["codigo"]})
        return buscar_venda(venda_id, db_path)
    except Exception as e:
        log_transaction("criar_venda", {"cliente": cliente}, error=str(e))
        log_system_event("criar_venda_error", {"error": str(e)}, level="error")
        raise


def atualizar_venda(
    venda_id: int,
    itens: Optional[Iterable[Any]] = None,
    cliente: Optional[str] = None,
    observacoes: Optional[str] = None,
    data: Optional[str] = None,
    db_path: str = DB_PATH,
    clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Edita uma venda em rascunho.

    Os itens são apagados e recriados com os custos atuais dos produtos
    (sem ``itens`` os itens existentes são reaproveitados) e o cabeçalho
    é recalculado. Vendas finalizadas ou canceladas não mudam.
    """
    try:
        repo = VendaRepo(db_path)
        with connect(db_path) as c:
            venda = repo.get(venda_id, conn=c)
            if venda is None:
                raise NotFound("Venda", venda_id)
            if not pode_editar(venda["status"]):
                raise InvalidStateTransition(venda["status"], "edicao")
            entrada = itens if itens is not None else _itens_existentes(repo.items(venda_id, conn=c))
            normalizados = _normalizar_itens(entrada)
            linhas = _itens_com_custos_atuais(normalizados, c, db_path)
            campos = _cabecalho(linhas)
            if cliente is not None:
                campos["cliente"] = cliente.strip() or None
            if observacoes is not None:
                campos["observacoes"] = observacoes.strip() or None
            if data is not None:
                campos["data"] = _validar_data(data, clock)
            campos["atualizado_em"] = clock.now().isoformat(timespec="seconds")
            repo.replace_items(venda_id, campos, linhas, conn=c)
        log_database_operation("venda_item", "REPLACE", len(linhas), venda_id=venda_id)
        log_venda("editar", venda_id, total=str(campos["total"]))
        log_transaction("atualizar_venda", {"id": venda_id}, result="success")
        return buscar_venda(venda_id, db_path)
    except Exception as e:
        log_transaction("atualizar_venda", {"id": venda_id}, error=str(e))
        raise


def _transicionar(venda_id: int, destino: str, db_path: str, clock: SystemClock, motivo: Optional[str] = None) -> Dict[str, Any]:
    repo = VendaRepo(db_path)
    with connect(db_path) as c:
        venda = repo.get(venda_id, conn=c)
        if venda is None:
            raise NotFound("Venda", venda_id)
        if not pode_transicionar(venda["status"], destino):
            raise InvalidStateTransition(venda["status"], destino)
        campos: Dict[str, Any] = {
            "status": destino,
            "atualizado_em": clock.now().isoformat(timespec="seconds"),
        }
        if motivo:
            nota = f"Cancelada: {motivo.strip()}"
            campos["observacoes"] = f"{venda['observacoes']}\n{nota}" if venda["observacoes"] else nota
        repo.update(venda_id, campos, conn=c)
    log_venda(destino, venda_id, anterior=venda["status"], motivo=motivo)
    return buscar_venda(venda_id, db_path)


def finalizar_venda(venda_id: int, db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK) -> Dict[str, Any]:
    """rascunho → finalizada."""
    try:
        out = _transicionar(venda_id, FINALIZADA, db_path, clock)
        log_transaction("finalizar_venda", {"id": venda_id}, result="success")
        return out
    except Exception as e:
        log_transaction("finalizar_venda", {"id": venda_id}, error=str(e))
        raise


def cancelar_venda(
    venda_id: int, motivo: Optional[str] = None, db_path: str = DB_PATH, clock: SystemClock = SYSTEM_CLOCK,
) -> Dict[str, Any]:
    """Cancela uma venda em rascunho ou finalizada; o motivo vai para as observações."""
    try:
        out = _transicionar(venda_id, CANCELADA, db_path, clock, motivo=motivo)
        log_transaction("cancelar_venda", {"id": venda_id, "motivo": motivo}, result="success")
        return out
    except Exception as e:
        log_transaction("cancelar_venda", {"id": venda_id}, error=str(e))
        raise


def excluir_venda(venda_id: int, db_path: str = DB_PATH) -> None:
    """Exclusão definitiva em qualquer status (itens em cascata)."""
    repo = VendaRepo(db_path)
    venda = repo.get(venda_id)
    if venda is None:
        raise NotFound("Venda", venda_id)
    n = repo.delete(venda_id)
    log_database_operation("venda_cabecalho", "DELETE", n, id=venda_id)
    log_venda("excluir", venda_id, codigo=venda["codigo"], status=venda["status"])


def buscar_venda(venda_id: int, db_path: str = DB_PATH) -> Dict[str, Any]:
    repo = VendaRepo(db_path)
    venda = repo.get(venda_id)
    if venda is None:
        raise NotFound("Venda", venda_id)
    return _com_totais(venda, repo.items(venda_id))


def listar_vendas(
    status: Optional[str] = None,
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    cliente: Optional[str] = None,
    pagina: int = 1,
    por_pagina: int = 20,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Lista vendas da mais recente para a mais antiga.

    Returns:
        ``{"vendas": [...], "stats": {...}, "paginacao": {...}}``; as
        estatísticas cobrem todas as vendas do filtro, não só a página.
    """
    if status is not None and status not in STATUS_VENDA:
        raise ValidationFailed("Status inválido", [f"use um de: {', '.join(STATUS_VENDA)}"])
    if pagina < 1 or por_pagina < 1:
        raise ValidationFailed("Paginação inválida", ["pagina e por_pagina devem ser >= 1"])

    vendas, total = VendaRepo(db_path).list(status, data_inicio, data_fim, cliente)
    zero = Decimal("0")
    faturamento = sum((v["total"] for v in vendas), zero)
    stats = {
        "total_vendas": total,
        "faturamento_total": faturamento,
        "lucro_total": sum((v["lucro_total"] for v in vendas), zero),
        "ticket_medio": arredondar(faturamento / total) if total else zero,
    }
    inicio = (pagina - 1) * por_pagina
    log_database_operation("venda_cabecalho", "SELECT_LIST", total, pagina=pagina)
    return {
        "vendas": vendas[inicio:inicio + por_pagina],
        "stats": stats,
        "paginacao": {
            "pagina": pagina,
            "por_pagina": por_pagina,
            "total": total,
            "total_paginas": (total + por_pagina - 1) // por_pagina,
        },
    }

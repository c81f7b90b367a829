# atelie/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Classes:
- MaterialRepo
- ProdutoRepo
- VendaRepo

Os métodos recebem e devolvem dicionários. Colunas TEXT decimais são
devolvidas como ``Decimal`` e colunas JSON já decodificadas; um JSON
corrompido é devolvido como ``None`` para que o chamador decida como
degradar. Métodos que participam de transações aceitam ``conn``.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import dumps, rows_to_dicts, session


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return dict(row)
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


def _dec(v: Any) -> Optional[Decimal]:
    if v is None:
        return None
    return Decimal(str(v))


def _load_json(text: Any, default: Any) -> Any:
    if text is None or text == "":
        return default
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _order_clause(ordenar: str, direcao: str, allowed: Iterable[str], numeric: Iterable[str]) -> str:
    col = ordenar if ordenar in allowed else "nome"
    dir_ = "DESC" if str(direcao).upper() == "DESC" else "ASC"
    if col in numeric:
        return f"ORDER BY CAST({col} AS REAL) {dir_}, id"
    return f"ORDER BY {col} COLLATE NOCASE {dir_}, id"


def _insert(conn: sqlite3.Connection, table: str, row: Dict[str, Any]) -> int:
    cols = list(row.keys())
    sql = f"INSERT INTO {table} ({','.join(cols)}) VALUES ({','.join(':' + k for k in cols)})"
    return conn.execute(sql, row).lastrowid


def _update(conn: sqlite3.Connection, table: str, ident: int, fields: Dict[str, Any]) -> int:
    if not fields:
        return 0
    sets = ", ".join(f"{k} = :{k}" for k in fields)
    params = dict(fields, _id=ident)
    return conn.execute(f"UPDATE {table} SET {sets} WHERE id = :_id", params).rowcount


# -------------------------
# Material
# -------------------------

MATERIAL_DECIMAIS = ("custo_unitario", "estoque_atual", "estoque_minimo")
MATERIAL_JSON = {"conversoes": {}}


def _material_in(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    if "conversoes" in out:
        out["conversoes"] = dumps(out["conversoes"] or {})
    if "ativo" in out:
        out["ativo"] = 1 if out["ativo"] else 0
    return out


def _material_out(row: Dict[str, Any]) -> Dict[str, Any]:
    for k in MATERIAL_DECIMAIS:
        row[k] = _dec(row.get(k))
    row["conversoes"] = _load_json(row.get("conversoes"), {})
    row["ativo"] = bool(row.get("ativo"))
    return row


class MaterialRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, row: Any, conn: Optional[sqlite3.Connection] = None) -> int:
        with session(self.db_path, conn) as c:
            return _insert(c, "material", _material_in(_as_dict(row)))

    def update(self, ident: int, fields: Dict[str, Any], conn: Optional[sqlite3.Connection] = None) -> int:
        with session(self.db_path, conn) as c:
            return _update(c, "material", ident, _material_in(fields))

    def delete(self, ident: int) -> int:
        with session(self.db_path) as c:
            return c.execute("DELETE FROM material WHERE id = ?", (ident,)).rowcount

    def get(self, ident: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute("SELECT * FROM material WHERE id = ?", (ident,)))
        return _material_out(rows[0]) if rows else None

    def get_many(self, ids: Iterable[int], conn: Optional[sqlite3.Connection] = None) -> Dict[int, Dict[str, Any]]:
        ids = sorted({int(i) for i in ids})
        if not ids:
            return {}
        marks = ",".join("?" for _ in ids)
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute(f"SELECT * FROM material WHERE id IN ({marks})", ids))
        return {r["id"]: _material_out(r) for r in rows}

    def find_by_nome_variacao(self, nome: str, variacao: Optional[str]) -> Optional[Dict[str, Any]]:
        with session(self.db_path) as c:
            rows = rows_to_dicts(c.execute(
                """SELECT * FROM material
                   WHERE lower(nome) = lower(?) AND COALESCE(variacao, '') = COALESCE(?, '')""",
                (nome, variacao),
            ))
        return _material_out(rows[0]) if rows else None

    def list(
        self,
        categoria: Optional[str] = None,
        ativo: Optional[bool] = True,
        busca: Optional[str] = None,
        ordenar: str = "nome",
        direcao: str = "ASC",
    ) -> List[Dict[str, Any]]:
        where, params = [], []
        if ativo is not None:
            where.append("ativo = ?")
            params.append(1 if ativo else 0)
        if categoria:
            where.append("categoria = ?")
            params.append(categoria)
        if busca and busca.strip():
            where.append("(nome LIKE ? OR variacao LIKE ?)")
            params += [f"%{busca.strip()}%"] * 2
        sql = "SELECT * FROM material"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " " + _order_clause(
            ordenar, direcao,
            ("nome", "categoria", "custo_unitario", "estoque_atual"),
            ("custo_unitario", "estoque_atual"),
        )
        with session(self.db_path) as c:
            rows = rows_to_dicts(c.execute(sql, params))
        return [_material_out(r) for r in rows]

    def categorias(self) -> List[str]:
        with session(self.db_path) as c:
            cur = c.execute("SELECT DISTINCT categoria FROM material WHERE ativo = 1 ORDER BY categoria")
            return [r[0] for r in cur.fetchall()]

    def compare_and_set_estoque(
        self, ident: int, esperado: Decimal, novo: Decimal, atualizado_em: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Grava ``novo`` somente se o estoque ainda for ``esperado``."""
        with session(self.db_path, conn) as c:
            cur = c.execute(
                """UPDATE material SET estoque_atual = ?, atualizado_em = ?
                   WHERE id = ? AND estoque_atual = ?""",
                (str(novo), atualizado_em, ident, str(esperado)),
            )
            return cur.rowcount == 1


# -------------------------
# Produto
# -------------------------

PRODUTO_DECIMAIS = (
    "mao_de_obra_horas", "mao_de_obra_custo_hora", "margem_lucro",
    "custo_insumos", "custo_mao_de_obra", "custo_adicional", "custo_total", "preco_venda",
)


def _produto_in(row: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(row)
    if "insumos" in out:
        out["insumos"] = dumps([_as_dict(u) for u in (out["insumos"] or [])])
    if "custos_adicionais" in out:
        out["custos_adicionais"] = dumps(out["custos_adicionais"] or {})
    if "ativo" in out:
        out["ativo"] = 1 if out["ativo"] else 0
    return out


def _produto_out(row: Dict[str, Any]) -> Dict[str, Any]:
    for k in PRODUTO_DECIMAIS:
        row[k] = _dec(row.get(k))
    row["insumos"] = _load_json(row.get("insumos"), [])
    row["custos_adicionais"] = _load_json(row.get("custos_adicionais"), {})
    row["ativo"] = bool(row.get("ativo"))
    return row


class ProdutoRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, row: Any, conn: Optional[sqlite3.Connection] = None) -> int:
        with session(self.db_path, conn) as c:
            return _insert(c, "produto", _produto_in(_as_dict(row)))

    def update(self, ident: int, fields: Dict[str, Any], conn: Optional[sqlite3.Connection] = None) -> int:
        with session(self.db_path, conn) as c:
            return _update(c, "produto", ident, _produto_in(fields))

    def delete(self, ident: int) -> int:
        with session(self.db_path) as c:
            return c.execute("DELETE FROM produto WHERE id = ?", (ident,)).rowcount

    def get(self, ident: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute("SELECT * FROM produto WHERE id = ?", (ident,)))
        return _produto_out(rows[0]) if rows else None

    def get_many(self, ids: Iterable[int], conn: Optional[sqlite3.Connection] = None) -> Dict[int, Dict[str, Any]]:
        ids = sorted({int(i) for i in ids})
        if not ids:
            return {}
        marks = ",".join("?" for _ in ids)
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute(f"SELECT * FROM produto WHERE id IN ({marks})", ids))
        return {r["id"]: _produto_out(r) for r in rows}

    def get_by_nome(self, nome: str) -> Optional[Dict[str, Any]]:
        with session(self.db_path) as c:
            rows = rows_to_dicts(c.execute("SELECT * FROM produto WHERE nome = ?", (nome,)))
        return _produto_out(rows[0]) if rows else None

    def list(
        self,
        categoria: Optional[str] = None,
        ativo: Optional[bool] = True,
        busca: Optional[str] = None,
        ordenar: str = "nome",
        direcao: str = "ASC",
    ) -> List[Dict[str, Any]]:
        where, params = [], []
        if ativo is not None:
            where.append("ativo = ?")
            params.append(1 if ativo else 0)
        if categoria:
            where.append("categoria = ?")
            params.append(categoria)
        if busca and busca.strip():
            where.append("(nome LIKE ? OR descricao LIKE ?)")
            params += [f"%{busca.strip()}%"] * 2
        sql = "SELECT * FROM produto"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " " + _order_clause(
            ordenar, direcao,
            ("nome", "categoria", "preco_venda", "custo_total"),
            ("preco_venda", "custo_total"),
        )
        with session(self.db_path) as c:
            rows = rows_to_dicts(c.execute(sql, params))
        return [_produto_out(r) for r in rows]

    def categorias(self) -> List[str]:
        with session(self.db_path) as c:
            cur = c.execute("SELECT DISTINCT categoria FROM produto WHERE ativo = 1 ORDER BY categoria")
            return [r[0] for r in cur.fetchall()]


# -------------------------
# Venda (cabeçalho + itens)
# -------------------------

VENDA_DECIMAIS = (
    "subtotal", "desconto_percentual", "desconto_valor", "total", "custo_total", "lucro_total",
)
ITEM_DECIMAIS = (
    "preco_unitario_original", "margem_simulada", "preco_unitario_final",
    "valor_total", "custo_unitario", "custo_total", "lucro",
)
ITEM_COLUNAS = (
    "produto_id", "produto_nome", "quantidade", "preco_unitario_original", "margem_simulada",
    "preco_unitario_final", "valor_total", "custo_unitario", "custo_total", "lucro",
    "eh_brinde", "observacoes", "insumos_snapshot",
)


def _venda_out(row: Dict[str, Any]) -> Dict[str, Any]:
    for k in VENDA_DECIMAIS:
        row[k] = _dec(row.get(k))
    return row


def _item_in(venda_id: int, item: Dict[str, Any]) -> Dict[str, Any]:
    out = {k: item.get(k) for k in ITEM_COLUNAS}
    out["venda_id"] = venda_id
    out["eh_brinde"] = 1 if item.get("eh_brinde") else 0
    out["insumos_snapshot"] = dumps(item.get("insumos_snapshot") or [])
    return out


def _item_out(row: Dict[str, Any]) -> Dict[str, Any]:
    for k in ITEM_DECIMAIS:
        row[k] = _dec(row.get(k))
    row["eh_brinde"] = bool(row.get("eh_brinde"))
    row["insumos_snapshot"] = _load_json(row.get("insumos_snapshot"), [])
    return row


class VendaRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert_with_items(
        self, header: Dict[str, Any], items: List[Dict[str, Any]], conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        with session(self.db_path, conn) as c:
            venda_id = _insert(c, "venda_cabecalho", dict(header))
            self._insert_items(c, venda_id, items)
            return venda_id

    def replace_items(
        self, venda_id: int, header_fields: Dict[str, Any], items: List[Dict[str, Any]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        with session(self.db_path, conn) as c:
            c.execute("DELETE FROM venda_item WHERE venda_id = ?", (venda_id,))
            self._insert_items(c, venda_id, items)
            _update(c, "venda_cabecalho", venda_id, header_fields)

    @staticmethod
    def _insert_items(c: sqlite3.Connection, venda_id: int, items: List[Dict[str, Any]]) -> None:
        rows = [_item_in(venda_id, it) for it in items]
        if not rows:
            return
        cols = list(rows[0].keys())
        c.executemany(
            f"INSERT INTO venda_item ({','.join(cols)}) VALUES ({','.join(':' + k for k in cols)})",
            rows,
        )

    def update(self, venda_id: int, fields: Dict[str, Any], conn: Optional[sqlite3.Connection] = None) -> int:
        with session(self.db_path, conn) as c:
            return _update(c, "venda_cabecalho", venda_id, fields)

    def delete(self, venda_id: int) -> int:
        with session(self.db_path) as c:
            return c.execute("DELETE FROM venda_cabecalho WHERE id = ?", (venda_id,)).rowcount

    def get(self, venda_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute("SELECT * FROM venda_cabecalho WHERE id = ?", (venda_id,)))
        return _venda_out(rows[0]) if rows else None

    def items(self, venda_id: int, conn: Optional[sqlite3.Connection] = None) -> List[Dict[str, Any]]:
        with session(self.db_path, conn) as c:
            rows = rows_to_dicts(c.execute(
                "SELECT * FROM venda_item WHERE venda_id = ? ORDER BY id", (venda_id,)
            ))
        return [_item_out(r) for r in rows]

    def items_by_venda(self, venda_ids: Iterable[int]) -> Dict[int, List[Dict[str, Any]]]:
        ids = sorted({int(i) for i in venda_ids})
        out: Dict[int, List[Dict[str, Any]]] = {i: [] for i in ids}
        if not ids:
            return out
        marks = ",".join("?" for _ in ids)
        with session(self.db_path) as c:
            rows = rows_to_dicts(c.execute(
                f"SELECT * FROM venda_item WHERE venda_id IN ({marks}) ORDER BY venda_id, id", ids
            ))
        for r in rows:
            out[r["venda_id"]].append(_item_out(r))
        return out

    def list(
        self,
        status: Optional[str] = None,
        data_inicio: Optional[str] = None,
        data_fim: Optional[str] = None,
        cliente: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        ascending: bool = False,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Lista cabeçalhos filtrados; devolve (linhas, total sem paginação)."""
        where, params = [], []
        if status:
            where.append("status = ?")
            params.append(status)
        if data_inicio:
            where.append("data >= ?")
            params.append(data_inicio)
        if data_fim:
            where.append("data <= ?")
            params.append(data_fim)
        if cliente and cliente.strip():
            where.append("cliente LIKE ?")
            params.append(f"%{cliente.strip()}%")
        clause = (" WHERE " + " AND ".join(where)) if where else ""
        order = "ASC" if ascending else "DESC"
        sql = f"SELECT * FROM venda_cabecalho{clause} ORDER BY data {order}, id {order}"
        page_params = list(params)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            page_params += [int(limit), int(offset)]
        with session(self.db_path) as c:
            total = c.execute(f"SELECT COUNT(*) FROM venda_cabecalho{clause}", params).fetchone()[0]
            rows = rows_to_dicts(c.execute(sql, page_params))
        return [_venda_out(r) for r in rows], int(total)

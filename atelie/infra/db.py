# atelie/infra/db.py
"""
Utilidades de conexão SQLite.

Valores monetários e quantidades são gravados como TEXT decimal; o
adaptador registrado abaixo permite passar ``Decimal`` direto como
parâmetro das consultas.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

sqlite3.register_adapter(Decimal, str)


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Context manager para abrir conexão SQLite com:
    - foreign_keys ON
    - row_factory = sqlite3.Row
    - uma única transação: commit ao sair, rollback em caso de exceção
    """
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def session(db_path: str, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """Reusa ``conn`` quando informada (transação do chamador); senão abre uma nova."""
    if conn is not None:
        yield conn
        return
    with connect(db_path) as c:
        yield c


def rows_to_dicts(cur: sqlite3.Cursor) -> List[Dict[str, Any]]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def dumps(obj: Any) -> str:
    """JSON para colunas TEXT (Decimal vira string)."""
    return json.dumps(obj, ensure_ascii=False, default=str)

from datetime import datetime

import pytest

from atelie.infra.clock import FixedClock
from atelie.infra.db import connect
from atelie.infra.migrations import apply_migrations
from atelie.infra.views import create_views


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "atelie_test.sqlite")
    apply_migrations(path)
    create_views(path)
    return path


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 15, 10, 30, 0))


@pytest.fixture
def corromper(db_path):
    """Grava JSON ilegível numa coluna de um registro."""
    def _corromper(tabela, coluna, ident):
        with connect(db_path) as c:
            c.execute(f"UPDATE {tabela} SET {coluna} = '{{corrompido' WHERE id = ?", (ident,))
    return _corromper

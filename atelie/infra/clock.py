"""
Fonte de tempo injetável.

Os casos de uso recebem ``clock`` opcional; os testes usam
``FixedClock`` para datas determinísticas.
"""

from __future__ import annotations

from datetime import date, datetime


class SystemClock:
    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()


class FixedClock(SystemClock):
    """Relógio parado num instante fixo."""

    def __init__(self, instant: datetime) -> None:
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


SYSTEM_CLOCK = SystemClock()

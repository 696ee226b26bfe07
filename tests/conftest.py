import os
from typing import Sequence

import pytest

os.environ.setdefault("BUDGET_DATABASE_URL", "sqlite://")

from references import ReferencedTransaction  # noqa: E402


class FakeLookup:
    """In-memory lookup recording every batch it is asked for."""

    def __init__(self, expressions: dict[str, str], owner_id: str = "user-1") -> None:
        self.rows = {tx_id: (owner_id, expr) for tx_id, expr in expressions.items()}
        self.calls: list[tuple[list[str], str]] = []

    def add(self, tx_id: str, expression: str, owner_id: str) -> None:
        self.rows[tx_id] = (owner_id, expression)

    async def find_by_ids_for_owner(
        self, ids: Sequence[str], owner_id: str
    ) -> list[ReferencedTransaction]:
        self.calls.append((list(ids), owner_id))
        return [
            ReferencedTransaction(id=tx_id, expression=self.rows[tx_id][1])
            for tx_id in ids
            if tx_id in self.rows and self.rows[tx_id][0] == owner_id
        ]


@pytest.fixture
def make_lookup():
    return FakeLookup

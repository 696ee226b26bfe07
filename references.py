"""Resolution of ``$<id>`` tokens inside transaction expressions.

A token names another transaction of the same owner. Resolving it means
resolving that transaction's own expression (recursively), evaluating it
to a number and substituting the number back into the referring text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from config import get_settings
from expressions import evaluate, format_number

logger = logging.getLogger(__name__)

REFERENCE_RE = re.compile(r"\$([a-zA-Z0-9-]+)")


class ReferenceResolutionError(ValueError):
    pass


class ReferenceNotFoundError(ReferenceResolutionError):
    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction reference not found: {transaction_id}")


class CircularReferenceError(ReferenceResolutionError):
    def __init__(self, path: Sequence[str]) -> None:
        self.path = list(path)
        super().__init__(f"Circular reference detected: {' -> '.join(self.path)}")


class SelfReferenceError(ReferenceResolutionError):
    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__(f"Transaction cannot reference itself: {transaction_id}")


class MaxDepthExceededError(ReferenceResolutionError):
    def __init__(self, max_depth: int, path: Sequence[str]) -> None:
        self.max_depth = max_depth
        self.path = list(path)
        super().__init__(
            f"Maximum reference depth of {max_depth} exceeded: {' -> '.join(self.path)}"
        )


@dataclass(frozen=True)
class ReferencedTransaction:
    id: str
    expression: str


class TransactionLookup(Protocol):
    async def find_by_ids_for_owner(
        self, ids: Sequence[str], owner_id: str
    ) -> list[ReferencedTransaction]:
        """Return the transactions among ``ids`` owned by ``owner_id``.

        Ids that do not exist or belong to someone else are simply absent.
        """
        ...


def find_reference_ids(expression: str) -> list[str]:
    """Distinct referenced ids in order of first appearance."""
    return list(dict.fromkeys(REFERENCE_RE.findall(expression or "")))


def ensure_no_self_reference(expression: str, transaction_id: str) -> None:
    if transaction_id in find_reference_ids(expression):
        raise SelfReferenceError(transaction_id)


class ReferenceResolver:
    def __init__(
        self, lookup: TransactionLookup, max_depth: Optional[int] = None
    ) -> None:
        self.lookup = lookup
        self.max_depth = (
            max_depth if max_depth is not None else get_settings().max_reference_depth
        )

    async def resolve_references(
        self,
        expression: str,
        owner_id: str,
        transaction_id: Optional[str] = None,
    ) -> str:
        """Replace every ``$<id>`` token with the referenced value.

        ``transaction_id`` names the transaction that owns ``expression`` (if
        it is persisted) so that a chain leading back to it is reported as a
        cycle starting from it.
        """
        in_flight: dict[str, None] = {}
        if transaction_id:
            in_flight[transaction_id] = None
        return await self._resolve(expression, owner_id, in_flight)

    async def _resolve(
        self, expression: str, owner_id: str, in_flight: dict[str, None]
    ) -> str:
        ids = find_reference_ids(expression)
        if not ids:
            return expression

        for ref_id in ids:
            if ref_id in in_flight:
                raise CircularReferenceError([*in_flight, ref_id])

        found = {
            txn.id: txn
            for txn in await self.lookup.find_by_ids_for_owner(ids, owner_id)
        }

        values: dict[str, str] = {}
        for ref_id in ids:
            referenced = found.get(ref_id)
            if referenced is None:
                logger.warning(f"reference_missing: id={ref_id} owner={owner_id}")
                raise ReferenceNotFoundError(ref_id)
            if len(in_flight) >= self.max_depth:
                raise MaxDepthExceededError(self.max_depth, [*in_flight, ref_id])

            in_flight[ref_id] = None
            try:
                resolved = await self._resolve(
                    str(referenced.expression), owner_id, in_flight
                )
            finally:
                del in_flight[ref_id]

            value = evaluate(resolved)
            values[ref_id] = format_number(value)
            logger.debug(f"reference_resolved: id={ref_id} value={values[ref_id]}")

        return REFERENCE_RE.sub(lambda match: values[match.group(1)], expression)

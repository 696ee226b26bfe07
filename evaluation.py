from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from expressions import evaluate as evaluate_arithmetic, has_references
from frequency import Frequency
from models import TransactionType
from references import ReferenceResolver

if TYPE_CHECKING:  # pragma: no cover
    from models import Transaction

logger = logging.getLogger(__name__)


class TransactionEvaluationError(ValueError):
    def __init__(self, expression: str, cause: Exception) -> None:
        self.expression = expression
        self.cause = cause
        super().__init__(
            f"Cannot evaluate transaction expression: {cause} (expression \"{expression}\")"
        )


@dataclass(frozen=True)
class EvaluationResult:
    amount: float
    type: TransactionType
    normalized_amount: float


@dataclass(frozen=True)
class TransactionDraft:
    expression: str
    frequency: Union[Frequency, str] = Frequency.month
    owner_id: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_model(cls, txn: "Transaction") -> "TransactionDraft":
        return cls(
            expression=txn.expression,
            frequency=txn.frequency,
            owner_id=txn.user_id,
            id=txn.id,
        )


def classify(amount: float) -> TransactionType:
    # Zero counts as an expense
    return TransactionType.from_amount(amount)


class TransactionEvaluator:
    def __init__(self, resolver: Optional[ReferenceResolver] = None) -> None:
        self.resolver = resolver

    async def evaluate_expression(
        self,
        expression: str,
        owner_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> float:
        text = expression
        if owner_id and self.resolver is not None and has_references(text):
            text = await self.resolver.resolve_references(
                text, owner_id, transaction_id=transaction_id
            )
        return evaluate_arithmetic(text)

    async def evaluate(self, transaction: TransactionDraft) -> EvaluationResult:
        try:
            amount = await self.evaluate_expression(
                transaction.expression,
                owner_id=transaction.owner_id,
                transaction_id=transaction.id,
            )
            frequency = (
                transaction.frequency
                if isinstance(transaction.frequency, Frequency)
                else Frequency.from_string(transaction.frequency)
            )
        except ValueError as exc:
            logger.error(
                f"evaluation_failed: expression={transaction.expression!r} error={exc}"
            )
            raise TransactionEvaluationError(transaction.expression, exc) from exc

        return EvaluationResult(
            amount=amount,
            type=classify(amount),
            normalized_amount=frequency.normalized_amount(amount),
        )

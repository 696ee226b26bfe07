from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from evaluation import TransactionDraft, TransactionEvaluator
from expressions import ROUND_PRECISION, clean_expression
from frequency import Frequency
from models import Category, CategoryFlow, Transaction, TransactionType
from references import (
    ReferencedTransaction,
    ReferenceResolver,
    ensure_no_self_reference,
)
from schemas import (
    BudgetPercentagesOut,
    CategoryIn,
    CategoryPercentageOut,
    FlowPercentageOut,
    SummaryOut,
    TransactionIn,
)

logger = logging.getLogger(__name__)


def get_current_user_id() -> str:
    return get_settings().default_user_id


def round_money(value: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        return value
    with localcontext() as ctx:
        ctx.prec = ROUND_PRECISION
        return float(
            Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        )


def _finite_amount(txn: Transaction) -> float:
    if txn.amount is None or not math.isfinite(txn.amount):
        logger.warning(f"summary_amount_defaulted: transaction_id={txn.id}")
        return 0.0
    return txn.amount


class SqlTransactionLookup:
    def __init__(self, session: Session) -> None:
        self.session = session

    async def find_by_ids_for_owner(
        self, ids: Sequence[str], owner_id: str
    ) -> list[ReferencedTransaction]:
        if not ids:
            return []
        rows = self.session.execute(
            select(Transaction.id, Transaction.expression).where(
                Transaction.id.in_(list(ids)),
                Transaction.user_id == owner_id,
            )
        ).all()
        return [ReferencedTransaction(id=row.id, expression=row.expression) for row in rows]


def build_evaluator(session: Session) -> TransactionEvaluator:
    return TransactionEvaluator(ReferenceResolver(SqlTransactionLookup(session)))


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    frequency: Optional[Frequency] = None
    start: Optional[date] = None
    end: Optional[date] = None


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.flow, Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            flow=data.flow,
            color=data.color,
            description=data.description,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category


class TransactionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[str] = None,
        evaluator: Optional[TransactionEvaluator] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.evaluator = evaluator or build_evaluator(session)

    async def _evaluate_amount(
        self, transaction_id: str, expression: str, frequency: Frequency
    ) -> float:
        # Checked once, before any lookup, so it never surfaces as a cycle
        ensure_no_self_reference(expression, transaction_id)
        result = await self.evaluator.evaluate(
            TransactionDraft(
                expression=expression,
                frequency=frequency,
                owner_id=self.user_id,
                id=transaction_id,
            )
        )
        return result.amount

    async def create(self, data: TransactionIn) -> Transaction:
        if data.category_id:
            CategoryService(self.session, self.user_id).get(data.category_id)
        expression = clean_expression(data.expression)
        txn_id = str(uuid.uuid4())
        amount = await self._evaluate_amount(txn_id, expression, data.frequency)

        txn = Transaction(
            id=txn_id,
            user_id=self.user_id,
            description=data.description.strip(),
            expression=expression,
            amount=amount,
            date=data.date,
            frequency=data.frequency,
            category_id=data.category_id,
            notes=data.notes,
        )
        self.session.add(txn)
        self.session.commit()
        logger.info(f"transaction_created: id={txn.id} amount={amount}")
        return self.get(txn.id)

    def get(self, transaction_id: str) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.id == transaction_id,
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
        )
        if filters.type == TransactionType.income:
            stmt = stmt.where(Transaction.amount > 0)
        elif filters.type == TransactionType.expense:
            stmt = stmt.where(Transaction.amount <= 0)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.frequency:
            stmt = stmt.where(Transaction.frequency == filters.frequency)
        if filters.start:
            stmt = stmt.where(Transaction.date >= filters.start)
        if filters.end:
            stmt = stmt.where(Transaction.date <= filters.end)
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc())
        return self.session.scalars(stmt).all()

    async def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        if data.category_id:
            CategoryService(self.session, self.user_id).get(data.category_id)
        expression = clean_expression(data.expression)
        amount = await self._evaluate_amount(txn.id, expression, data.frequency)

        txn.description = data.description.strip()
        txn.expression = expression
        txn.amount = amount
        txn.date = data.date
        txn.frequency = data.frequency
        txn.category_id = data.category_id
        txn.notes = data.notes
        self.session.commit()
        logger.info(f"transaction_updated: id={txn.id} amount={amount}")
        return self.get(txn.id)

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    async def reevaluate_all(self) -> int:
        """Refresh stored amounts after referenced transactions changed.

        A transaction that no longer evaluates keeps its previous amount.
        """
        txns = self.session.scalars(
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.created_at)
        ).all()
        changed = 0
        for txn in txns:
            try:
                result = await self.evaluator.evaluate(TransactionDraft.from_model(txn))
            except ValueError as exc:
                logger.warning(f"reevaluate_skipped: id={txn.id} error={exc}")
                continue
            if result.amount != txn.amount:
                txn.amount = result.amount
                changed += 1
        self.session.commit()
        logger.info(f"reevaluate_all: user_id={self.user_id} changed={changed}")
        return changed


class ReportService:
    def __init__(self, session: Session, user_id: Optional[str] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _transactions(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[Transaction]:
        return TransactionService(self.session, self.user_id).list(
            TransactionFilters(start=start, end=end)
        )

    def summary(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> SummaryOut:
        txns = self._transactions(start, end)
        total_income = 0.0
        total_expenses = 0.0
        for txn in txns:
            monthly = txn.frequency.normalized_amount(_finite_amount(txn))
            if monthly > 0:
                total_income += monthly
            else:
                total_expenses += abs(monthly)

        return SummaryOut(
            total_income=round_money(total_income),
            total_expenses=round_money(total_expenses),
            net_amount=round_money(total_income - total_expenses),
            transaction_count=len(txns),
        )

    def budget_percentages(self) -> BudgetPercentagesOut:
        by_category: dict[str, dict] = {}
        by_flow: dict[CategoryFlow, float] = {}

        for txn in self._transactions():
            amount = _finite_amount(txn)
            monthly = abs(txn.frequency.normalized_amount(amount))
            if txn.category is not None:
                key = txn.category.id
                name = txn.category.name
                color = txn.category.color
                flow = txn.category.flow
            else:
                flow = CategoryFlow.income if amount > 0 else CategoryFlow.expense
                key = None
                name = "Uncategorized"
                color = None

            bucket = by_category.setdefault(
                key or f"uncategorized:{flow.value}",
                {
                    "category_id": key,
                    "category_name": name,
                    "category_color": color,
                    "flow": flow,
                    "amount": 0.0,
                },
            )
            bucket["amount"] += monthly
            by_flow[flow] = by_flow.get(flow, 0.0) + monthly

        total = sum(by_flow.values())

        def percent(amount: float) -> float:
            return round_money(amount / total * 100) if total > 0 else 0.0

        categories = sorted(
            by_category.values(), key=lambda item: item["amount"], reverse=True
        )
        return BudgetPercentagesOut(
            category_percentages=[
                CategoryPercentageOut(
                    category_id=item["category_id"],
                    category_name=item["category_name"],
                    category_color=item["category_color"],
                    flow=item["flow"],
                    percentage=percent(item["amount"]),
                    amount=round_money(item["amount"]),
                )
                for item in categories
            ],
            flow_percentages=[
                FlowPercentageOut(
                    flow=flow,
                    percentage=percent(by_flow[flow]),
                    amount=round_money(by_flow[flow]),
                )
                for flow in CategoryFlow
                if flow in by_flow
            ],
            total_amount=round_money(total),
        )

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from frequency import Frequency


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"

    @classmethod
    def from_amount(cls, amount: float) -> "TransactionType":
        return cls.income if amount > 0 else cls.expense


class CategoryFlow(str, Enum):
    income = "income"
    expense = "expense"
    savings_and_investments = "s&i"


CATEGORY_FLOW_ENUM = SAEnum(
    CategoryFlow,
    name="categoryflow",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)

FREQUENCY_ENUM = SAEnum(
    Frequency,
    name="frequency",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


def _new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    flow: Mapped[CategoryFlow] = mapped_column(
        CATEGORY_FLOW_ENUM, nullable=False, default=CategoryFlow.expense
    )
    color: Mapped[Optional[str]] = mapped_column(String(7))
    description: Mapped[Optional[str]] = mapped_column(Text)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    expression: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    # Value of ``expression`` at the last write, references included
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(
        FREQUENCY_ENUM, nullable=False, default=Frequency.month
    )
    category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("categories.id"))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category", "user_id", "category_id"),
    )

    @property
    def type(self) -> TransactionType:
        return TransactionType.from_amount(self.amount)

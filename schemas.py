from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from frequency import Frequency
from models import CategoryFlow, TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    flow: CategoryFlow = CategoryFlow.expense
    color: Optional[str] = Field(default=None, max_length=7)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    flow: CategoryFlow
    color: Optional[str]
    description: Optional[str]


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    expression: str = Field(default="0", max_length=1000)
    date: date
    frequency: Frequency = Frequency.month
    category_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    expression: str
    amount: float
    type: TransactionType
    date: date
    frequency: Frequency
    category_id: Optional[str]
    category_name: Optional[str] = None
    notes: Optional[str]
    monthly_equivalent: str


class ExpressionIn(BaseModel):
    expression: str = Field(..., max_length=1000)
    frequency: Frequency = Frequency.month


class ExpressionResultOut(BaseModel):
    amount: float
    type: TransactionType
    normalized_amount: float
    is_valid: bool
    error: Optional[str] = None


class FrequencyOut(BaseModel):
    value: Frequency
    label: str


class SummaryOut(BaseModel):
    total_income: float
    total_expenses: float
    net_amount: float
    transaction_count: int


class CategoryPercentageOut(BaseModel):
    category_id: Optional[str]
    category_name: str
    category_color: Optional[str]
    flow: CategoryFlow
    percentage: float
    amount: float


class FlowPercentageOut(BaseModel):
    flow: CategoryFlow
    percentage: float
    amount: float


class BudgetPercentagesOut(BaseModel):
    category_percentages: list[CategoryPercentageOut]
    flow_percentages: list[FlowPercentageOut]
    total_amount: float

import datetime as dt
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from models import TransactionType

# Amounts travel as JSON numbers, not the strings pydantic uses for Decimal.
Money = Annotated[
    Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")
]

AmountIn = Annotated[
    Decimal, Field(ge=Decimal("0.01"), max_digits=12, decimal_places=2)
]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CategoryIn(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: str = Field(default="#3B82F6", max_length=7)
    icon: str = Field(default="tag", max_length=50)


class CategoryUpdate(ApiModel):
    """Partial update; only fields present in the payload are applied."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(default=None, max_length=7)
    icon: Optional[str] = Field(default=None, max_length=50)


class CategoryOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: TransactionType
    color: str
    icon: str
    is_default: bool


class UserOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    created_at: dt.datetime


class TransactionIn(ApiModel):
    type: TransactionType
    amount: AmountIn
    date: dt.date
    category_id: str = Field(..., min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionUpdate(ApiModel):
    """Partial update; only fields present in the payload are applied."""

    type: Optional[TransactionType] = None
    amount: Optional[AmountIn] = None
    date: Optional[dt.date] = None
    category_id: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    category_id: str
    type: TransactionType
    amount: Money
    description: Optional[str]
    date: dt.date
    created_at: dt.datetime
    updated_at: dt.datetime
    category: Optional[CategoryOut] = None


class TransactionPageOut(ApiModel):
    model_config = ConfigDict(from_attributes=True)

    data: list[TransactionOut]
    total: int
    page: int
    limit: int
    total_pages: int


class SummaryOut(ApiModel):
    total_income: Money
    total_expense: Money
    net_balance: Money
    transaction_count: int


class TrendPointOut(ApiModel):
    period: str
    income: Money
    expense: Money
    net: Money


class CategoryBreakdownOut(ApiModel):
    category_id: str
    category_name: str
    color: Optional[str]
    icon: Optional[str]
    total: Money
    count: int

from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .models import DEFAULT_CURRENCY


# Base schema for a transaction
class TransactionBase(BaseModel):
    symbol: str
    type: Literal["BUY", "SELL"]
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)
    currency: Optional[str] = DEFAULT_CURRENCY
    fee: float = Field(default=0.0, ge=0)
    date: date
    note: Optional[str] = ""

    @field_validator("symbol")
    @classmethod
    def symbol_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Symbol is required")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def upper_type(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("currency")
    @classmethod
    def default_currency(cls, value: Optional[str]) -> str:
        value = (value or "").strip().upper()
        return value or DEFAULT_CURRENCY

    @field_validator("fee", mode="before")
    @classmethod
    def default_fee(cls, value):
        return 0.0 if value is None else value

    @field_validator("note")
    @classmethod
    def default_note(cls, value: Optional[str]) -> str:
        return value or ""


# Schema for creating a transaction; id is generated when omitted
class TransactionCreate(TransactionBase):
    id: Optional[str] = None


# Schema for updating a transaction (every field except id)
class TransactionUpdate(TransactionBase):
    pass


# Schema for reading a transaction (includes all fields from DB)
class Transaction(TransactionBase):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Transaction joined with the cached price of its symbol
class EnrichedTransaction(Transaction):
    current_price: float
    market_value: float
    pnl: float
    pnl_percent: float


class StockPrice(BaseModel):
    symbol: str
    price: float
    tags: Optional[str] = ""
    category: Optional[str] = ""
    currency: str = DEFAULT_CURRENCY
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Manual edit of a cached price entry; omitted fields are left untouched
class StockPriceUpdate(BaseModel):
    price: Optional[float] = Field(default=None, ge=0)
    tags: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None


class RefreshFailure(BaseModel):
    symbol: str
    reason: str


class RefreshSummary(BaseModel):
    total: int = 0
    updated_count: int = 0
    failures: List[RefreshFailure] = []


class ImportRowError(BaseModel):
    row: int
    message: str


class ImportResult(BaseModel):
    imported: int = 0
    failed: int = 0
    errors: List[ImportRowError] = []


class GoalAllocationIn(BaseModel):
    category: str
    percentage: float


class GoalSave(BaseModel):
    goal_total: float = Field(gt=0)
    allocations: List[GoalAllocationIn] = []


class GoalAllocation(BaseModel):
    id: int
    portfolio_goal_id: int
    category: str
    percentage: float

    class Config:
        from_attributes = True


class PortfolioGoal(BaseModel):
    id: int
    goal_total: float
    created_at: Optional[datetime] = None
    allocations: List[GoalAllocation] = []

    class Config:
        from_attributes = True


# Schema for one aggregated position in the holdings summary
class Holding(BaseModel):
    symbol: str
    currency: str
    category: str
    quantity: float
    average_buy_price: float
    total_fees: float
    cost_basis: float
    current_price: float
    market_value: float
    pnl: float
    pnl_percent: float


class CurrencyTotals(BaseModel):
    cost_basis: float
    market_value: float
    pnl: float
    pnl_percent: float
    categories: Dict[str, float]


class PortfolioSummary(BaseModel):
    holdings: List[Holding]
    totals: Dict[str, CurrencyTotals]

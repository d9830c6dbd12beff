import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .database import Base

BUY = "BUY"
SELL = "SELL"
TRANSACTION_TYPES = (BUY, SELL)

DEFAULT_CURRENCY = "USD"
MAX_TAGS = 5


def _utcnow():
    return datetime.now(timezone.utc)


def _new_id():
    return str(uuid.uuid4())


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(String, primary_key=True, default=_new_id)
    symbol = Column(String, index=True, nullable=False)
    type = Column(String, nullable=False)  # BUY or SELL
    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default=DEFAULT_CURRENCY)
    fee = Column(Float, nullable=False, default=0.0)
    date = Column(Date, nullable=False)
    note = Column(String, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class StockPrice(Base):
    """Latest known market price for one symbol. A price of 0 means never fetched."""
    __tablename__ = "stock_prices"
    symbol = Column(String, primary_key=True)
    price = Column(Float, nullable=False, default=0.0)
    tags = Column(String, default="")  # comma-separated, at most MAX_TAGS
    category = Column(String, default="")
    currency = Column(String, nullable=False, default=DEFAULT_CURRENCY)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class PortfolioGoal(Base):
    __tablename__ = "portfolio_goals"
    id = Column(Integer, primary_key=True, index=True)
    goal_total = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    allocations = relationship(
        "GoalAllocation",
        back_populates="goal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="GoalAllocation.id",
    )


class GoalAllocation(Base):
    __tablename__ = "goal_allocations"
    id = Column(Integer, primary_key=True, index=True)
    portfolio_goal_id = Column(
        Integer, ForeignKey("portfolio_goals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category = Column(String, nullable=False)
    percentage = Column(Float, nullable=False)

    goal = relationship("PortfolioGoal", back_populates="allocations")

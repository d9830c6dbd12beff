import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .errors import (
    NotFoundError,
    PersistenceError,
    ValidationError,
    stock_not_found,
    transaction_not_found,
)

logger = logging.getLogger(__name__)


def _commit(db: Session, operation: str):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database error during {operation}")
        raise PersistenceError(f"{operation} failed: {e}") from e


# --- Transactions ---

def get_transactions(db: Session) -> List[models.Transaction]:
    return db.query(models.Transaction).order_by(models.Transaction.date, models.Transaction.created_at).all()


def get_transaction_by_id(db: Session, transaction_id: str) -> Optional[models.Transaction]:
    return db.query(models.Transaction).filter(models.Transaction.id == transaction_id).first()


def create_transaction(db: Session, tx: schemas.TransactionCreate) -> models.Transaction:
    data = tx.model_dump()
    if not data.get("id"):
        data.pop("id", None)
    elif get_transaction_by_id(db, data["id"]) is not None:
        raise ValidationError(f"Transaction {data['id']} already exists")

    db_tx = models.Transaction(**data)
    db.add(db_tx)
    _commit(db, f"create transaction for {tx.symbol}")
    db.refresh(db_tx)
    logger.info(f"Transaction created: id={db_tx.id}, symbol={db_tx.symbol}, type={db_tx.type}")
    return db_tx


def update_transaction(db: Session, transaction_id: str, tx: schemas.TransactionUpdate) -> models.Transaction:
    db_tx = get_transaction_by_id(db, transaction_id)
    if db_tx is None:
        raise NotFoundError(transaction_not_found(transaction_id))

    for field, value in tx.model_dump().items():
        setattr(db_tx, field, value)
    _commit(db, f"update transaction {transaction_id}")
    db.refresh(db_tx)
    logger.info(f"Transaction {transaction_id} updated")
    return db_tx


def delete_transaction(db: Session, transaction_id: str) -> None:
    deleted = db.query(models.Transaction).filter(models.Transaction.id == transaction_id).delete()
    _commit(db, f"delete transaction {transaction_id}")
    if deleted == 0:
        raise NotFoundError(transaction_not_found(transaction_id))
    logger.info(f"Transaction {transaction_id} deleted")


# --- Price cache ---

def get_stock_prices(db: Session) -> List[models.StockPrice]:
    return db.query(models.StockPrice).all()


def get_stock_price(db: Session, symbol: str) -> Optional[models.StockPrice]:
    try:
        return db.query(models.StockPrice).filter(models.StockPrice.symbol == symbol).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database error looking up stock {symbol}")
        raise PersistenceError(f"lookup of {symbol} failed: {e}") from e


def upsert_stock_price(db: Session, symbol: str, price: float, currency: Optional[str] = None) -> models.StockPrice:
    """
    Insert or overwrite the price of one cache entry in a single commit.
    Tags, category and currency of an existing entry are left untouched.
    """
    entry = get_stock_price(db, symbol)
    if entry is None:
        entry = models.StockPrice(
            symbol=symbol,
            price=price,
            currency=currency or models.DEFAULT_CURRENCY,
        )
        db.add(entry)
    else:
        entry.price = price
    _commit(db, f"upsert price for {symbol}")
    db.refresh(entry)
    return entry


def parse_tags(tags: str) -> str:
    tags = tags.strip()
    if tags and len(tags.split(",")) > models.MAX_TAGS:
        raise ValidationError(f"Maximum of {models.MAX_TAGS} tags allowed")
    return tags


def update_stock_price(db: Session, symbol: str, update: schemas.StockPriceUpdate) -> models.StockPrice:
    entry = get_stock_price(db, symbol)
    if entry is None:
        raise NotFoundError(stock_not_found(symbol))

    # Validate before touching the entry so a rejected edit leaves it unchanged
    tags = parse_tags(update.tags) if update.tags is not None else None

    if tags is not None:
        entry.tags = tags
    if update.price is not None:
        entry.price = update.price
    if update.category is not None:
        entry.category = update.category.strip()
    if update.currency is not None:
        entry.currency = update.currency.strip().upper() or models.DEFAULT_CURRENCY

    _commit(db, f"update stock {symbol}")
    db.refresh(entry)
    logger.info(f"Stock {entry.symbol} updated: price={entry.price:.2f}, tags={entry.tags}")
    return entry


# --- Portfolio goal ---

def get_goal(db: Session) -> Optional[models.PortfolioGoal]:
    return (
        db.query(models.PortfolioGoal)
        .options(selectinload(models.PortfolioGoal.allocations))
        .order_by(models.PortfolioGoal.created_at.desc(), models.PortfolioGoal.id.desc())
        .first()
    )


def replace_goal(db: Session, goal: schemas.GoalSave) -> models.PortfolioGoal:
    """
    Delete every stored goal and allocation and insert the new ones as one
    unit of work. Nothing is kept if any step fails.
    """
    try:
        # Allocations go with their goal through the cascade
        for existing in db.query(models.PortfolioGoal).all():
            db.delete(existing)

        db_goal = models.PortfolioGoal(goal_total=goal.goal_total)
        db_goal.allocations = [
            models.GoalAllocation(category=a.category.strip(), percentage=a.percentage)
            for a in goal.allocations
            if a.percentage > 0
        ]
        allocation_count = len(db_goal.allocations)
        db.add(db_goal)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to save portfolio goal")
        raise PersistenceError(f"save goal failed: {e}") from e

    db.expire_all()
    logger.info(f"Portfolio goal saved: total={goal.goal_total}, allocations={allocation_count}")
    return get_goal(db)

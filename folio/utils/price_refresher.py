import logging
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..errors import PersistenceError, UpstreamProviderError
from .quote_provider import QuoteProvider
from .symbols import build_query_symbol

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_DELAY_SECONDS = 8.0


class PriceRefresher:
    """
    Keeps the price cache current.

    refresh_all() walks every cached symbol one at a time, waiting a fixed
    delay between provider calls so the provider quota is never exceeded.
    ensure_price_entry() creates the cache entry for a symbol seen for the
    first time.
    """

    def __init__(
        self,
        db: Session,
        provider: QuoteProvider,
        delay_seconds: float = DEFAULT_REFRESH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.provider = provider
        self.delay_seconds = max(0.0, delay_seconds)
        self.sleep = sleep

    def refresh_all(self) -> schemas.RefreshSummary:
        entries = [(entry.symbol, entry.currency) for entry in crud.get_stock_prices(self.db)]
        summary = schemas.RefreshSummary(total=len(entries))
        logger.info(f"Starting price refresh for {len(entries)} symbols")

        for index, (symbol, currency) in enumerate(entries):
            if index > 0 and self.delay_seconds:
                self.sleep(self.delay_seconds)

            query_symbol = build_query_symbol(symbol, currency or models.DEFAULT_CURRENCY)
            try:
                price = self.provider.fetch_price(query_symbol)
            except UpstreamProviderError as e:
                logger.warning(f"Failed to update {symbol} (query: {query_symbol}): {e}")
                summary.failures.append(schemas.RefreshFailure(symbol=symbol, reason=str(e)))
                continue

            try:
                crud.upsert_stock_price(self.db, symbol, price)
            except PersistenceError:
                summary.failures.append(schemas.RefreshFailure(symbol=symbol, reason="Database error saving price"))
                continue
            summary.updated_count += 1

        logger.info(f"Updated {summary.updated_count} of {summary.total} stocks, {len(summary.failures)} failed")
        return summary

    def ensure_price_entry(self, symbol: str, currency: Optional[str] = None) -> Optional[models.StockPrice]:
        """
        Return the cache entry for symbol, creating it with a best-effort price
        fetch when missing. A failed fetch stores price 0 so the next refresh
        retries it. Never raises.
        """
        currency = currency or models.DEFAULT_CURRENCY
        try:
            entry = crud.get_stock_price(self.db, symbol)
        except (PersistenceError, SQLAlchemyError) as e:
            logger.error(f"Could not look up stock ticker {symbol}: {e}")
            return None
        if entry is not None:
            return entry

        logger.info(f"New stock symbol detected: {symbol}. Fetching initial price...")
        try:
            price = self.provider.fetch_price(build_query_symbol(symbol, currency))
        except UpstreamProviderError as e:
            logger.warning(f"Could not fetch initial price for {symbol}: {e}")
            price = 0.0

        try:
            return crud.upsert_stock_price(self.db, symbol, price, currency=currency)
        except (PersistenceError, SQLAlchemyError):
            logger.error(f"Failed to save new stock ticker {symbol}")
            return None

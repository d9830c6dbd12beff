import os

# Keep the application engine off the filesystem while tests import folio.main
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from folio import models
from folio.database import Base, get_db, make_engine
from folio.errors import ParseError, UpstreamProviderError
from folio.main import app, get_price_refresher, get_quote_provider
from folio.utils.price_refresher import PriceRefresher


class FakeQuoteProvider:
    """Returns canned prices per query symbol and records every call."""

    def __init__(self, prices=None, failures=None):
        self.prices = dict(prices or {})
        self.failures = dict(failures or {})
        self.calls = []

    def fetch_price(self, symbol):
        self.calls.append(symbol)
        if symbol in self.failures:
            error = self.failures[symbol]
            raise error if isinstance(error, UpstreamProviderError) else ParseError(str(error), symbol)
        if symbol in self.prices:
            return self.prices[symbol]
        raise ParseError(f"No price data returned for {symbol}", symbol)


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def quote_provider():
    return FakeQuoteProvider()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def refresher(db_session, quote_provider, sleeps):
    return PriceRefresher(db_session, quote_provider, delay_seconds=8.0, sleep=sleeps.append)


@pytest.fixture
def client(db_session, quote_provider, refresher):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quote_provider] = lambda: quote_provider
    app.dependency_overrides[get_price_refresher] = lambda: refresher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def add_stock(db_session):
    def _add(symbol, price=0.0, currency="USD", tags="", category=""):
        entry = models.StockPrice(symbol=symbol, price=price, currency=currency, tags=tags, category=category)
        db_session.add(entry)
        db_session.commit()
        return entry
    return _add

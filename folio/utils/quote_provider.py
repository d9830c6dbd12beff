import logging
import math
import time
from typing import Optional, Protocol

import requests

from ..config import DEFAULT_ALPHA_BASE_URL
from ..errors import (
    ConfigurationError,
    InvalidPriceError,
    ParseError,
    TransportError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Alpha Vantage answers quota and key problems with HTTP 200 and one of these keys
NOTICE_KEYS = ("Note", "Information", "Error Message")


def log_api_call(func_name, symbol, status, detail=""):
    logger.info(f"API_CALL - Function: {func_name}, Symbol: {symbol}, Status: {status}, Detail: {detail}")


class QuoteProvider(Protocol):
    def fetch_price(self, symbol: str) -> float:
        ...


class AlphaVantageClient:
    """Fetches the latest price of one symbol from the Alpha Vantage GLOBAL_QUOTE endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_ALPHA_BASE_URL,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def fetch_price(self, symbol: str) -> float:
        """
        Return the current price for an already-normalized query symbol.
        Raises a subclass of UpstreamProviderError on any failure.
        """
        if not self.api_key:
            raise ConfigurationError("API key is missing", symbol)

        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key}
        start_time = time.time()
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout_seconds)
        except requests.RequestException as e:
            duration = time.time() - start_time
            log_api_call('fetch_price', symbol, 'EXCEPTION', f'Duration: {duration:.2f}s, Error: {e}')
            raise TransportError(f"Request for {symbol} failed: {e}", symbol) from e

        duration = time.time() - start_time
        if not 200 <= response.status_code < 300:
            log_api_call('fetch_price', symbol, 'FAIL', f'Duration: {duration:.2f}s, Status: {response.status_code}')
            raise UpstreamError(
                f"API returned status {response.status_code} for {symbol}", symbol, status=response.status_code
            )

        price = self._parse_price(symbol, response)
        log_api_call('fetch_price', symbol, 'SUCCESS', f'Duration: {duration:.2f}s, Price: {price:.2f}')
        return price

    def _parse_price(self, symbol: str, response) -> float:
        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Malformed response body for {symbol}", symbol) from e

        if not isinstance(data, dict):
            raise ParseError(f"Unexpected response shape for {symbol}", symbol)

        quote = data.get("Global Quote")
        raw_price = quote.get("05. price") if isinstance(quote, dict) else None
        if raw_price in (None, ""):
            notice = next((data[key] for key in NOTICE_KEYS if key in data), None)
            message = f"No price data returned for {symbol}"
            if notice:
                message = f"{message}: {notice}"
            raise ParseError(message, symbol)

        try:
            price = float(raw_price)
        except (TypeError, ValueError) as e:
            raise InvalidPriceError(f"Invalid price '{raw_price}' returned for {symbol}", symbol) from e
        if not math.isfinite(price):
            raise InvalidPriceError(f"Invalid price '{raw_price}' returned for {symbol}", symbol)
        return price

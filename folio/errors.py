"""Domain and quote-provider error types."""


class DomainError(Exception):
    """Base class for errors raised by the persistence and domain layers."""


class ValidationError(DomainError):
    """Invalid or missing input; reported to the caller as-is."""


class NotFoundError(DomainError):
    """Unknown transaction id or symbol."""


class PersistenceError(DomainError):
    """A store operation failed. The message is logged, never returned to clients."""


class UpstreamProviderError(Exception):
    """Base class for every quote provider failure."""

    kind = "upstream_provider"

    def __init__(self, message: str, symbol: str | None = None):
        super().__init__(message)
        self.message = message
        self.symbol = symbol

    def __str__(self) -> str:
        return self.message


class ConfigurationError(UpstreamProviderError):
    kind = "configuration"


class TransportError(UpstreamProviderError):
    kind = "transport"


class UpstreamError(UpstreamProviderError):
    kind = "upstream"

    def __init__(self, message: str, symbol: str | None = None, status: int | None = None):
        super().__init__(message, symbol)
        self.status = status


class ParseError(UpstreamProviderError):
    kind = "parse"


class InvalidPriceError(UpstreamProviderError):
    kind = "invalid_price"


def transaction_not_found(transaction_id: str) -> str:
    return f"Transaction {transaction_id} not found"


def stock_not_found(symbol: str) -> str:
    return f"Stock {symbol} not found"

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_ALPHA_BASE_URL = "https://www.alphavantage.co/query"


@dataclass
class Settings:
    alpha_api_key: str = ""
    alpha_base_url: str = DEFAULT_ALPHA_BASE_URL
    quote_timeout_seconds: float = 10.0
    # Free tier allows roughly 8 calls per minute
    refresh_delay_seconds: float = 8.0
    database_url: str = "sqlite:///./stocks.db"
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "INFO"


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logging.warning(f"Ignoring invalid value for {name}: {value!r}")
        return default


def get_settings() -> Settings:
    """
    Build settings from the environment (and a .env file, if present).
    """
    db_name = os.getenv("DB_NAME") or "stocks.db"
    return Settings(
        alpha_api_key=os.getenv("ALPHA_API_KEY", "").strip(),
        alpha_base_url=os.getenv("ALPHA_BASE_URL") or DEFAULT_ALPHA_BASE_URL,
        quote_timeout_seconds=_float_env("QUOTE_TIMEOUT_SECONDS", 10.0),
        refresh_delay_seconds=_float_env("REFRESH_DELAY_SECONDS", 8.0),
        database_url=os.getenv("DATABASE_URL") or f"sqlite:///./{db_name}",
        host=os.getenv("HOST") or "127.0.0.1",
        port=int(_float_env("PORT", 8080)),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    # Configure structured logging if not already configured
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')
    else:
        logging.getLogger().setLevel(level)

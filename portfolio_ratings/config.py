"""
Configuration loader.
Reads settings from the .env file (and the real environment) and makes them
available to the rest of the package.
"""

import logging
import os
from dotenv import load_dotenv

from portfolio_ratings.errors import ConfigurationError

load_dotenv()


def read_number(name: str, default, cast=int):
    """
    Read a numeric setting from the environment.
    Unset or blank means the default; anything unparseable is a ConfigurationError.
    """
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


# Remote ratings API
API_BASE_URL = os.getenv("RATINGS_API_URL", "https://charyn.pythonanywhere.com/api")

# Relay prefixes used to get around cross-origin restrictions.
# The target URL is percent-encoded and appended to each prefix.
PROXY_URLS = [
    p.strip()
    for p in os.getenv("RATINGS_PROXY_URLS", "https://corsproxy.io/?").split(",")
    if p.strip()
]

# "never", "fallback", "prefer" or "only" (see transport.py)
PROXY_MODE = os.getenv("RATINGS_PROXY_MODE", "prefer")

MAX_CANDIDATES = read_number("RATINGS_MAX_CANDIDATES", 4)
REQUEST_TIMEOUT = read_number("RATINGS_REQUEST_TIMEOUT", 10.0, cast=float)

# Durable local storage: one SQLite file holding the user id
STORAGE_DIR = os.getenv(
    "RATINGS_STORAGE_DIR",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "local"),
)
STORE_NAMESPACE = os.getenv("RATINGS_STORE_NAMESPACE", "portfolio")
USER_ID_KEY = "ratingUserId"

LOG_LEVEL = os.getenv("RATINGS_LOG_LEVEL", "INFO")


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging the same way for scripts and quick tests."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

"""
# Configuration Module

This module is the **single source of configuration** for the Tasting Notes API. It uses
`pydantic-settings` to load typed settings from an optional configuration file and from the
process environment.

## Configuration Sources (Precedence Order)

1.  **Environment Variable**: `TASTING_NOTES_CONFIG_PATH` pointing at an env-style file.
2.  **Project File**: `.tasting` in the project root.
3.  **Dotenv File**: `.env` in the project root.
4.  **Environment Only**: when no file is found, values come from the environment and the
    defaults below.

## Configuration Groups

*   **Server**: host, port, debug mode, log level.
*   **Database**: MongoDB connection details and transaction policy.
*   **Feeds**: fan-in batch size, page sizes, fill rounds, enrichment concurrency, timeouts.
*   **Discovery and catalog**: directory page size and the autocomplete suggestion limit.

## Usage

```python
from tasting_notes.config import settings

batch_size = settings.FEED_MAX_BATCH_SIZE
```

Tests and local runs can switch to the in-memory document store with
`STORE_BACKEND=memory`.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
PROJECT_FILENAME: str = ".tasting"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "TASTING_NOTES_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent

STORE_BACKENDS = ("mongo", "memory")


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determines the configuration file path based on a predefined precedence order.

    Returns:
        Optional[str]: The path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    project_path: Path = PROJECT_ROOT / PROJECT_FILENAME
    if project_path.exists():
        return str(project_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Feed tuning:**
    *   `FEED_MAX_BATCH_SIZE` is the store's fan-in limit for `in` predicates. Backends with a
        larger (or no) limit only need a different value here.
    *   `FEED_SOURCE_FETCH_LIMIT` is how many documents each source returns per merge round.
    *   `FEED_MAX_FILL_ROUNDS` bounds how many rounds a single page request may take when
        post-filtering discards candidates.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "tasting_notes"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None
    MONGODB_REQUIRE_TRANSACTIONS: bool = True  # Refuse two-sided writes without a replica set

    # Document store backend: "mongo" or "memory"
    STORE_BACKEND: str = "mongo"

    # Feed configuration
    FEED_MAX_BATCH_SIZE: int = 10  # Max ids in a single "in" predicate
    ACTIVITIES_PER_BATCH: int = 20
    FEED_DEFAULT_PAGE_SIZE: int = 10
    FEED_MAX_PAGE_SIZE: int = 50
    FEED_SOURCE_FETCH_LIMIT: int = 50
    FEED_MAX_FILL_ROUNDS: int = 5
    ENRICHMENT_CONCURRENCY: int = 8
    FEED_SOURCE_TIMEOUT_SECONDS: float = 5.0
    STORE_TIMEOUT_SECONDS: float = 10.0

    # Notifications
    NOTIFICATIONS_PAGE_SIZE: int = 20

    # Discovery and catalog
    DISCOVER_PAGE_SIZE: int = 12
    CATALOG_SEARCH_LIMIT: int = 5  # Suggestions per autocomplete lookup

    @field_validator("STORE_BACKEND")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        if v not in STORE_BACKENDS:
            raise ValueError(f"STORE_BACKEND must be one of {STORE_BACKENDS}, got {v!r}")
        return v

    @field_validator(
        "FEED_MAX_BATCH_SIZE",
        "ACTIVITIES_PER_BATCH",
        "FEED_DEFAULT_PAGE_SIZE",
        "FEED_MAX_PAGE_SIZE",
        "FEED_SOURCE_FETCH_LIMIT",
        "FEED_MAX_FILL_ROUNDS",
        "ENRICHMENT_CONCURRENCY",
        "NOTIFICATIONS_PAGE_SIZE",
        "DISCOVER_PAGE_SIZE",
        "CATALOG_SEARCH_LIMIT",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be a positive integer")
        return v

    @field_validator("FEED_SOURCE_TIMEOUT_SECONDS", "STORE_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be greater than zero")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid LOG_LEVEL {v!r}")
        return level

    @property
    def is_production(self) -> bool:
        return not self.DEBUG


# Global settings instance
settings: Settings = Settings()

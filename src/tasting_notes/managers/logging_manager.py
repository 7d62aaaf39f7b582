"""
Logging manager.

Every module obtains its logger through `get_logger()`, optionally with a component
prefix that is prepended to each message:

```python
from tasting_notes.managers.logging_manager import get_logger

logger = get_logger(prefix="[NoteFeed]")
logger.info("Fetched %d notes for %s", len(notes), viewer_id)
# -> 2026-01-01 12:00:00 INFO tasting_notes [NoteFeed] Fetched 3 notes for user_1
```
"""

import logging
import sys
from typing import Dict, Optional

from tasting_notes.config import settings

DEFAULT_LOGGER_NAME = "tasting_notes"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False
_adapters: Dict[tuple, logging.LoggerAdapter] = {}


class PrefixAdapter(logging.LoggerAdapter):
    """Prepends a fixed component tag to every message."""

    def process(self, msg, kwargs):
        prefix = self.extra.get("prefix")
        if prefix:
            return f"{prefix} {msg}", kwargs
        return msg, kwargs


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    base = logging.getLogger(DEFAULT_LOGGER_NAME)
    if not base.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        base.addHandler(handler)
    base.setLevel(settings.LOG_LEVEL)
    _configured = True


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Return a logger for `name`, tagging each message with `prefix` when given.

    Loggers are cached per (name, prefix) pair.
    """
    _configure_root()
    key = (name, prefix)
    adapter = _adapters.get(key)
    if adapter is None:
        adapter = PrefixAdapter(logging.getLogger(name), {"prefix": prefix})
        _adapters[key] = adapter
    return adapter

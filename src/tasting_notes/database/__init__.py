"""
# Database Package

Persistence layer for the Tasting Notes API.

- **`manager`**: the `DatabaseManager` singleton owning the Motor client (`db_manager`).
- **`store`**: the `DocumentStore` contract, query filters and update sentinels.
- **`mongo_store`**: `MongoDocumentStore`, the production backend.
- **`memory_store`**: `InMemoryDocumentStore`, used by tests and `STORE_BACKEND=memory`.

```python
from tasting_notes.database import get_document_store

store = get_document_store()
note = await store.get("notes", note_id)
```
"""

from typing import Optional

from tasting_notes.config import settings
from tasting_notes.database.manager import DatabaseManager, db_manager
from tasting_notes.database.store import DocumentStore

_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """Return the process-wide store selected by `settings.STORE_BACKEND`."""
    global _store
    if _store is None:
        if settings.STORE_BACKEND == "memory":
            from tasting_notes.database.memory_store import InMemoryDocumentStore

            _store = InMemoryDocumentStore()
        else:
            from tasting_notes.database.mongo_store import MongoDocumentStore

            _store = MongoDocumentStore(db_manager)
    return _store


def set_document_store(store: Optional[DocumentStore]) -> None:
    """Override the process-wide store (tests, alternative backends)."""
    global _store
    _store = store


__all__ = ["DatabaseManager", "DocumentStore", "db_manager", "get_document_store", "set_document_store"]

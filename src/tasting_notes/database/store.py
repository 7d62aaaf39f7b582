"""
# Document Store Contract

The services never talk to MongoDB directly. They go through the narrow `DocumentStore`
contract defined here, which mirrors what a generic document database offers:

- `query(collection, where, order_by, limit, start_after)` returns matching documents
- `get(collection, id)` returns a document or `None`
- `insert` / `put` / `update` / `delete` with last-write-wins semantics
- `run_transaction(fn)` for atomic multi-document updates

Documents are plain dicts whose primary key is the `id` field.

## Query Primitives

```python
await store.query(
    "notes",
    where=[Filter("visibility", "==", "public"), Filter("rating", ">=", 4)],
    order_by=[("date", DESCENDING), ("id", ASCENDING)],
    limit=20,
    start_after=(last_date, last_id),
)
```

`start_after` holds one value per `order_by` field and resumes strictly after that
position, so paging over a total order never repeats or skips a document.

## Update Sentinels

`update()` accepts plain values plus three sentinels that backends apply atomically:
`ArrayUnion(values)`, `ArrayRemove(values)` and `Increment(amount)`. Dotted keys address
nested fields (`"settings.is_private"`).
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from tasting_notes.config import settings
from tasting_notes.exceptions import ValidationError

ASCENDING = 1
DESCENDING = -1

FILTER_OPERATORS = ("==", "!=", "in", "array_contains", "<", "<=", ">", ">=")

OrderBy = List[Tuple[str, int]]
T = TypeVar("T")

_MISSING = object()


def new_id(prefix: str = "") -> str:
    """Generate a new document id, optionally namespaced (`note_3f2a...`)."""
    token = uuid.uuid4().hex[:20]
    return f"{prefix}_{token}" if prefix else token


def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    """Read a possibly dotted field from a document."""
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison used for ordering. `None` sorts first, as in MongoDB."""
    a, b = (left is not None, left), (right is not None, right)
    if a == b:
        return 0
    return -1 if a < b else 1


@dataclass(frozen=True)
class Filter:
    """A single predicate on a document field."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValidationError(f"Unsupported filter operator: {self.op}")
        if self.op == "in" and not isinstance(self.value, (list, tuple, set, frozenset)):
            raise ValidationError("'in' filters need a list of values")

    def matches(self, doc: Dict[str, Any]) -> bool:
        actual = get_path(doc, self.field, _MISSING)
        if self.op == "==":
            return actual is not _MISSING and actual == self.value
        if self.op == "!=":
            return actual is _MISSING or actual != self.value
        if self.op == "in":
            return actual is not _MISSING and actual in self.value
        if self.op == "array_contains":
            return isinstance(actual, list) and self.value in actual
        if actual is _MISSING or actual is None:
            return False
        try:
            if self.op == "<":
                return actual < self.value
            if self.op == "<=":
                return actual <= self.value
            if self.op == ">":
                return actual > self.value
            return actual >= self.value
        except TypeError:
            return False


class _ArrayOperation:
    __slots__ = ("values",)

    def __init__(self, *values: Any):
        self.values: Tuple[Any, ...] = tuple(values)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.values == self.values

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.values!r}"


class ArrayUnion(_ArrayOperation):
    """Append values that are not already present."""


class ArrayRemove(_ArrayOperation):
    """Remove every occurrence of the values."""


@dataclass(frozen=True)
class Increment:
    amount: int = 1


def check_fan_in(where: Sequence[Filter], max_in_values: Optional[int]) -> None:
    """Reject `in` predicates longer than the backend's fan-in limit."""
    if max_in_values is None:
        return
    for condition in where:
        if condition.op == "in" and len(condition.value) > max_in_values:
            raise ValidationError(
                f"'in' filter on {condition.field} has {len(condition.value)} values; "
                f"the store accepts at most {max_in_values}"
            )


class Transaction(ABC):
    """Operations available inside `DocumentStore.run_transaction`."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        raise NotImplementedError

    @abstractmethod
    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError


class DocumentStore(ABC):
    """
    Abstract document store. Implementations: `MongoDocumentStore` (Motor) and
    `InMemoryDocumentStore` (tests and local development).

    `max_in_values` is the fan-in limit for `in` predicates; `None` means unlimited.
    """

    max_in_values: Optional[int] = None

    @abstractmethod
    async def query(
        self,
        collection: str,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[Sequence[Any]] = None,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        """Store a new document, generating its id when missing. Returns the id."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        """Create or fully replace a document."""
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> None:
        """Partially update a document. Raises `NotFoundError` when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run `fn` atomically: either every write it makes is applied or none is."""
        raise NotImplementedError

    async def get_many(self, collection: str, doc_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch several documents by id, batching by the fan-in limit. Missing ids are omitted."""
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return {}
        size = self.max_in_values or len(ids)
        semaphore = asyncio.Semaphore(settings.ENRICHMENT_CONCURRENCY)

        async def fetch(batch: List[str]) -> List[Dict[str, Any]]:
            async with semaphore:
                return await self.query(collection, where=[Filter("id", "in", batch)])

        batches = [ids[start:start + size] for start in range(0, len(ids), size)]
        found: Dict[str, Dict[str, Any]] = {}
        for docs in await asyncio.gather(*(fetch(batch) for batch in batches)):
            for doc in docs:
                found[doc["id"]] = doc
        return found

    async def health_check(self) -> bool:
        return True

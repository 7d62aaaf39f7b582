"""
In-memory `DocumentStore` used by the test-suite and by local runs with
`STORE_BACKEND=memory`.

It honours the same contract as the Mongo backend, including the fan-in limit on `in`
predicates and all-or-nothing transactions: writes made inside `run_transaction` are
staged and applied in one synchronous step on commit, so no reader ever observes half
of a transaction.
"""

import asyncio
import copy
import functools
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from tasting_notes.config import settings
from tasting_notes.database.store import (
    ArrayRemove,
    ArrayUnion,
    DocumentStore,
    Filter,
    Increment,
    OrderBy,
    T,
    Transaction,
    check_fan_in,
    compare_values,
    get_path,
    new_id,
)
from tasting_notes.exceptions import NotFoundError

_DELETED = object()


def _set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def apply_changes(doc: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `doc` with `changes` (values and sentinels) applied."""
    updated = copy.deepcopy(doc)
    for path, change in changes.items():
        current = get_path(updated, path)
        if isinstance(change, ArrayUnion):
            values = list(current or [])
            for value in change.values:
                if value not in values:
                    values.append(value)
            _set_path(updated, path, values)
        elif isinstance(change, ArrayRemove):
            _set_path(updated, path, [v for v in (current or []) if v not in change.values])
        elif isinstance(change, Increment):
            _set_path(updated, path, (current or 0) + change.amount)
        else:
            _set_path(updated, path, copy.deepcopy(change))
    return updated


def _position_cmp(doc: Dict[str, Any], position: Sequence[Any], order_by: OrderBy) -> int:
    """Compare a document against a `start_after` position in the query's order."""
    for (field, direction), value in zip(order_by, position):
        result = compare_values(get_path(doc, field), value)
        if result:
            return result * direction
    return 0


class InMemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._staged: Dict[Tuple[str, str], Any] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        key = (collection, doc_id)
        if key in self._staged:
            staged = self._staged[key]
            return None if staged is _DELETED else copy.deepcopy(staged)
        return await self._store.get(collection, doc_id)

    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        doc_id = doc.get("id") or new_id()
        self._staged[(collection, doc_id)] = {**copy.deepcopy(doc), "id": doc_id}
        return doc_id

    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        self._staged[(collection, doc_id)] = {**copy.deepcopy(doc), "id": doc_id}

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> None:
        current = await self.get(collection, doc_id)
        if current is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        self._staged[(collection, doc_id)] = apply_changes(current, changes)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._staged[(collection, doc_id)] = _DELETED

    def commit(self) -> None:
        for (collection, doc_id), doc in self._staged.items():
            documents = self._store._collection(collection)
            if doc is _DELETED:
                documents.pop(doc_id, None)
            else:
                documents[doc_id] = doc


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store. Returned documents are copies; callers cannot mutate state."""

    def __init__(self, max_in_values: Optional[int] = -1):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._transaction_lock = asyncio.Lock()
        self.max_in_values = settings.FEED_MAX_BATCH_SIZE if max_in_values == -1 else max_in_values

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(name, {})

    async def query(
        self,
        collection: str,
        where: Optional[Sequence[Filter]] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        start_after: Optional[Sequence[Any]] = None,
    ) -> List[Dict[str, Any]]:
        where = list(where or [])
        order_by = list(order_by or [])
        check_fan_in(where, self.max_in_values)

        docs = [doc for doc in self._collection(collection).values() if all(f.matches(doc) for f in where)]
        if order_by:

            def order(a: Dict[str, Any], b: Dict[str, Any]) -> int:
                for field, direction in order_by:
                    result = compare_values(get_path(a, field), get_path(b, field))
                    if result:
                        return result * direction
                return 0

            docs.sort(key=functools.cmp_to_key(order))
            if start_after is not None:
                docs = [doc for doc in docs if _position_cmp(doc, start_after, order_by) > 0]
        if limit is not None:
            docs = docs[:limit]
        return [copy.deepcopy(doc) for doc in docs]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        doc_id = doc.get("id") or new_id()
        self._collection(collection)[doc_id] = {**copy.deepcopy(doc), "id": doc_id}
        return doc_id

    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        self._collection(collection)[doc_id] = {**copy.deepcopy(doc), "id": doc_id}

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> None:
        documents = self._collection(collection)
        if doc_id not in documents:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        documents[doc_id] = apply_changes(documents[doc_id], changes)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collection(collection).pop(doc_id, None)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._transaction_lock:
            txn = InMemoryTransaction(self)
            result = await fn(txn)
            txn.commit()
            return result

    def count(self, collection: str) -> int:
        return len(self._collection(collection))

"""
Motor-backed implementation of the `DocumentStore` contract.

Translation rules:

- the document `id` is stored as Mongo's `_id`;
- `Filter` predicates become a Mongo filter document (`array_contains` is a plain
  equality match, which Mongo applies to array members);
- `start_after` becomes an `$or` over the `order_by` fields so paging resumes strictly
  after the given position;
- `ArrayUnion` / `ArrayRemove` / `Increment` become `$addToSet` / `$pull` / `$inc`.

Every `PyMongoError` is re-raised as `UnavailableError`. Inside a transaction the driver
error propagates unchanged so `with_transaction` can act on its error labels;
`run_transaction` wraps whatever is left once retries are exhausted.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pymongo.errors import PyMongoError

from tasting_notes.config import settings
from tasting_notes.database.manager import DatabaseManager, db_manager
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
    new_id,
)
from tasting_notes.exceptions import NotFoundError, UnavailableError
from tasting_notes.managers.logging_manager import get_logger

logger = get_logger(prefix="[MongoStore]")

_RANGE_OPERATORS = {"<": "$lt", "<=": "$lte", ">": "$gt", ">=": "$gte", "!=": "$ne"}


def mongo_field(field: str) -> str:
    return "_id" if field == "id" else field


def to_mongo(doc: Dict[str, Any], doc_id: Optional[str] = None) -> Dict[str, Any]:
    body = {k: v for k, v in doc.items() if k != "id"}
    body["_id"] = doc_id or doc.get("id")
    return body


def from_mongo(doc: Dict[str, Any]) -> Dict[str, Any]:
    body = {k: v for k, v in doc.items() if k != "_id"}
    body["id"] = doc["_id"]
    return body


def build_filter(where: Sequence[Filter]) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = []
    for condition in where:
        field = mongo_field(condition.field)
        if condition.op in ("==", "array_contains"):
            clauses.append({field: condition.value})
        elif condition.op == "in":
            clauses.append({field: {"$in": list(condition.value)}})
        else:
            clauses.append({field: {_RANGE_OPERATORS[condition.op]: condition.value}})
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_start_after(order_by: OrderBy, position: Sequence[Any]) -> Dict[str, Any]:
    """`(a, b)` after `(x, y)` means `a beyond x`, or `a == x and b beyond y`."""
    branches = []
    for index, (field, direction) in enumerate(order_by[: len(position)]):
        branch = {mongo_field(f): position[i] for i, (f, _) in enumerate(order_by[:index])}
        branch[mongo_field(field)] = {"$gt" if direction > 0 else "$lt": position[index]}
        branches.append(branch)
    return {"$or": branches}


def build_update(changes: Dict[str, Any]) -> Dict[str, Any]:
    update: Dict[str, Dict[str, Any]] = {}
    for path, change in changes.items():
        field = mongo_field(path)
        if isinstance(change, ArrayUnion):
            update.setdefault("$addToSet", {})[field] = {"$each": list(change.values)}
        elif isinstance(change, ArrayRemove):
            update.setdefault("$pull", {})[field] = {"$in": list(change.values)}
        elif isinstance(change, Increment):
            update.setdefault("$inc", {})[field] = change.amount
        else:
            update.setdefault("$set", {})[field] = change
    return update


class MongoTransaction(Transaction):
    """Runs store operations inside a client session (or without one in fallback mode)."""

    def __init__(self, store: "MongoDocumentStore", session=None):
        self._store = store
        self._session = session

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self._store.get(collection, doc_id, session=self._session)

    async def insert(self, collection: str, doc: Dict[str, Any]) -> str:
        return await self._store.insert(collection, doc, session=self._session)

    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any]) -> None:
        await self._store.put(collection, doc_id, doc, session=self._session)

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> None:
        await self._store.update(collection, doc_id, changes, session=self._session)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._store.delete(collection, doc_id, session=self._session)


class MongoDocumentStore(DocumentStore):
    def __init__(self, manager: Optional[DatabaseManager] = None):
        self._manager = manager or db_manager
        self.max_in_values = None

    def _collection(self, name: str):
        try:
            return self._manager.get_collection(name)
        except ConnectionError as e:
            raise UnavailableError(str(e)) from e

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

        spec = build_filter(where)
        if order_by and start_after is not None:
            position = build_start_after(order_by, start_after)
            spec = {"$and": [spec, position]} if spec else position

        try:
            cursor = self._collection(collection).find(spec)
            if order_by:
                cursor = cursor.sort([(mongo_field(f), d) for f, d in order_by])
            if limit is not None:
                cursor = cursor.limit(limit)
            return [from_mongo(doc) async for doc in cursor]
        except PyMongoError as e:
            logger.error("Query on %s failed: %s", collection, e)
            raise UnavailableError(f"Query on {collection} failed") from e

    async def get(self, collection: str, doc_id: str, session=None) -> Optional[Dict[str, Any]]:
        try:
            doc = await self._collection(collection).find_one({"_id": doc_id}, session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error("Get %s/%s failed: %s", collection, doc_id, e)
            raise UnavailableError(f"Read from {collection} failed") from e
        return from_mongo(doc) if doc else None

    async def insert(self, collection: str, doc: Dict[str, Any], session=None) -> str:
        doc_id = doc.get("id") or new_id()
        try:
            await self._collection(collection).insert_one(to_mongo(doc, doc_id), session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error("Insert into %s failed: %s", collection, e)
            raise UnavailableError(f"Write to {collection} failed") from e
        return doc_id

    async def put(self, collection: str, doc_id: str, doc: Dict[str, Any], session=None) -> None:
        try:
            await self._collection(collection).replace_one(
                {"_id": doc_id}, to_mongo(doc, doc_id), upsert=True, session=session
            )
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error("Put %s/%s failed: %s", collection, doc_id, e)
            raise UnavailableError(f"Write to {collection} failed") from e

    async def update(self, collection: str, doc_id: str, changes: Dict[str, Any], session=None) -> None:
        try:
            result = await self._collection(collection).update_one(
                {"_id": doc_id}, build_update(changes), session=session
            )
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error("Update %s/%s failed: %s", collection, doc_id, e)
            raise UnavailableError(f"Write to {collection} failed") from e
        if result.matched_count == 0:
            raise NotFoundError(f"{collection}/{doc_id} not found")

    async def delete(self, collection: str, doc_id: str, session=None) -> None:
        try:
            await self._collection(collection).delete_one({"_id": doc_id}, session=session)
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error("Delete %s/%s failed: %s", collection, doc_id, e)
            raise UnavailableError(f"Delete from {collection} failed") from e

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        if not self._manager.transactions_supported:
            if settings.MONGODB_REQUIRE_TRANSACTIONS:
                raise UnavailableError("The MongoDB deployment does not support transactions")
            logger.warning("Transactions unsupported; applying writes without a session")
            return await fn(MongoTransaction(self))

        async def callback(session):
            return await fn(MongoTransaction(self, session))

        # with_transaction re-runs the callback on TransientTransactionError and retries
        # the commit on UnknownTransactionCommitResult (write conflicts between
        # concurrent follows or likes on the same document).
        try:
            async with await self._manager.client.start_session() as session:
                return await session.with_transaction(callback)
        except PyMongoError as e:
            logger.error("Transaction aborted: %s", e)
            raise UnavailableError("Transaction aborted") from e

    async def health_check(self) -> bool:
        return await self._manager.health_check()

"""
# Feed Merge Engine

Reusable combinator behind every paginated read: the shared-with-me planner, the
activity fanout reader, "my notes", bookmarks and the notification inbox.

## Building Blocks

*   **`SortSpec`**: a sort field plus direction, always tie-broken by `id` ascending so
    every feed has a stable total order.
*   **`merge()`**: union any number of source sequences, dedupe by id (first occurrence
    wins) and sort.
*   **`partition()`**: split an id list into batches no larger than the store's fan-in
    limit.
*   **`FeedCursor`**: the opaque, stateless pagination token handed to clients.
*   **`collect_page()`**: drives a set of `FeedSource`s round by round until a page is
    full.

## Pagination Across Sources

Each round asks every live source for up to `fetch_limit` documents strictly after the
current position. A source that returned a full chunk may have more documents beyond its
last one, so the merged list is cut at the **horizon**: the earliest "last document"
among the full chunks. Everything up to the horizon is complete and can be emitted;
everything after it is fetched again in the next round.

```
source A: a1 a2 a3 a4 |            (full chunk, last = a4)
source B: b1 b2       |            (exhausted)
merged:   a1 b1 a2 b2 a3 a4 ...    -> emit up to a4, resume after a4
```

The cursor returned to the caller is the position of the last emitted item, or the
horizon when the page could not be filled within `max_rounds`. Because every position is
a (sort value, id) pair and sources resume with `start_after`, concatenating all pages
yields every accepted item exactly once, in order.

## Failures

A failing or timed-out source is handed to the `on_source_error` policy. The policy
either raises (the whole read aborts) or returns, in which case the source is dropped
for the rest of the call and the page is marked `partial`. When every source fails the
last error propagates.
"""

import asyncio
import base64
import functools
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from tasting_notes.config import settings
from tasting_notes.database.store import ASCENDING, DESCENDING, OrderBy, compare_values, get_path
from tasting_notes.exceptions import PermissionDeniedError, UnavailableError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.utils.datetime_utils import ensure_utc

logger = get_logger(prefix="[FeedMerge]")

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")

Position = Tuple[Any, ...]
Document = Dict[str, Any]

SourceFetch = Callable[[Optional[Position], int], Awaitable[List[Document]]]
AcceptFn = Callable[[List[Document]], Awaitable[List[Optional[Any]]]]
SourceErrorPolicy = Callable[[str, Exception], None]


# Python type of the sort value for the sort fields used by the services. Cursor
# positions are checked against it before they reach a store comparison.
SORT_VALUE_TYPES: Dict[str, type] = {
    "date": datetime,
    "created_at": datetime,
    "timestamp": datetime,
    "rating": int,
    "title": str,
    "username": str,
}


@dataclass(frozen=True)
class SortSpec:
    """Sort key of a feed. The tie-break field is always ascending."""

    field: str
    descending: bool = True
    tie_break: str = "id"
    value_type: Optional[type] = None

    @property
    def key(self) -> str:
        return f"{self.field}:{'desc' if self.descending else 'asc'}"

    def order_by(self) -> OrderBy:
        return [(self.field, DESCENDING if self.descending else ASCENDING), (self.tie_break, ASCENDING)]

    def position(self, doc: Document) -> Position:
        return (get_path(doc, self.field), get_path(doc, self.tie_break))

    def expected_type(self) -> Optional[type]:
        return self.value_type or SORT_VALUE_TYPES.get(self.field)

    def compare(self, left: Position, right: Position) -> int:
        result = compare_values(left[0], right[0])
        if result:
            return -result if self.descending else result
        return compare_values(left[1], right[1])

    def compare_docs(self, left: Document, right: Document) -> int:
        return self.compare(self.position(left), self.position(right))


def merge(sources: Iterable[Iterable[Document]], sort: SortSpec) -> List[Document]:
    """Union `sources`, drop repeated ids (first occurrence wins) and sort totally."""
    seen = set()
    merged: List[Document] = []
    for source in sources:
        for doc in source:
            doc_id = get_path(doc, sort.tie_break)
            if doc_id in seen:
                continue
            seen.add(doc_id)
            merged.append(doc)
    merged.sort(key=functools.cmp_to_key(sort.compare_docs))
    return merged


def partition(ids: Sequence[str], size: Optional[int]) -> List[List[str]]:
    """Split `ids` (deduplicated, order kept) into batches of at most `size`."""
    unique = list(dict.fromkeys(ids))
    if not unique:
        return []
    if not size or size <= 0:
        return [unique]
    return [unique[start:start + size] for start in range(0, len(unique), size)]


def fan_in_size(store_limit: Optional[int]) -> int:
    """Batch size for `in` queries: the configured constant, capped by the store's limit."""
    if store_limit is None:
        return settings.FEED_MAX_BATCH_SIZE
    return min(settings.FEED_MAX_BATCH_SIZE, store_limit)


# --- Cursor ---


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$dt": value.isoformat()}
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) != {"$dt"}:
            raise ValidationError("Malformed cursor")
        return ensure_utc(datetime.fromisoformat(value["$dt"]))
    return value


def _matches_type(value: Any, expected: Optional[type]) -> bool:
    if value is None or expected is None:
        return True
    if isinstance(value, bool):
        return expected is bool
    if expected is float:
        return isinstance(value, (int, float))
    return isinstance(value, expected)


@dataclass(frozen=True)
class FeedCursor:
    """Position of the last item a client has seen, bound to the feed's sort key."""

    sort_key: str
    position: Position

    def encode(self) -> str:
        payload = {"s": self.sort_key, "p": [_encode_value(v) for v in self.position]}
        raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    @classmethod
    def decode(cls, token: str, sort: SortSpec) -> "FeedCursor":
        try:
            padded = token + "=" * (-len(token) % 4)
            payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
            sort_key = payload["s"]
            position = tuple(_decode_value(v) for v in payload["p"])
        except ValidationError:
            raise
        except (ValueError, TypeError, KeyError, UnicodeError) as e:
            raise ValidationError("Malformed cursor") from e
        if sort_key != sort.key:
            raise ValidationError(f"Cursor was issued for sort '{sort_key}', not '{sort.key}'")
        if len(position) != 2:
            raise ValidationError("Malformed cursor")
        value, tie_break = position
        if not isinstance(tie_break, str) or not _matches_type(value, sort.expected_type()):
            raise ValidationError("Malformed cursor")
        return cls(sort_key=sort_key, position=position)


def decode_cursor(token: Optional[str], sort: SortSpec) -> Optional[FeedCursor]:
    if not token:
        return None
    return FeedCursor.decode(token, sort)


# --- Sources and page collection ---


@dataclass
class FeedSource:
    """
    One independently queried eligibility set.

    `fetch(position, limit)` returns up to `limit` documents strictly after `position`
    in the feed's sort order (all of them from the start when `position` is None).
    """

    name: str
    fetch: SourceFetch
    timeout: Optional[float] = None


@dataclass
class PageResult:
    items: List[Any] = field(default_factory=list)
    next_cursor: Optional[str] = None
    partial: bool = False
    failed_sources: List[str] = field(default_factory=list)


def skip_failed_source(source_name: str, error: Exception) -> None:
    """Default policy: permission and validation errors abort, anything else is skipped."""
    if isinstance(error, (PermissionDeniedError, ValidationError)):
        raise error
    logger.warning("Skipping source %s: %s", source_name, error)


def fail_on_source_error(source_name: str, error: Exception) -> None:
    """Policy for primary reads, where any source failure fails the request."""
    raise error


async def _run_source(source: FeedSource, position: Optional[Position], limit: int) -> List[Document]:
    if source.timeout is None:
        return await source.fetch(position, limit)
    try:
        return await asyncio.wait_for(source.fetch(position, limit), timeout=source.timeout)
    except asyncio.TimeoutError as e:
        raise UnavailableError(f"Source {source.name} timed out after {source.timeout}s") from e


async def _accept_all(docs: List[Document]) -> List[Optional[Any]]:
    return list(docs)


async def collect_page(
    sources: Sequence[FeedSource],
    sort: SortSpec,
    page_size: int,
    cursor: Optional[FeedCursor] = None,
    accept: Optional[AcceptFn] = None,
    fetch_limit: Optional[int] = None,
    max_rounds: Optional[int] = None,
    on_source_error: SourceErrorPolicy = skip_failed_source,
) -> PageResult:
    """
    Assemble one page of at most `page_size` accepted items from `sources`.

    Args:
        sources: Eligibility sets to merge. Their documents must carry the sort field and id.
        sort: Total order of the feed.
        page_size: Maximum number of items on the page.
        cursor: Position to resume after (from a previous page's `next_cursor`).
        accept: Async stage receiving each merged chunk in order and returning, for every
            document, the item to emit or `None` to drop it (access checks, enrichment,
            client-side filters).
        fetch_limit: Documents requested per source per round.
        max_rounds: Upper bound on fetch rounds for this page.
        on_source_error: Failure policy, see module docstring.

    Returns:
        PageResult: items, encoded `next_cursor` (None when every source is exhausted),
        and the partial-failure flag.
    """
    if page_size <= 0:
        raise ValidationError("page_size must be positive")
    accept = accept or _accept_all
    fetch_limit = max(fetch_limit or settings.FEED_SOURCE_FETCH_LIMIT, 1)
    max_rounds = max_rounds or settings.FEED_MAX_FILL_ROUNDS

    result = PageResult()
    if not sources:
        return result

    position = cursor.position if cursor else None
    collected: List[Tuple[Position, Any]] = []
    live = list(sources)
    succeeded = False
    last_error: Optional[Exception] = None

    for _ in range(max_rounds):
        if not live:
            break
        responses = await asyncio.gather(
            *(_run_source(source, position, fetch_limit) for source in live), return_exceptions=True
        )

        fetched: List[Tuple[FeedSource, List[Document]]] = []
        for source, response in zip(live, responses):
            if isinstance(response, BaseException):
                if not isinstance(response, Exception):
                    raise response
                on_source_error(source.name, response)
                last_error = response
                result.partial = True
                result.failed_sources.append(source.name)
                continue
            succeeded = True
            fetched.append((source, response))

        if not succeeded and last_error is not None:
            raise last_error

        horizon: Optional[Position] = None
        for _, docs in fetched:
            if len(docs) >= fetch_limit:
                last = sort.position(docs[-1])
                if horizon is None or sort.compare(last, horizon) < 0:
                    horizon = last

        # A short chunk means the source is exhausted, unless part of it lies past the
        # horizon and has to be fetched again.
        live = [
            source
            for source, docs in fetched
            if len(docs) >= fetch_limit
            or (horizon is not None and docs and sort.compare(sort.position(docs[-1]), horizon) > 0)
        ]

        merged = merge([docs for _, docs in fetched], sort)
        if horizon is not None:
            merged = [doc for doc in merged if sort.compare(sort.position(doc), horizon) <= 0]

        if merged:
            accepted = await accept(merged)
            for doc, item in zip(merged, accepted):
                if item is None:
                    continue
                collected.append((sort.position(doc), item))
                if len(collected) >= page_size:
                    break

        if len(collected) >= page_size:
            result.items = [item for _, item in collected]
            result.next_cursor = FeedCursor(sort.key, collected[-1][0]).encode()
            return result

        if horizon is None:
            # Every remaining source is exhausted.
            position = None
            break
        position = horizon

    result.items = [item for _, item in collected]
    if position is not None and live:
        result.next_cursor = FeedCursor(sort.key, position).encode()
    if result.failed_sources:
        logger.info("Page assembled without sources %s", result.failed_sources)
    return result


async def bounded_map(
    fn: Callable[[ItemT], Awaitable[ResultT]],
    items: Iterable[ItemT],
    concurrency: Optional[int] = None,
) -> List[ResultT]:
    """Run `fn` over `items` concurrently, at most `concurrency` at a time. Order is kept."""
    semaphore = asyncio.Semaphore(concurrency or settings.ENRICHMENT_CONCURRENCY)

    async def run(item: ItemT) -> ResultT:
        async with semaphore:
            return await fn(item)

    return await asyncio.gather(*(run(item) for item in items))

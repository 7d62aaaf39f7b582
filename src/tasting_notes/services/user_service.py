"""
# User Service

Principal records: creation, profile updates and the lookups other services use for
read-time enrichment.

`get_users()` is the enrichment join used by every feed. It fetches ids in fan-in sized
batches concurrently and treats a failed batch as "those principals are missing", so a
single store hiccup degrades to dropped feed items rather than a failed page.

`resolve_recipients()` canonicalises share recipients: callers may pass principal ids or
email addresses, and only principal ids are ever stored.

`discover_users()` is the public directory: principals with a public profile, ordered by
username and paged with the shared cursor format. Private principals are reachable only
through direct links and follow requests.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import DocumentStore, Filter
from tasting_notes.exceptions import InvalidStateError, NotFoundError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.feed_models import FeedPage
from tasting_notes.models.user_models import (
    DIETARY_PREFERENCES_OPTIONS,
    CreateUserRequest,
    UpdateProfileRequest,
    UserDocument,
    UserSummary,
)
from tasting_notes.services.feed_merge import (
    FeedSource,
    SortSpec,
    bounded_map,
    collect_page,
    decode_cursor,
    fail_on_source_error,
    fan_in_size,
    partition,
)
from tasting_notes.utils.datetime_utils import utc_now

logger = get_logger(prefix="[UserService]")

USERS = "users"
DIRECTORY_SORT = SortSpec("username", descending=False)


def parse_user(doc: Dict) -> Optional[UserDocument]:
    try:
        return UserDocument(**doc)
    except PydanticValidationError as e:
        logger.warning("Ignoring malformed user record %s: %s", doc.get("id"), e)
        return None


class UserService:
    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or get_document_store()

    async def create_user(self, user_id: str, request: CreateUserRequest) -> UserDocument:
        """
        Register a principal. The id comes from the external auth provider.

        Raises:
            InvalidStateError: the id or the email is already registered.
        """
        if not user_id or not user_id.strip():
            raise ValidationError("User id is required")
        if await self.store.get(USERS, user_id):
            raise InvalidStateError(f"User {user_id} already exists", code="user_exists")

        email = request.email.strip().lower() if request.email else None
        if email:
            if "@" not in email:
                raise ValidationError(f"Invalid email address: {request.email}")
            if await self.find_by_email(email):
                raise InvalidStateError(f"Email {email} is already registered", code="email_taken")

        user = UserDocument(
            id=user_id,
            username=request.username.strip(),
            email=email,
            bio=request.bio,
            photo_url=request.photo_url,
        )
        user.settings.is_private = request.is_private
        await self.store.put(USERS, user.id, user.model_dump())
        logger.info("Created user %s (private=%s)", user.id, request.is_private)
        return user

    async def get_user(self, user_id: str) -> UserDocument:
        doc = await self.store.get(USERS, user_id)
        if doc is None:
            raise NotFoundError(f"User {user_id} not found")
        user = parse_user(doc)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def find_by_email(self, email: str) -> Optional[UserDocument]:
        docs = await self.store.query(USERS, where=[Filter("email", "==", email.strip().lower())], limit=1)
        return parse_user(docs[0]) if docs else None

    async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserDocument]:
        """Fetch principals by id. Unknown ids and failed batches are omitted."""
        batches = partition(list(user_ids), fan_in_size(self.store.max_in_values))

        async def fetch(batch: List[str]) -> List[Dict]:
            try:
                return await self.store.query(USERS, where=[Filter("id", "in", batch)])
            except Exception as e:
                logger.warning("User lookup for %d ids failed: %s", len(batch), e)
                return []

        found: Dict[str, UserDocument] = {}
        for docs in await bounded_map(fetch, batches):
            for doc in docs:
                user = parse_user(doc)
                if user is not None:
                    found[user.id] = user
        return found

    async def update_profile(self, user_id: str, request: UpdateProfileRequest) -> UserDocument:
        await self.get_user(user_id)
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No profile fields to update")

        if "username" in changes:
            if changes["username"] is None or not changes["username"].strip():
                raise ValidationError("Username cannot be blank")
            changes["username"] = changes["username"].strip()
        if changes.get("dietary_preferences") is not None:
            unknown = [p for p in changes["dietary_preferences"] if p not in DIETARY_PREFERENCES_OPTIONS]
            if unknown:
                raise ValidationError(f"Unknown dietary preferences: {', '.join(unknown)}")
        if changes.get("allergies") is not None:
            changes["allergies"] = [a.strip() for a in changes["allergies"] if a and a.strip()]
        if "settings" in changes and changes["settings"] is None:
            del changes["settings"]

        changes["updated_at"] = utc_now()
        await self.store.update(USERS, user_id, changes)
        logger.info("Updated profile of %s: %s", user_id, sorted(changes))
        return await self.get_user(user_id)

    async def resolve_recipients(self, values: Iterable[str], exclude: Optional[str] = None) -> List[str]:
        """
        Map principal ids and email addresses to principal ids.

        Duplicates and `exclude` (the owner) are dropped; order is kept.

        Raises:
            ValidationError: a value matches no principal.
        """
        wanted = [v.strip() for v in values if v and v.strip()]
        emails = [v.lower() for v in wanted if "@" in v]
        ids = [v for v in wanted if "@" not in v]

        by_email: Dict[str, str] = {}
        for email in dict.fromkeys(emails):
            user = await self.find_by_email(email)
            if user is None:
                raise ValidationError(f"No user registered with email {email}")
            by_email[email] = user.id

        known = await self.store.get_many(USERS, ids)
        unknown = [i for i in ids if i not in known]
        if unknown:
            raise ValidationError(f"Unknown recipients: {', '.join(unknown)}")

        resolved: List[str] = []
        for value in wanted:
            user_id = by_email[value.lower()] if "@" in value else value
            if user_id != exclude and user_id not in resolved:
                resolved.append(user_id)
        return resolved

    async def discover_users(
        self, viewer_id: str, page_size: Optional[int] = None, cursor: Optional[str] = None
    ) -> FeedPage[UserSummary]:
        """
        List public principals by username, excluding the viewer.

        Raises:
            ValidationError: bad page size or cursor.
        """
        page_size = page_size or settings.DISCOVER_PAGE_SIZE
        if page_size > settings.FEED_MAX_PAGE_SIZE:
            raise ValidationError(f"page_size cannot exceed {settings.FEED_MAX_PAGE_SIZE}")
        where = [Filter("settings.is_private", "==", False)]

        async def fetch(position, limit):
            return await self.store.query(
                USERS, where=where, order_by=DIRECTORY_SORT.order_by(), limit=limit, start_after=position
            )

        async def accept(docs: List[Dict]) -> List[Optional[UserSummary]]:
            accepted: List[Optional[UserSummary]] = []
            for doc in docs:
                user = parse_user(doc) if doc.get("id") != viewer_id else None
                accepted.append(UserSummary.from_document(user) if user else None)
            return accepted

        page = await collect_page(
            [FeedSource("directory", fetch, timeout=settings.STORE_TIMEOUT_SECONDS)],
            DIRECTORY_SORT,
            page_size,
            cursor=decode_cursor(cursor, DIRECTORY_SORT),
            accept=accept,
            on_source_error=fail_on_source_error,
        )
        return FeedPage[UserSummary](items=page.items, next_cursor=page.next_cursor)

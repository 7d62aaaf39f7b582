"""
# Catalog Service

Autocomplete catalog behind note entry: restaurants, their menu items, and recipe
creators.

## Search

Every search is a case-insensitive prefix match on `name_key`, expressed as the range
`[term, term + "\\uf8ff"]` so it runs on the `name_key` index. Results are ordered by
name and capped at `CATALOG_SEARCH_LIMIT`. A blank term returns nothing.

## Add If Absent

Entry ids are derived from the normalised name (menu items also from their restaurant),
so adding a name that already exists returns the stored entry unchanged. The existence
check and the write run in one transaction; two principals adding the same restaurant
at once end up with a single document.

## Use Counts

`record_menu_item_use()` bumps a menu item's `count` each time a note is written against
it. The count is returned with search results.
"""

from typing import Dict, List, Optional
import uuid

from pydantic import ValidationError as PydanticValidationError

from tasting_notes.config import settings
from tasting_notes.database import get_document_store
from tasting_notes.database.store import ASCENDING, DocumentStore, Filter, Increment, Transaction
from tasting_notes.exceptions import NotFoundError, ValidationError
from tasting_notes.managers.logging_manager import get_logger
from tasting_notes.models.catalog_models import (
    MenuItemCreate,
    MenuItemDocument,
    RecipeCreatorCreate,
    RecipeCreatorDocument,
    RestaurantDocument,
)
from tasting_notes.utils.datetime_utils import utc_now

logger = get_logger(prefix="[Catalog]")

RESTAURANTS = "restaurants"
MENU_ITEMS = "menu_items"
RECIPE_CREATORS = "recipe_creators"

PREFIX_END = "\uf8ff"  # sorts after every character a name can contain
_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "tasting-notes/catalog")


def name_key(name: Optional[str]) -> str:
    """Normalised lookup key of a display name."""
    return " ".join((name or "").split()).lower()


def _derived_id(prefix: str, *parts: str) -> str:
    return f"{prefix}_{uuid.uuid5(_ID_NAMESPACE, '/'.join(parts)).hex}"


def restaurant_id_for(name: str) -> str:
    return _derived_id("rst", name_key(name))


def menu_item_id_for(restaurant_id: str, name: str) -> str:
    return _derived_id("itm", restaurant_id, name_key(name))


def recipe_creator_id_for(name: str) -> str:
    return _derived_id("crt", name_key(name))


def _required_key(name: Optional[str], what: str) -> str:
    key = name_key(name)
    if not key:
        raise ValidationError(f"{what} name is required")
    return key


class CatalogService:
    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or get_document_store()

    # --- Search ---

    async def _prefix_search(
        self, collection: str, term: Optional[str], where: Optional[List[Filter]] = None
    ) -> List[Dict]:
        key = name_key(term)
        if not key:
            return []
        conditions = list(where or [])
        conditions += [Filter("name_key", ">=", key), Filter("name_key", "<=", key + PREFIX_END)]
        return await self.store.query(
            collection,
            where=conditions,
            order_by=[("name_key", ASCENDING), ("id", ASCENDING)],
            limit=settings.CATALOG_SEARCH_LIMIT,
        )

    async def search_restaurants(self, term: Optional[str]) -> List[RestaurantDocument]:
        return _parse_all(RestaurantDocument, await self._prefix_search(RESTAURANTS, term))

    async def search_menu_items(
        self, term: Optional[str], restaurant_id: Optional[str] = None, restaurant_name: Optional[str] = None
    ) -> List[MenuItemDocument]:
        """Menu items by name prefix, optionally limited to one restaurant given by id or name."""
        if restaurant_id is None and name_key(restaurant_name):
            restaurant_id = restaurant_id_for(restaurant_name)
        where = [Filter("restaurant_id", "==", restaurant_id)] if restaurant_id else []
        return _parse_all(MenuItemDocument, await self._prefix_search(MENU_ITEMS, term, where))

    async def search_recipe_creators(self, term: Optional[str]) -> List[RecipeCreatorDocument]:
        return _parse_all(RecipeCreatorDocument, await self._prefix_search(RECIPE_CREATORS, term))

    # --- Lookups ---

    async def get_restaurant(self, restaurant_id: str) -> RestaurantDocument:
        doc = await self.store.get(RESTAURANTS, restaurant_id)
        if doc is None:
            raise NotFoundError(f"Restaurant {restaurant_id} not found")
        return RestaurantDocument(**doc)

    async def get_menu_item(self, item_id: str) -> MenuItemDocument:
        doc = await self.store.get(MENU_ITEMS, item_id)
        if doc is None:
            raise NotFoundError(f"Menu item {item_id} not found")
        return MenuItemDocument(**doc)

    async def get_recipe_creator(self, creator_id: str) -> RecipeCreatorDocument:
        doc = await self.store.get(RECIPE_CREATORS, creator_id)
        if doc is None:
            raise NotFoundError(f"Recipe creator {creator_id} not found")
        return RecipeCreatorDocument(**doc)

    # --- Add if absent ---

    async def _add_if_absent(self, collection: str, doc_id: str, new_doc: Dict) -> Dict:
        async def add(txn: Transaction) -> Dict:
            existing = await txn.get(collection, doc_id)
            if existing is not None:
                return existing
            await txn.put(collection, doc_id, new_doc)
            logger.info("Added %s %s (%s)", collection, doc_id, new_doc["name_key"])
            return new_doc

        return await self.store.run_transaction(add)

    async def add_restaurant(self, name: str, address: Optional[str] = None) -> RestaurantDocument:
        """
        Register a restaurant by name, or return the one already registered.

        Raises:
            ValidationError: the name is blank.
        """
        key = _required_key(name, "Restaurant")
        restaurant = RestaurantDocument(
            id=restaurant_id_for(key), name=name.strip(), name_key=key, address=(address or "").strip() or None
        )
        return RestaurantDocument(**await self._add_if_absent(RESTAURANTS, restaurant.id, restaurant.model_dump()))

    async def add_menu_item(self, restaurant_id: str, payload: MenuItemCreate) -> MenuItemDocument:
        """
        Register a menu item at an existing restaurant, or return the existing item.

        Raises:
            ValidationError: the name is blank.
            NotFoundError: the restaurant does not exist.
        """
        key = _required_key(payload.name, "Menu item")
        restaurant = await self.get_restaurant(restaurant_id)
        item = MenuItemDocument(
            id=menu_item_id_for(restaurant.id, key),
            restaurant_id=restaurant.id,
            restaurant_name=restaurant.name,
            name=payload.name.strip(),
            name_key=key,
            description=payload.description,
            price=payload.price,
            category=payload.category,
        )
        return MenuItemDocument(**await self._add_if_absent(MENU_ITEMS, item.id, item.model_dump()))

    async def add_recipe_creator(self, payload: RecipeCreatorCreate) -> RecipeCreatorDocument:
        """
        Register a recipe creator, or return the existing one with the same name.

        Raises:
            ValidationError: the name is blank.
        """
        key = _required_key(payload.name, "Recipe creator")
        creator = RecipeCreatorDocument(
            id=recipe_creator_id_for(key),
            name=payload.name.strip(),
            name_key=key,
            type=payload.type,
            url=(payload.url or "").strip() or None,
        )
        return RecipeCreatorDocument(**await self._add_if_absent(RECIPE_CREATORS, creator.id, creator.model_dump()))

    async def record_menu_item_use(self, item_id: str) -> None:
        await self.store.update(MENU_ITEMS, item_id, {"count": Increment(1), "updated_at": utc_now()})


def _parse_all(model, docs: List[Dict]) -> List:
    parsed = []
    for doc in docs:
        try:
            parsed.append(model(**doc))
        except PydanticValidationError as e:
            logger.warning("Skipping malformed catalog entry %s: %s", doc.get("id"), e)
    return parsed

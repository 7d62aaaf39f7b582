"""
# Catalog Models

Shared autocomplete entries that notes point at: restaurants, the menu items served at
a restaurant, and recipe creators.

Entries are keyed by their normalised name (`name_key`: whitespace collapsed, lower
case), so "Chez Panisse" and " chez  panisse" are the same restaurant. Ids are derived
from that key, which makes "add if absent" idempotent without a lookup by name.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tasting_notes.utils.datetime_utils import utc_now


class RecipeCreatorType(str, Enum):
    PERSON = "person"
    WEBSITE = "website"
    BOOK = "book"


class RestaurantDocument(BaseModel):
    """Stored restaurant (`restaurants` collection)."""

    id: str
    name: str = Field(..., description="Display name as first entered")
    name_key: str
    address: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class MenuItemDocument(BaseModel):
    """Stored menu item (`menu_items` collection), scoped to one restaurant."""

    id: str
    restaurant_id: str
    restaurant_name: str
    name: str
    name_key: str
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    count: int = Field(0, description="Notes that used this item")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RecipeCreatorDocument(BaseModel):
    """Stored recipe creator (`recipe_creators` collection)."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: str
    name_key: str
    type: RecipeCreatorType = RecipeCreatorType.WEBSITE
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class RestaurantCreate(BaseModel):
    name: str = Field(..., max_length=120)
    address: Optional[str] = Field(None, max_length=300)


class MenuItemCreate(BaseModel):
    name: str = Field(..., max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=60)


class RecipeCreatorCreate(BaseModel):
    name: str = Field(..., max_length=120)
    type: RecipeCreatorType = RecipeCreatorType.WEBSITE
    url: Optional[str] = None

"""
Catalog routes: autocomplete lookups and add-if-absent for note entry.

- `GET /catalog/restaurants?q=` - Restaurants by name prefix
- `POST /catalog/restaurants` - Register a restaurant (returns the existing one by name)
- `GET /catalog/restaurants/{id}`
- `POST /catalog/restaurants/{id}/menu-items` - Register a menu item at a restaurant
- `GET /catalog/menu-items?q=&restaurant_id=&restaurant=` - Menu items by name prefix
- `GET /catalog/recipe-creators?q=` - Recipe creators by name prefix
- `POST /catalog/recipe-creators` - Register a recipe creator
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from tasting_notes.models.catalog_models import (
    MenuItemCreate,
    MenuItemDocument,
    RecipeCreatorCreate,
    RecipeCreatorDocument,
    RestaurantCreate,
    RestaurantDocument,
)
from tasting_notes.routes.dependencies import get_catalog_service, get_current_user_id
from tasting_notes.services.catalog_service import CatalogService

router = APIRouter(prefix="/catalog", tags=["catalog"])


# Restaurants


@router.get("/restaurants", response_model=List[RestaurantDocument])
async def search_restaurants(
    q: str = Query("", description="Name prefix, case-insensitive"),
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.search_restaurants(q)


@router.post("/restaurants", response_model=RestaurantDocument, status_code=status.HTTP_201_CREATED)
async def add_restaurant(
    request: RestaurantCreate,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.add_restaurant(request.name, request.address)


@router.get("/restaurants/{restaurant_id}", response_model=RestaurantDocument)
async def get_restaurant(
    restaurant_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.get_restaurant(restaurant_id)


@router.post(
    "/restaurants/{restaurant_id}/menu-items", response_model=MenuItemDocument, status_code=status.HTTP_201_CREATED
)
async def add_menu_item(
    restaurant_id: str,
    request: MenuItemCreate,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    Register a menu item, or return the item of the same name at this restaurant.

    Raises:
        HTTPException(404): The restaurant does not exist.
    """
    return await catalog.add_menu_item(restaurant_id, request)


# Menu items


@router.get("/menu-items", response_model=List[MenuItemDocument])
async def search_menu_items(
    q: str = Query("", description="Name prefix, case-insensitive"),
    restaurant_id: Optional[str] = Query(None),
    restaurant: Optional[str] = Query(None, description="Restaurant name, used when no id is given"),
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.search_menu_items(q, restaurant_id=restaurant_id, restaurant_name=restaurant)


# Recipe creators


@router.get("/recipe-creators", response_model=List[RecipeCreatorDocument])
async def search_recipe_creators(
    q: str = Query("", description="Name prefix, case-insensitive"),
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.search_recipe_creators(q)


@router.post("/recipe-creators", response_model=RecipeCreatorDocument, status_code=status.HTTP_201_CREATED)
async def add_recipe_creator(
    request: RecipeCreatorCreate,
    user_id: str = Depends(get_current_user_id),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.add_recipe_creator(request)

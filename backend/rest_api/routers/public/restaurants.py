"""
Public restaurant profile, read by the customer ordering page.
"""

from fastapi import APIRouter, Depends

from shared.utils.schemas import RestaurantPublicOutput
from rest_api.repositories import OrderStore, get_order_store
from rest_api.services.domain.restaurant_service import RestaurantService

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/restaurants/{slug}", response_model=RestaurantPublicOutput)
def get_restaurant_by_slug(
    slug: str,
    store: OrderStore = Depends(get_order_store),
):
    """Served from the in-process cache; at most one TTL stale."""
    return RestaurantService(store).get_public_by_slug(slug)

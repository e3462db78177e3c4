"""
Restaurant Domain Service.

Public restaurant profile served through a process-local TTL cache. Each
API instance has its own copy, so readers see at most
``public_cache_ttl_seconds`` of staleness; writers on this instance call
``invalidate`` for the restaurant they changed.
"""

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.infrastructure.cache import TTLCache
from shared.utils.exceptions import RestaurantNotFoundError
from shared.utils.schemas import RestaurantPublicOutput
from rest_api.models import Restaurant
from rest_api.repositories import OrderStore

logger = get_logger(__name__)

public_restaurant_cache = TTLCache(default_ttl=settings.public_cache_ttl_seconds)


def _slug_key(slug: str) -> str:
    return f"restaurant:slug:{slug}"


def _id_key(restaurant_id: int) -> str:
    return f"restaurant:id:{restaurant_id}"


def _to_public(restaurant: Restaurant) -> RestaurantPublicOutput:
    return RestaurantPublicOutput(
        id=restaurant.id,
        name=restaurant.name,
        slug=restaurant.slug,
        phone=restaurant.phone,
        address=restaurant.address,
        tax_percentage=(
            restaurant.tax_percentage
            if restaurant.tax_percentage is not None
            else settings.default_tax_percentage
        ),
        accepts_online_payment=bool(restaurant.cashfree_vendor_id),
    )


class RestaurantService:
    def __init__(self, store: OrderStore, cache: TTLCache = public_restaurant_cache):
        self._store = store
        self._cache = cache

    def get_public_by_slug(self, slug: str) -> RestaurantPublicOutput:
        slug = slug.strip().lower()

        def load() -> RestaurantPublicOutput | None:
            restaurant = self._store.get_restaurant_by_slug(slug)
            if restaurant is None or not restaurant.is_active:
                return None
            return _to_public(restaurant)

        public = self._cache.get_or_load(_slug_key(slug), load)
        if public is None:
            raise RestaurantNotFoundError(slug)
        return public

    def get_public_by_id(self, restaurant_id: int) -> RestaurantPublicOutput:
        def load() -> RestaurantPublicOutput | None:
            restaurant = self._store.get_restaurant(restaurant_id)
            if restaurant is None or not restaurant.is_active:
                return None
            return _to_public(restaurant)

        public = self._cache.get_or_load(_id_key(restaurant_id), load)
        if public is None:
            raise RestaurantNotFoundError(restaurant_id)
        return public

    def invalidate(self, restaurant: Restaurant) -> None:
        """Drop cached views of a restaurant after a write."""
        self._cache.invalidate(_id_key(restaurant.id), _slug_key(restaurant.slug))
        logger.debug("Restaurant cache invalidated", restaurant_id=restaurant.id)

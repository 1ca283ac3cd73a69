"""Discovery pipeline: catalog snapshot -> filters -> ranking -> cards.

The ``derive_*`` functions are pure; ``DiscoveryService`` owns the loaded
catalog, the tag lookups and a small memo keyed by the filter tuple.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

from loguru import logger

from config import Configuration
from models import Card, DishBundle, LatLng, Restaurant, RestaurantBundle
from services import cards as card_adapters
from services.catalog import load_catalog, load_menu_items
from services.fallback import FallbackSearchBroker
from services.places import GooglePlacesClient
from services.quality import resolve_quality, sufficiency_tier
from services.ranking import dishes_with_distances, rank_dishes, rank_restaurants, with_distances
from services.reviews import AggregationResult, aggregate_catalog, aggregate_dishes
from services.store import DocumentStore
from services.tag_facets import TagFacetIndex, TagFacetMatch, apply_tag_match
from services.taxonomy import (
    ALL_CATEGORY,
    NEAR_ME_CATEGORY,
    infer_facets_from_text,
    normalize_category_value,
    query_tokens,
)


class ViewMode(str, Enum):
    RESTAURANT = "restaurant"
    DISH = "dish"


class ResultState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    NO_TAG_MATCHES = "no_tag_matches"


@dataclass(frozen=True)
class DiscoveryFilters:
    query: str = ""
    category: str = ALL_CATEGORY
    price_level: Optional[int] = None
    tag_filter: Optional[str] = None
    near_me: bool = False
    view_mode: ViewMode = ViewMode.RESTAURANT
    location: Optional[LatLng] = None

    @property
    def near_me_active(self) -> bool:
        return self.near_me or self.category == NEAR_ME_CATEGORY

    @property
    def has_narrowing(self) -> bool:
        return bool(
            self.tag_filter
            or self.price_level is not None
            or self.category not in (ALL_CATEGORY, NEAR_ME_CATEGORY)
        )

    def cache_key(self) -> Tuple[Hashable, ...]:
        return (
            self.query.strip().lower(),
            self.category,
            self.price_level,
            self.tag_filter,
            self.near_me_active,
            self.view_mode.value,
            self.location,
        )


@dataclass(frozen=True)
class Catalog:
    restaurants: Tuple[RestaurantBundle, ...]
    version: int
    failures: int = 0
    loaded_at: float = 0.0

    @property
    def by_id(self) -> Dict[str, Restaurant]:
        return {b.id: b.restaurant for b in self.restaurants}


@dataclass
class DiscoveryResult:
    state: ResultState
    view_mode: ViewMode
    cards: List[Card] = field(default_factory=list)
    external_cards: List[Card] = field(default_factory=list)
    location_required: bool = False
    can_clear_filters: bool = False
    fallback_loading: bool = False
    fallback_pending: bool = False

    @property
    def local_count(self) -> int:
        return len(self.cards)

    @property
    def all_cards(self) -> List[Card]:
        return [*self.cards, *self.external_cards]


def build_bundles(restaurants: Sequence[Restaurant], aggregation: AggregationResult) -> List[RestaurantBundle]:
    bundles: List[RestaurantBundle] = []
    for restaurant in restaurants:
        aggregate = aggregation.aggregates.get(restaurant.id)
        if aggregate is None:
            continue
        bundles.append(
            RestaurantBundle(
                restaurant=restaurant,
                aggregate=aggregate,
                quality_percentage=resolve_quality(restaurant, aggregate.reviews),
                sufficiency_tier=sufficiency_tier(aggregate.review_count),
            )
        )
    return bundles


def _matches_category(bundle: RestaurantBundle, category: str) -> bool:
    if category in (ALL_CATEGORY, NEAR_ME_CATEGORY):
        return True
    if category in bundle.restaurant.cuisines:
        return True
    return category in bundle.restaurant.cuisine.lower()


def _matches_text(bundle: RestaurantBundle, parsed_cuisines: List[str], tokens: List[str]) -> bool:
    cuisines = bundle.restaurant.cuisines
    cuisine_lower = bundle.restaurant.cuisine.lower()
    name_lower = bundle.restaurant.name.lower()
    if any(c in cuisines or c in cuisine_lower for c in parsed_cuisines):
        return True
    return any(
        token in name_lower or token in cuisine_lower or any(token in c for c in cuisines)
        for token in tokens
    )


def filter_restaurants(bundles: Sequence[RestaurantBundle], filters: DiscoveryFilters) -> List[RestaurantBundle]:
    """Category, free-text and price narrowing (tag facets are applied separately)."""
    out = [b for b in bundles if _matches_category(b, filters.category)]
    if filters.query.strip():
        parsed = infer_facets_from_text(filters.query)
        tokens = query_tokens(filters.query)
        out = [b for b in out if _matches_text(b, parsed.cuisines, tokens)]
    if filters.price_level is not None:
        out = [b for b in out if b.restaurant.price_level == filters.price_level]
    return out


def derive_restaurants(
    bundles: Sequence[RestaurantBundle],
    filters: DiscoveryFilters,
    tag_match: Optional[TagFacetMatch] = None,
) -> List[RestaurantBundle]:
    """Pure: filter, intersect with the tag facet, measure and rank."""
    narrowed = apply_tag_match(filter_restaurants(bundles, filters), tag_match)
    measured = with_distances(narrowed, filters.location)
    return rank_restaurants(measured, near_me=filters.near_me_active and filters.location is not None)


def filter_dishes(dishes: Sequence[DishBundle], filters: DiscoveryFilters) -> List[DishBundle]:
    out: List[DishBundle] = []
    category = filters.category
    text = filters.query.strip()
    parsed = infer_facets_from_text(text) if text else None
    tokens = query_tokens(text) if text else []
    for dish in dishes:
        dish_category = (dish.menu_item.category or "").lower().strip()
        if category not in (ALL_CATEGORY, NEAR_ME_CATEGORY):
            # stored categories are display labels ("Entrée"), filters are values ("entree")
            value = normalize_category_value(dish.menu_item.category.strip()) if dish_category else ""
            if category != value and category not in value:
                continue
        if parsed is not None:
            name_lower = dish.menu_item.name.lower()
            restaurant_lower = dish.restaurant_name.lower()
            hit_type = any(dt in dish_category for dt in parsed.dish_types)
            hit_tokens = any(t in name_lower or t in restaurant_lower for t in tokens)
            if not (hit_type or hit_tokens):
                continue
        out.append(dish)
    return out


def derive_dishes(dishes: Sequence[DishBundle], filters: DiscoveryFilters) -> List[DishBundle]:
    measured = dishes_with_distances(filter_dishes(dishes, filters), filters.location)
    return rank_dishes(measured, near_me=filters.near_me_active and filters.location is not None)


class DiscoveryService:
    def __init__(
        self,
        cfg: Configuration,
        store: DocumentStore,
        places: Optional[GooglePlacesClient] = None,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.places = places
        self.tag_index = TagFacetIndex(store)
        self._catalog: Optional[Catalog] = None
        self._dishes: Optional[Tuple[int, List[DishBundle]]] = None
        self._version = 0
        self._lock = asyncio.Lock()
        self._cache_ttl = cfg.result_cache_ttl_sec
        self._cache_max = 64
        self._results_cache: OrderedDict[Tuple[Any, ...], Tuple[float, List[Card]]] = OrderedDict()

    @property
    def catalog(self) -> Optional[Catalog]:
        return self._catalog

    def _cache_get(self, key: Tuple[Any, ...]) -> Optional[List[Card]]:
        entry = self._results_cache.get(key)
        if not entry:
            return None
        ts, value = entry
        if time.time() - ts > self._cache_ttl:
            self._results_cache.pop(key, None)
            return None
        self._results_cache.move_to_end(key)
        return list(value)

    def _cache_set(self, key: Tuple[Any, ...], value: List[Card]) -> None:
        if len(self._results_cache) >= self._cache_max:
            self._results_cache.popitem(last=False)
        self._results_cache[key] = (time.time(), list(value))

    async def load_catalog(self, *, force: bool = False) -> Catalog:
        """Load restaurants and join their reviews once per session lifetime.

        Raises ``CatalogFetchError``; aggregation failures only degrade.
        """
        async with self._lock:
            if self._catalog is not None and not force:
                return self._catalog
            restaurants = await load_catalog(self.store)
            aggregation = await aggregate_catalog(
                self.store, restaurants, concurrency=self.cfg.review_fanout_limit
            )
            self._version += 1
            self._catalog = Catalog(
                restaurants=tuple(build_bundles(restaurants, aggregation)),
                version=self._version,
                failures=len(aggregation.failures),
                loaded_at=time.time(),
            )
            self._dishes = None
            self._results_cache.clear()
            return self._catalog

    async def load_dishes(self) -> List[DishBundle]:
        catalog = await self.load_catalog()
        if self._dishes is not None and self._dishes[0] == catalog.version:
            return self._dishes[1]
        items = await load_menu_items(self.store, limit=self.cfg.menu_item_limit)
        dishes = await aggregate_dishes(
            self.store, items, catalog.by_id, concurrency=self.cfg.review_fanout_limit
        )
        self._dishes = (catalog.version, dishes)
        return dishes

    def new_broker(self) -> Optional[FallbackSearchBroker]:
        if self.places is None:
            return None
        return FallbackSearchBroker.from_config(self.cfg, self.places.nearby_search_async)

    def external_cards(self, broker: Optional[FallbackSearchBroker], origin: Optional[LatLng]) -> List[Card]:
        if broker is None or not broker.state.visible:
            return []
        photo_url = self.places.photo_url if self.places is not None else None
        return [card_adapters.place_to_card(p, origin, photo_url) for p in broker.state.results]

    async def search(
        self,
        filters: DiscoveryFilters,
        broker: Optional[FallbackSearchBroker] = None,
    ) -> DiscoveryResult:
        catalog = await self.load_catalog()

        tag_match: Optional[TagFacetMatch] = None
        if filters.view_mode is ViewMode.RESTAURANT and filters.tag_filter:
            if self.tag_index.get(filters.tag_filter) is None:
                raise ValueError(f"unknown tag filter: {filters.tag_filter}")
            tag_match = await self.tag_index.lookup(filters.tag_filter)

        key = (
            filters.cache_key(),
            catalog.version,
            tag_match.restaurant_ids if tag_match is not None else None,
        )
        local_cards = self._cache_get(key)
        if local_cards is None:
            if filters.view_mode is ViewMode.DISH:
                dishes = await self.load_dishes()
                local_cards = [card_adapters.dish_to_card(d) for d in derive_dishes(dishes, filters)]
            else:
                ranked = derive_restaurants(catalog.restaurants, filters, tag_match)
                local_cards = [card_adapters.restaurant_to_card(b) for b in ranked]
            self._cache_set(key, local_cards)

        if broker is not None:
            broker.submit(filters.query, filters.location, len(local_cards))

        if tag_match is not None and not local_cards:
            state = ResultState.NO_TAG_MATCHES
        elif not local_cards:
            state = ResultState.EMPTY
        else:
            state = ResultState.READY

        result = DiscoveryResult(
            state=state,
            view_mode=filters.view_mode,
            cards=local_cards,
            external_cards=self.external_cards(broker, filters.location),
            location_required=filters.near_me_active and filters.location is None,
            can_clear_filters=state is not ResultState.READY and filters.has_narrowing,
            fallback_loading=bool(broker and broker.state.loading),
            fallback_pending=bool(broker and broker.pending),
        )
        logger.debug(
            "search view={} query={!r} state={} local={} external={}",
            filters.view_mode.value,
            filters.query,
            state.value,
            len(result.cards),
            len(result.external_cards),
        )
        return result

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar

from loguru import logger

from errors import FacetQueryError
from models import RestaurantBundle
from services.store import ARRAY_CONTAINS_ANY, MAX_CONTAINS_ANY, REVIEWS, DocumentStore, FieldFilter
from services.reviews import is_live_review


@dataclass(frozen=True)
class TagFilter:
    """A user-facing filter label backed by one or more raw review tags.

    The synonym list goes into a single contains-any query, so it may not
    grow past ``MAX_CONTAINS_ANY``.
    """

    value: str
    label: str
    tags: tuple[str, ...]
    emoji: str = ""

    def __post_init__(self) -> None:
        if not self.tags:
            raise ValueError(f"tag filter {self.value!r} has no synonyms")
        if len(self.tags) > MAX_CONTAINS_ANY:
            raise ValueError(
                f"tag filter {self.value!r} has {len(self.tags)} synonyms; the store caps contains-any at {MAX_CONTAINS_ANY}"
            )


TAG_FILTERS: List[TagFilter] = [
    TagFilter("great_value", "Great Value", ("val_fair", "val_good_value"), "💰"),
    TagFilter("spicy", "Spicy", ("attr_spicy",), "🌶️"),
    TagFilter("date_night", "Date Night", ("occasion_date_night",), "💕"),
    TagFilter("vegetarian", "Vegetarian", ("dietary_vegetarian",), "🥗"),
    TagFilter("vegan", "Vegan", ("dietary_vegan",), "🌱"),
    TagFilter("family", "Family Friendly", ("occasion_family",), "👨‍👩‍👧‍👦"),
    TagFilter("quick_bite", "Quick Bite", ("occasion_quick_lunch", "service_fast"), "⏱️"),
]


@dataclass(frozen=True)
class TagFacetMatch:
    filter: TagFilter
    restaurant_ids: frozenset[str]
    failed: bool = False

    @property
    def empty(self) -> bool:
        return not self.restaurant_ids


class TagFacetIndex:
    def __init__(self, store: DocumentStore, filters: Optional[Iterable[TagFilter]] = None) -> None:
        self.store = store
        self._filters: Dict[str, TagFilter] = {f.value: f for f in (filters or TAG_FILTERS)}

    @property
    def filters(self) -> List[TagFilter]:
        return list(self._filters.values())

    def get(self, value: Optional[str]) -> Optional[TagFilter]:
        if not value:
            return None
        return self._filters.get(value)

    async def lookup(self, value: str) -> TagFacetMatch:
        """Distinct restaurant ids with at least one live review carrying a synonym tag.

        A failing lookup degrades to an empty match flagged ``failed``.
        """
        tag_filter = self._filters.get(value)
        if tag_filter is None:
            raise KeyError(f"unknown tag filter: {value}")
        try:
            docs = await self.store.query(REVIEWS, [FieldFilter("tags", ARRAY_CONTAINS_ANY, list(tag_filter.tags))])
        except Exception as exc:
            logger.warning("{}", FacetQueryError(value, exc))
            return TagFacetMatch(filter=tag_filter, restaurant_ids=frozenset(), failed=True)

        ids = {str(doc["restaurantId"]) for doc in docs if doc.get("restaurantId") and is_live_review(doc)}
        logger.debug("tag filter {} matched restaurants={}", value, len(ids))
        return TagFacetMatch(filter=tag_filter, restaurant_ids=frozenset(ids))


B = TypeVar("B", bound=RestaurantBundle)


def apply_tag_match(bundles: Sequence[B], match: Optional[TagFacetMatch]) -> List[B]:
    if match is None:
        return list(bundles)
    if match.empty:
        return []
    return [b for b in bundles if b.id in match.restaurant_ids]

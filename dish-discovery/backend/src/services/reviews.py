"""Join reviews onto restaurants and dishes.

Soft-deleted and private reviews are dropped here, while documents are
parsed, so no aggregate downstream (ratings, tag counts, photos, cuisine
votes) can ever see them.
"""

from __future__ import annotations

import asyncio
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from loguru import logger

from errors import PartialAggregationError
from models import DishBundle, LatLng, MenuItem, Restaurant, RestaurantAggregate, Review
from services.store import REVIEWS, DocumentStore, FieldFilter
from utils import as_true, finite_number, first_str, str_list


TOP_TAGS = 2
RECENT_PHOTOS = 6

_FRACTION = re.compile(r"(\.\d{6})\d+")

T = TypeVar("T")


def normalize_timestamp(value: Any) -> int:
    """Epoch milliseconds from the timestamp shapes found in ``createdAt``.

    Accepts ``{seconds, nanoseconds}`` (and the admin SDK's
    ``{_seconds, _nanoseconds}``), epoch-millisecond numbers, ISO-8601
    strings and ``datetime``. Anything else is 0 so it sorts oldest.
    """
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, dict):
        seconds = finite_number(value.get("seconds", value.get("_seconds")))
        nanos = finite_number(value.get("nanoseconds", value.get("_nanoseconds"))) or 0.0
        if seconds is None:
            return 0
        return int(seconds * 1000 + nanos // 1_000_000)
    number = finite_number(value)
    if number is not None:
        return int(number)
    if isinstance(value, str) and value.strip():
        text = _FRACTION.sub(r"\1", value.strip())
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("unparseable timestamp {!r}", value)
            return 0
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return 0


def is_live_review(doc: dict) -> bool:
    return not as_true(doc.get("isDeleted")) and doc.get("visibility") != "private"


def _review_photos(doc: dict) -> List[str]:
    media = doc.get("media") if isinstance(doc.get("media"), dict) else {}
    return str_list(media.get("photos")) or str_list(doc.get("images"))


def parse_review(doc: dict) -> Review:
    rid = doc.get("id")
    if not rid:
        raise ValueError("review document without id")
    rating = finite_number(doc.get("rating"))
    if rating is None:
        raise ValueError("review without a numeric rating")
    tags = list(dict.fromkeys(str_list(doc.get("tags"))))
    return Review(
        id=str(rid),
        restaurant_id=str(doc.get("restaurantId") or ""),
        rating=rating,
        category=first_str(doc.get("category"), doc.get("dishCategory")) or "custom",
        menu_item_id=first_str(doc.get("menuItemId")),
        dish_id=first_str(doc.get("dishId")),
        cuisine=first_str(doc.get("cuisine")),
        tags=tuple(tags),
        photos=tuple(_review_photos(doc)),
        created_at=normalize_timestamp(doc.get("createdAt")),
    )


def parse_live_reviews(docs: Iterable[dict]) -> List[Review]:
    reviews: List[Review] = []
    for doc in docs:
        if not is_live_review(doc):
            continue
        try:
            reviews.append(parse_review(doc))
        except (ValueError, TypeError) as exc:
            logger.warning("skipping malformed review {}: {}", doc.get("id"), exc)
    return reviews


def newest_first(reviews: Iterable[Review]) -> List[Review]:
    return sorted(reviews, key=lambda r: -r.created_at)


def _ranked_keys(counts: Counter) -> List[str]:
    # count desc, then alphabetical so ties never depend on iteration order
    return [key for key, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))]


def most_reviewed_cuisine(reviews: Iterable[Review]) -> Optional[str]:
    counts: Counter = Counter()
    for review in reviews:
        if review.cuisine:
            normalized = review.cuisine.strip().lower()
            if normalized:
                counts[normalized] += 1
    ranked = _ranked_keys(counts)
    return ranked[0] if ranked else None


def top_tags(reviews: Iterable[Review], limit: int = TOP_TAGS) -> List[str]:
    counts: Counter = Counter()
    for review in reviews:
        counts.update(tag for tag in review.tags if tag)
    return _ranked_keys(counts)[:limit]


def aggregate_reviews(reviews: Iterable[Review]) -> RestaurantAggregate:
    ordered = newest_first(reviews)
    if not ordered:
        return RestaurantAggregate()
    average = round(sum(r.rating for r in ordered) / len(ordered), 1)
    photos: List[str] = []
    for review in ordered:
        photos.extend(review.photos)
    return RestaurantAggregate(
        reviews=ordered,
        average_rating=average,
        most_reviewed_cuisine=most_reviewed_cuisine(ordered),
        top_tags=top_tags(ordered),
        recent_photos=photos[:RECENT_PHOTOS],
    )


async def fetch_restaurant_reviews(store: DocumentStore, restaurant_id: str) -> List[Review]:
    docs = await store.query(REVIEWS, [FieldFilter("restaurantId", "==", restaurant_id)])
    return parse_live_reviews(docs)


async def resolve_dish_reviews(store: DocumentStore, restaurant_id: str, menu_item_id: str) -> List[Review]:
    """Reviews linked to a dish through ``menuItemId`` or the legacy ``dishId``.

    Both keys are queried and merged by review id, so a review carrying both
    counts once. Deleting the ``dishId`` branch here retires the legacy key.
    """
    by_menu_item, by_dish_id = await asyncio.gather(
        store.query(
            REVIEWS,
            [FieldFilter("restaurantId", "==", restaurant_id), FieldFilter("menuItemId", "==", menu_item_id)],
        ),
        store.query(
            REVIEWS,
            [FieldFilter("restaurantId", "==", restaurant_id), FieldFilter("dishId", "==", menu_item_id)],
        ),
    )
    unique: Dict[str, dict] = {}
    for doc in [*by_menu_item, *by_dish_id]:
        if not is_live_review(doc):
            continue
        unique[str(doc.get("id"))] = doc
    return parse_live_reviews(unique.values())


def _limiter(concurrency: Optional[int]) -> Callable[[Awaitable[T]], Awaitable[T]]:
    if not concurrency or concurrency <= 0:
        async def unbounded(aw: Awaitable[T]) -> T:
            return await aw

        return unbounded

    semaphore = asyncio.Semaphore(concurrency)

    async def bounded(aw: Awaitable[T]) -> T:
        async with semaphore:
            return await aw

    return bounded


@dataclass
class AggregationResult:
    aggregates: Dict[str, RestaurantAggregate] = field(default_factory=dict)
    failures: List[PartialAggregationError] = field(default_factory=list)


async def aggregate_catalog(
    store: DocumentStore,
    restaurants: Iterable[Restaurant],
    *,
    concurrency: Optional[int] = None,
) -> AggregationResult:
    """Join every restaurant to its reviews concurrently.

    ``concurrency=None`` fans out one query per restaurant at once. A failure
    for one restaurant is logged and leaves it with zero reviews.
    """
    restaurants = list(restaurants)
    limit = _limiter(concurrency)
    result = AggregationResult()

    async def one(restaurant: Restaurant) -> None:
        try:
            reviews = await limit(fetch_restaurant_reviews(store, restaurant.id))
        except Exception as exc:
            err = PartialAggregationError(restaurant.id, exc)
            logger.warning("{}", err)
            result.failures.append(err)
            reviews = []
        result.aggregates[restaurant.id] = aggregate_reviews(reviews)

    await asyncio.gather(*(one(r) for r in restaurants))
    logger.info(
        "aggregated reviews restaurants={} failures={} fanout={}",
        len(restaurants),
        len(result.failures),
        concurrency or "unbounded",
    )
    return result


async def aggregate_dishes(
    store: DocumentStore,
    menu_items: Iterable[MenuItem],
    restaurants_by_id: Dict[str, Restaurant],
    *,
    concurrency: Optional[int] = None,
) -> List[DishBundle]:
    limit = _limiter(concurrency)

    async def one(item: MenuItem) -> DishBundle:
        restaurant = restaurants_by_id.get(item.restaurant_id)
        reviews: List[Review] = []
        if item.restaurant_id:
            try:
                reviews = await limit(resolve_dish_reviews(store, item.restaurant_id, item.id))
            except Exception as exc:
                logger.warning("{}", PartialAggregationError(item.restaurant_id, exc, menu_item_id=item.id))
        ordered = newest_first(reviews)
        rating = sum(r.rating for r in ordered) / len(ordered) if ordered else 0.0
        cover = item.cover_image or next((p for r in ordered for p in r.photos), None)
        location: Optional[LatLng] = restaurant.location if restaurant else None
        return DishBundle(
            menu_item=item,
            restaurant_name=restaurant.name if restaurant else "Unknown Restaurant",
            restaurant_cuisine=restaurant.cuisine if restaurant else "",
            rating=rating,
            review_count=len(ordered),
            cover_image=cover,
            location=location,
        )

    return list(await asyncio.gather(*(one(item) for item in menu_items)))

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from models import Card, DishBundle, FallbackPlace, LatLng, RestaurantBundle, SufficiencyTier
from services.geo import distance_miles, format_distance_label
from services.quality import quality_color


LOCAL_SOURCE = "local"
EXTERNAL_SOURCE = "external"
EXTERNAL_ID_PREFIX = "google:"
EXTERNAL_SUBTITLE_DEFAULT = "Popular nearby"


def price_text(level: Optional[int]) -> Optional[str]:
    if isinstance(level, int) and not isinstance(level, bool) and 1 <= level <= 4:
        return "$" * level
    return None


def cover_image_for(bundle: RestaurantBundle) -> Optional[str]:
    """cover image -> header image -> first catalog photo -> first review photo -> None"""
    restaurant = bundle.restaurant
    candidates = (
        restaurant.cover_image,
        restaurant.header_image,
        restaurant.photos[0] if restaurant.photos else None,
        bundle.aggregate.recent_photos[0] if bundle.aggregate.recent_photos else None,
    )
    return next((c for c in candidates if c), None)


def restaurant_to_card(bundle: RestaurantBundle) -> Card:
    restaurant = bundle.restaurant
    card = Card(
        id=restaurant.id,
        name=restaurant.name,
        source=LOCAL_SOURCE,
        cover_image=cover_image_for(bundle),
        price_text=price_text(restaurant.price_level),
        distance_label=format_distance_label(bundle.distance_miles),
        subtitle_text=bundle.aggregate.most_reviewed_cuisine or "",
        tags=list(bundle.aggregate.top_tags),
        restaurant_id=restaurant.id,
    )
    # exactly one trust display per card
    count = bundle.review_count
    if bundle.sufficiency_tier is SufficiencyTier.REVIEW_COUNT:
        card.review_count_text = f"{count} reviews"
    elif bundle.sufficiency_tier is SufficiencyTier.PERCENTAGE and bundle.quality_percentage is not None:
        card.badge_text = f"{bundle.quality_percentage}%"
        card.badge_color = quality_color(bundle.quality_percentage)
    else:
        card.limited_ratings_text = f"Limited ratings ({count})"
    return card


def place_to_card(
    place: FallbackPlace,
    origin: Optional[LatLng] = None,
    photo_url: Optional[Callable[[str], str]] = None,
) -> Card:
    cover: Optional[str] = None
    if place.photo_refs and photo_url is not None:
        try:
            cover = photo_url(place.photo_refs[0])
        except Exception as exc:
            logger.warning("photo url failed for {}: {}", place.place_id, exc)
    return Card(
        id=f"{EXTERNAL_ID_PREFIX}{place.place_id}",
        name=place.name or "Unknown",
        source=EXTERNAL_SOURCE,
        cover_image=cover,
        price_text=price_text(place.price_level),
        distance_label=format_distance_label(distance_miles(origin, place.location)),
        subtitle_text=place.vicinity or EXTERNAL_SUBTITLE_DEFAULT,
        provider_ratings_text=(
            f"Google reviews ({place.user_ratings_total})" if place.user_ratings_total else None
        ),
        place_id=place.place_id,
    )


def dish_to_card(dish: DishBundle) -> Card:
    item = dish.menu_item
    return Card(
        id=item.id,
        name=item.name,
        source=LOCAL_SOURCE,
        cover_image=dish.cover_image,
        distance_label=format_distance_label(dish.distance_miles),
        subtitle_text=dish.restaurant_name,
        badge_text=f"{dish.rating:.1f}" if dish.review_count else None,
        restaurant_id=item.restaurant_id or None,
        menu_item_id=item.id,
    )

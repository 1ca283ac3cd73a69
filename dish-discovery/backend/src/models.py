"""Data models for the dish discovery backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


class SufficiencyTier(str, Enum):
    REVIEW_COUNT = "review_count"  # >= 100 reviews, show the count
    PERCENTAGE = "percentage"  # 5..99 reviews, show the quality badge
    LIMITED = "limited"  # < 5 reviews, "Limited ratings (n)"

    @property
    def trusted(self) -> bool:
        return self is not SufficiencyTier.LIMITED


@dataclass(frozen=True)
class Restaurant:
    id: str
    name: str
    cuisine: str = ""
    cuisines: frozenset[str] = frozenset()
    location: Optional[LatLng] = None
    price_level: Optional[int] = None
    quality_score: Optional[float] = None
    photos: tuple[str, ...] = ()
    cover_image: Optional[str] = None
    header_image: Optional[str] = None
    address: Optional[str] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class Review:
    id: str
    restaurant_id: str
    rating: float
    category: str = "custom"
    menu_item_id: Optional[str] = None
    dish_id: Optional[str] = None
    cuisine: Optional[str] = None
    tags: tuple[str, ...] = ()
    photos: tuple[str, ...] = ()
    created_at: int = 0  # epoch millis, 0 when unknown


@dataclass(frozen=True)
class MenuItem:
    id: str
    restaurant_id: str
    name: str
    category: str = ""
    price: Optional[float] = None
    cover_image: Optional[str] = None


@dataclass
class RestaurantAggregate:
    reviews: list[Review] = field(default_factory=list)
    average_rating: float = 0.0
    most_reviewed_cuisine: Optional[str] = None
    top_tags: list[str] = field(default_factory=list)
    recent_photos: list[str] = field(default_factory=list)

    @property
    def review_count(self) -> int:
        return len(self.reviews)


@dataclass(frozen=True)
class RestaurantBundle:
    restaurant: Restaurant
    aggregate: RestaurantAggregate
    quality_percentage: Optional[int]
    sufficiency_tier: SufficiencyTier
    distance_miles: Optional[float] = None

    @property
    def id(self) -> str:
        return self.restaurant.id

    @property
    def review_count(self) -> int:
        return self.aggregate.review_count


@dataclass(frozen=True)
class DishBundle:
    menu_item: MenuItem
    restaurant_name: str
    restaurant_cuisine: str
    rating: float
    review_count: int
    cover_image: Optional[str] = None
    location: Optional[LatLng] = None
    distance_miles: Optional[float] = None

    @property
    def id(self) -> str:
        return self.menu_item.id


@dataclass(frozen=True)
class FallbackPlace:
    place_id: str
    name: str
    vicinity: str = ""
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    photo_refs: tuple[str, ...] = ()
    location: Optional[LatLng] = None


@dataclass
class Card:
    id: str
    name: str
    source: str  # "local" | "external"
    cover_image: Optional[str] = None
    price_text: Optional[str] = None
    distance_label: str = "-"
    subtitle_text: str = ""
    badge_text: Optional[str] = None
    badge_color: Optional[str] = None
    limited_ratings_text: Optional[str] = None
    review_count_text: Optional[str] = None
    provider_ratings_text: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    restaurant_id: Optional[str] = None
    menu_item_id: Optional[str] = None
    place_id: Optional[str] = None

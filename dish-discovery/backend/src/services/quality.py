from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional

from models import Restaurant, Review, SufficiencyTier


MIN_REVIEWS_FOR_TRUST = 5
MIN_REVIEWS_FOR_COUNT_DISPLAY = 100
DEFAULT_CATEGORY_WEIGHT = 0.8

CATEGORY_WEIGHTS: Dict[str, float] = {
    # mains
    "entrees": 1.0,
    "main course": 1.0,
    "mains": 1.0,
    "entree": 1.0,
    "main": 1.0,
    # starters
    "appetizers": 0.7,
    "starters": 0.7,
    "small plates": 0.7,
    "appetizer": 0.7,
    "starter": 0.7,
    # sides and lighter fare
    "sides": 0.5,
    "side": 0.5,
    "salads": 0.6,
    "salad": 0.6,
    "soups": 0.6,
    "soup": 0.6,
    "desserts": 0.4,
    "dessert": 0.4,
    "sweets": 0.4,
    "sweet": 0.4,
    "cocktails": 0.6,
    "cocktail": 0.6,
    "wine": 0.6,
    "wines": 0.6,
    "beer": 0.5,
    "beers": 0.5,
    "coffee": 0.5,
    "tea": 0.4,
    "beverages": 0.3,
    "beverage": 0.3,
    "drinks": 0.3,
    "drink": 0.3,
    "custom": 0.8,
    "other": 0.8,
}

# (lower bound, color); first match wins
QUALITY_COLORS: List[tuple[int, str]] = [
    (95, "#059669"),
    (90, "#10B981"),
    (85, "#34D399"),
    (80, "#6EE7B7"),
    (75, "#FDE047"),
    (70, "#FACC15"),
    (65, "#F59E0B"),
    (60, "#F97316"),
    (55, "#FB7185"),
]
LOWEST_QUALITY_COLOR = "#EF4444"


def calculate_quality_score(reviews: Iterable[Review]) -> Optional[int]:
    """Turn 0-10 ratings into a 0-100 quality percentage.

    Ratings further than two standard deviations from the mean are dropped,
    unless that would leave fewer than ``min(5, n / 2)`` of them. The rest are
    weighted by dish category, and the mean is discounted by a consistency
    penalty of ``min(0.2, variance / 10)``. Returns None without reviews.
    """
    reviews = [r for r in reviews if math.isfinite(r.rating)]
    if not reviews:
        return None

    ratings = [r.rating for r in reviews]
    mean = sum(ratings) / len(ratings)
    variance = sum((x - mean) ** 2 for x in ratings) / len(ratings)
    std_dev = math.sqrt(variance)

    kept = [r for r in reviews if abs(r.rating - mean) <= 2 * std_dev]
    if len(kept) < min(5, len(reviews) * 0.5):
        kept = reviews

    total_weight = 0.0
    weighted_sum = 0.0
    for review in kept:
        weight = CATEGORY_WEIGHTS.get((review.category or "custom").lower(), DEFAULT_CATEGORY_WEIGHT)
        total_weight += weight
        weighted_sum += review.rating * weight

    weighted_average = weighted_sum / total_weight if total_weight > 0 else mean
    penalty = min(0.2, variance / 10)
    adjusted = weighted_average * (1 - penalty)
    if not math.isfinite(adjusted):
        return None

    percentage = math.floor(adjusted / 10 * 100 + 0.5)
    return max(0, min(100, percentage))


def resolve_quality(restaurant: Restaurant, reviews: List[Review]) -> Optional[int]:
    """Upstream ``qualityScore`` when cached on the document, else recompute."""
    if restaurant.quality_score is not None:
        return max(0, min(100, int(round(restaurant.quality_score))))
    return calculate_quality_score(reviews)


def sufficiency_tier(review_count: int) -> SufficiencyTier:
    if review_count >= MIN_REVIEWS_FOR_COUNT_DISPLAY:
        return SufficiencyTier.REVIEW_COUNT
    if review_count >= MIN_REVIEWS_FOR_TRUST:
        return SufficiencyTier.PERCENTAGE
    return SufficiencyTier.LIMITED


def quality_color(percentage: float) -> str:
    for lower, color in QUALITY_COLORS:
        if percentage >= lower:
            return color
    return LOWEST_QUALITY_COLOR

from __future__ import annotations

import math
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from models import DishBundle, LatLng, RestaurantBundle
from services.geo import distance_miles


def with_distances(bundles: Sequence[RestaurantBundle], origin: Optional[LatLng]) -> List[RestaurantBundle]:
    """Fresh bundles with ``distance_miles`` measured from ``origin``."""
    return [replace(b, distance_miles=distance_miles(origin, b.restaurant.location)) for b in bundles]


def dishes_with_distances(dishes: Sequence[DishBundle], origin: Optional[LatLng]) -> List[DishBundle]:
    return [replace(d, distance_miles=distance_miles(origin, d.location)) for d in dishes]


def _near_key(distance: Optional[float]) -> Tuple[int, float]:
    # known distances first, closest first
    if distance is None:
        return (1, 0.0)
    return (0, distance)


def default_sort_key(bundle: RestaurantBundle) -> Tuple[int, float, float]:
    """Trusted tier first, then quality desc (missing = 0), then distance asc (missing = inf)."""
    tier = 0 if bundle.sufficiency_tier.trusted else 1
    quality = bundle.quality_percentage if bundle.quality_percentage is not None else 0
    distance = bundle.distance_miles if bundle.distance_miles is not None else math.inf
    return (tier, -quality, distance)


def rank_restaurants(bundles: Sequence[RestaurantBundle], *, near_me: bool = False) -> List[RestaurantBundle]:
    """Deterministic order for the restaurant list.

    ``sorted`` is stable, so bundles equal on every key keep their input
    order across runs.
    """
    if near_me:
        return sorted(bundles, key=lambda b: (_near_key(b.distance_miles), default_sort_key(b)))
    return sorted(bundles, key=default_sort_key)


def rank_dishes(dishes: Sequence[DishBundle], *, near_me: bool = False) -> List[DishBundle]:
    if near_me:
        return sorted(dishes, key=lambda d: _near_key(d.distance_miles))
    return list(dishes)

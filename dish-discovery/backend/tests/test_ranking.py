from __future__ import annotations

from typing import Optional

from models import DishBundle, LatLng, MenuItem, Restaurant, RestaurantAggregate, RestaurantBundle, Review
from services.quality import sufficiency_tier
from services.ranking import rank_dishes, rank_restaurants, with_distances


def _bundle(rid: str, reviews: int, quality: Optional[int], distance: Optional[float] = None) -> RestaurantBundle:
    aggregate = RestaurantAggregate(reviews=[Review(id=f"{rid}-{i}", restaurant_id=rid, rating=8) for i in range(reviews)])
    return RestaurantBundle(
        restaurant=Restaurant(id=rid, name=rid),
        aggregate=aggregate,
        quality_percentage=quality,
        sufficiency_tier=sufficiency_tier(reviews),
        distance_miles=distance,
    )


def _dish(mid: str, distance: Optional[float]) -> DishBundle:
    return DishBundle(
        menu_item=MenuItem(id=mid, restaurant_id="r", name=mid),
        restaurant_name="r",
        restaurant_cuisine="",
        rating=0.0,
        review_count=0,
        distance_miles=distance,
    )


def test_trusted_tier_beats_higher_quality_limited() -> None:
    trusted = _bundle("trusted", reviews=10, quality=85, distance=1.0)
    limited = _bundle("limited", reviews=2, quality=95)
    ranked = rank_restaurants([limited, trusted])
    assert [b.id for b in ranked] == ["trusted", "limited"]


def test_quality_then_distance_with_unknown_last() -> None:
    far = _bundle("far", reviews=20, quality=90, distance=5.0)
    near = _bundle("near", reviews=20, quality=90, distance=0.5)
    unknown = _bundle("unknown", reviews=20, quality=90)
    best = _bundle("best", reviews=20, quality=97)
    unscored = _bundle("unscored", reviews=20, quality=None, distance=0.1)
    ranked = rank_restaurants([unknown, far, unscored, near, best])
    assert [b.id for b in ranked] == ["best", "near", "far", "unknown", "unscored"]


def test_ranking_is_stable_for_equal_keys() -> None:
    bundles = [_bundle(f"r{i}", reviews=3, quality=None) for i in range(5)]
    first = [b.id for b in rank_restaurants(bundles)]
    second = [b.id for b in rank_restaurants(list(bundles))]
    assert first == second == ["r0", "r1", "r2", "r3", "r4"]


def test_near_me_puts_unknown_distance_last() -> None:
    unknown = _bundle("unknown", reviews=200, quality=99)
    close = _bundle("close", reviews=1, quality=10, distance=0.2)
    closer = _bundle("closer", reviews=1, quality=10, distance=0.1)
    ranked = rank_restaurants([unknown, close, closer], near_me=True)
    assert [b.id for b in ranked] == ["closer", "close", "unknown"]


def test_with_distances_returns_fresh_bundles() -> None:
    origin = LatLng(37.7599, -122.4148)
    located = RestaurantBundle(
        restaurant=Restaurant(id="a", name="a", location=LatLng(37.7649, -122.4194)),
        aggregate=RestaurantAggregate(),
        quality_percentage=None,
        sufficiency_tier=sufficiency_tier(0),
    )
    (measured,) = with_distances([located], origin)
    assert measured is not located
    assert located.distance_miles is None
    assert measured.distance_miles is not None and 0.3 < measured.distance_miles < 0.6

    (unmeasured,) = with_distances([located], None)
    assert unmeasured.distance_miles is None


def test_rank_dishes() -> None:
    dishes = [_dish("a", None), _dish("b", 3.0), _dish("c", 1.0)]
    assert [d.id for d in rank_dishes(dishes)] == ["a", "b", "c"]
    assert [d.id for d in rank_dishes(dishes, near_me=True)] == ["c", "b", "a"]

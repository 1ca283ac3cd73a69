from __future__ import annotations

import pytest

from models import Restaurant, Review, SufficiencyTier
from services.quality import calculate_quality_score, quality_color, resolve_quality, sufficiency_tier


def _reviews(*ratings, category="custom"):
    return [Review(id=str(i), restaurant_id="r", rating=r, category=category) for i, r in enumerate(ratings)]


@pytest.mark.parametrize(
    "count, tier",
    [
        (0, SufficiencyTier.LIMITED),
        (4, SufficiencyTier.LIMITED),
        (5, SufficiencyTier.PERCENTAGE),
        (99, SufficiencyTier.PERCENTAGE),
        (100, SufficiencyTier.REVIEW_COUNT),
        (250, SufficiencyTier.REVIEW_COUNT),
    ],
)
def test_sufficiency_tier_boundaries(count, tier) -> None:
    assert sufficiency_tier(count) is tier
    assert tier.trusted is (count >= 5)


def test_consistent_ratings_score_without_penalty() -> None:
    assert calculate_quality_score(_reviews(*[8.5] * 10)) == 85


def test_outlier_is_dropped_and_variance_penalized() -> None:
    # mean 8.2, std 2.4: the 1 is beyond two sigma; penalty caps at 0.2
    assert calculate_quality_score(_reviews(*[9.0] * 9, 1.0)) == 72


def test_category_weights() -> None:
    reviews = _reviews(10.0, category="entree") + _reviews(6.0, category="Dessert")
    # (10 * 1.0 + 6 * 0.4) / 1.4 = 8.857, discounted by 20%
    assert calculate_quality_score(reviews) == 71


def test_no_reviews_means_no_score() -> None:
    assert calculate_quality_score([]) is None


def test_cached_score_wins_over_recompute() -> None:
    cached = Restaurant(id="r", name="r", quality_score=91.6)
    assert resolve_quality(cached, _reviews(2.0, 2.0)) == 92

    fresh = Restaurant(id="r", name="r")
    assert resolve_quality(fresh, _reviews(*[8.5] * 10)) == 85


@pytest.mark.parametrize(
    "pct, color",
    [(100, "#059669"), (95, "#059669"), (94.9, "#10B981"), (70, "#FACC15"), (55, "#FB7185"), (54, "#EF4444"), (0, "#EF4444")],
)
def test_quality_color(pct, color) -> None:
    assert quality_color(pct) == color

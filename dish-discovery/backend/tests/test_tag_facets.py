from __future__ import annotations

import asyncio

import pytest

from models import Restaurant, RestaurantAggregate, RestaurantBundle, SufficiencyTier
from services.store import MAX_CONTAINS_ANY, MemoryDocumentStore
from services.tag_facets import TAG_FILTERS, TagFacetIndex, TagFilter, apply_tag_match


class _DownStore(MemoryDocumentStore):
    async def query(self, collection, filters, *, limit=None):
        raise RuntimeError("index not ready")


def _bundle(rid: str) -> RestaurantBundle:
    return RestaurantBundle(
        restaurant=Restaurant(id=rid, name=rid),
        aggregate=RestaurantAggregate(),
        quality_percentage=None,
        sufficiency_tier=SufficiencyTier.LIMITED,
    )


def test_lookup_returns_restaurants_with_live_tagged_reviews(sample_store) -> None:
    index = TagFacetIndex(sample_store)
    match = asyncio.run(index.lookup("spicy"))
    assert match.restaurant_ids == frozenset({"r1"})
    assert not match.failed


def test_lookup_ignores_deleted_reviews(sample_store) -> None:
    # the only val_fair review is soft-deleted
    match = asyncio.run(TagFacetIndex(sample_store).lookup("great_value"))
    assert match.empty
    assert not match.failed


def test_lookup_failure_degrades_to_empty() -> None:
    match = asyncio.run(TagFacetIndex(_DownStore()).lookup("vegan"))
    assert match.empty
    assert match.failed


def test_unknown_filter_value() -> None:
    index = TagFacetIndex(MemoryDocumentStore())
    assert index.get("brunch") is None
    assert index.get(None) is None
    with pytest.raises(KeyError):
        asyncio.run(index.lookup("brunch"))


def test_synonym_lists_respect_contains_any_cap() -> None:
    assert len(TAG_FILTERS) == 7
    assert all(1 <= len(f.tags) <= MAX_CONTAINS_ANY for f in TAG_FILTERS)
    with pytest.raises(ValueError):
        TagFilter("too_many", "Too Many", tuple(f"t{i}" for i in range(MAX_CONTAINS_ANY + 1)))


def test_apply_tag_match() -> None:
    bundles = [_bundle("a"), _bundle("b"), _bundle("c")]
    index = TagFacetIndex(MemoryDocumentStore({"reviews": [{"id": "v", "restaurantId": "c", "tags": ["attr_spicy"]}]}))
    match = asyncio.run(index.lookup("spicy"))

    assert [b.id for b in apply_tag_match(bundles, None)] == ["a", "b", "c"]
    assert [b.id for b in apply_tag_match(bundles, match)] == ["c"]

    empty = asyncio.run(index.lookup("vegan"))
    assert apply_tag_match(bundles, empty) == []

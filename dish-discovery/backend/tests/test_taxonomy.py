from __future__ import annotations

from services.taxonomy import (
    ALL_CATEGORY,
    NEAR_ME_CATEGORY,
    categories_for,
    cuisine_label,
    infer_facets_from_text,
    normalize_category_value,
    normalize_token,
    normalize_tokens,
)


def test_normalize_token_strips_punctuation_and_space() -> None:
    assert normalize_token("  Spicy,   Tacos!! ") == "spicy tacos"
    assert normalize_token("") == ""


def test_infer_facets_from_text() -> None:
    parsed = infer_facets_from_text("Spicy al pastor tacos")
    assert parsed.dish_types == ["tacos"]
    assert parsed.cuisines == ["mexican"]
    assert parsed.attributes == ["spicy"]

    assert infer_facets_from_text("").dish_types == []


def test_categories_per_view_mode() -> None:
    dish = categories_for("dish")
    assert dish[:2] == ["All", "Near Me"]
    assert "Entrée" in dish and "Italian" not in dish

    restaurant = categories_for("restaurant")
    assert "BBQ/Grill" in restaurant
    assert "Latin American" in restaurant
    assert "Entrée" not in restaurant


def test_category_values() -> None:
    assert normalize_category_value("All") == ALL_CATEGORY
    assert normalize_category_value("") == ALL_CATEGORY
    assert normalize_category_value("Near Me") == NEAR_ME_CATEGORY
    assert normalize_category_value("Entrée") == "entree"
    assert normalize_category_value("Latin American") == "latin american"


def test_cuisine_label_overrides() -> None:
    assert cuisine_label("bbq") == "BBQ/Grill"
    assert cuisine_label("middle eastern") == "Middle Eastern"


def test_normalize_tokens_collapses_duplicates() -> None:
    assert normalize_tokens(["Thai", "thai ", "", None, 3]) == frozenset({"thai"})

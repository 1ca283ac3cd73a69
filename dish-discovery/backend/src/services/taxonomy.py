from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple


DISH_TYPES: List[str] = [
    "burgers", "tacos", "ramen", "pho", "pizza", "bbq", "fried chicken", "sandwiches",
    "salads", "pasta", "sushi", "dumplings", "noodles", "steak", "seafood", "desserts", "coffee", "tea",
]

CUISINES: List[str] = [
    "italian",
    "japanese",
    "chinese",
    "mexican",
    "thai",
    "american",
    "french",
    "indian",
    "mediterranean",
    "latin american",
    "spanish",
    "greek",
    "korean",
    "vietnamese",
    "middle eastern",
    "caribbean",
    "bbq/grill",
    "seafood",
    "breakfast / brunch",
    "sandwiches / deli",
    "pizza",
    "european",
    "african",
    "peruvian",
    "argentine",
    "brazilian",
    "filipino",
    "hawaiian",
    "turkish",
    "lebanese",
]

DISH_CATEGORIES: List[str] = ["Appetizer", "Entrée", "Handheld", "Side", "Dessert", "Drink"]

CUISINE_LABEL_OVERRIDES: Dict[str, str] = {
    "bbq": "BBQ/Grill",
    "bbq/grill": "BBQ/Grill",
    "breakfast / brunch": "Breakfast / Brunch",
    "sandwiches / deli": "Sandwiches / Deli",
    "latin american": "Latin American",
}

DISH_CATEGORY_VALUES: Dict[str, str] = {
    "Appetizer": "appetizer",
    "Entrée": "entree",
    "Handheld": "handheld",
    "Side": "side",
    "Dessert": "dessert",
    "Drink": "drink",
}

ALL_CATEGORY = "all"
NEAR_ME_CATEGORY = "nearme"
MAX_FACETS = 5

# (facet set, pattern, value); patterns run against normalize_token(text)
_FACET_RULES: List[Tuple[str, str, str]] = [
    ("dish_types", r"\b(burger|cheeseburger)\b", "burgers"),
    ("dish_types", r"\b(taco|al pastor|carnitas)\b", "tacos"),
    ("dish_types", r"\b(pizza|margherita)\b", "pizza"),
    ("dish_types", r"\b(ramen)\b", "ramen"),
    ("dish_types", r"\b(pho)\b", "pho"),
    ("dish_types", r"\b(sushi|nigiri|maki)\b", "sushi"),
    ("dish_types", r"\b(bbq|barbecue|brisket)\b", "bbq"),
    ("cuisines", r"\b(mexican|al pastor|taco)\b", "mexican"),
    ("cuisines", r"\b(thai|kaphrao|pad thai)\b", "thai"),
    ("cuisines", r"\b(japanese|ramen|sushi)\b", "japanese"),
    ("cuisines", r"\b(italian|pizza|pasta)\b", "italian"),
    ("attributes", r"\b(spicy|heat|hot)\b", "spicy"),
    ("attributes", r"\b(crispy|crunchy)\b", "crispy"),
]

_NON_WORD = re.compile(r"[^\w\s]|_", re.UNICODE)
_SPACES = re.compile(r"\s+")


@dataclass
class ParsedFacets:
    dish_types: List[str] = field(default_factory=list)
    cuisines: List[str] = field(default_factory=list)
    attributes: List[str] = field(default_factory=list)


def normalize_token(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    if not text:
        return ""
    cleaned = _NON_WORD.sub("", text.lower().strip())
    return _SPACES.sub(" ", cleaned).strip()


def query_tokens(text: str) -> List[str]:
    return [t for t in normalize_token(text).split(" ") if t]


def infer_facets_from_text(text: str) -> ParsedFacets:
    t = normalize_token(text)
    found: Dict[str, Dict[str, None]] = {"dish_types": {}, "cuisines": {}, "attributes": {}}
    if t:
        for facet, pattern, value in _FACET_RULES:
            if re.search(pattern, t):
                found[facet].setdefault(value, None)
    return ParsedFacets(
        dish_types=list(found["dish_types"])[:MAX_FACETS],
        cuisines=list(found["cuisines"])[:MAX_FACETS],
        attributes=list(found["attributes"])[:MAX_FACETS],
    )


def cuisine_label(slug: str) -> str:
    key = slug.lower()
    if key in CUISINE_LABEL_OVERRIDES:
        return CUISINE_LABEL_OVERRIDES[key]
    return " ".join(word[:1].upper() + word[1:] for word in key.split(" "))


def categories_for(view_mode: str) -> List[str]:
    if view_mode == "dish":
        return ["All", "Near Me", *DISH_CATEGORIES]
    return ["All", "Near Me", *(cuisine_label(c) for c in CUISINES)]


def normalize_category_value(label: str) -> str:
    if not label or label == "All":
        return ALL_CATEGORY
    if label == "Near Me":
        return NEAR_ME_CATEGORY
    if label in DISH_CATEGORY_VALUES:
        return DISH_CATEGORY_VALUES[label]
    return normalize_token(label)


def normalize_tokens(values: Iterable[object]) -> frozenset[str]:
    out: set[str] = set()
    for value in values:
        if not isinstance(value, str):
            continue
        token = normalize_token(value)
        if token:
            out.add(token)
    return frozenset(out)

import sys
from pathlib import Path

import pytest


# Ensure backend/src is on sys.path for tests so that imports like `services.*` and `models` work.
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from services.store import MemoryDocumentStore  # noqa: E402


MISSION = {"latitude": 37.7599, "longitude": -122.4148}


def _review(rid, restaurant_id, rating, created, **extra):
    doc = {
        "id": rid,
        "restaurantId": restaurant_id,
        "rating": rating,
        "createdAt": {"seconds": created, "nanoseconds": 0},
    }
    doc.update(extra)
    return doc


def sample_documents() -> dict:
    """Three restaurants: one trusted with coordinates, one limited without, one unreviewed."""
    restaurants = [
        {
            "id": "r1",
            "name": "Taqueria Uno",
            "cuisine": "Mexican",
            "cuisines": ["Mexican"],
            "coordinates": dict(MISSION),
            "priceLevel": 1,
            "coverImage": "https://img.example/r1.jpg",
        },
        {
            "id": "r2",
            "name": "Sushi Dos",
            "cuisine": "Japanese",
            "cuisines": ["japanese"],
            "priceLevel": 3,
        },
        {
            "id": "r3",
            "name": "Pho Tres",
            "cuisine": "Vietnamese",
            "cuisines": ["vietnamese"],
            "coordinates": {"lat": 37.7649, "lng": -122.4194},
            "priceLevel": 2,
        },
    ]
    reviews = []
    for idx in range(10):
        extra = {"cuisine": "Mexican", "tags": ["attr_spicy"] if idx % 2 == 0 else []}
        if idx == 0:
            extra["menuItemId"] = "m1"
        elif idx == 1:
            extra["dishId"] = "m1"
        elif idx == 2:
            extra.update(menuItemId="m1", dishId="m1")
        reviews.append(_review(f"rv{idx}", "r1", 8.5, 1_700_000_000 + idx, **extra))
    reviews.append(_review("rv10", "r2", 9.5, 1_700_000_100, cuisine="Japanese"))
    reviews.append(_review("rv11", "r2", 9.5, 1_700_000_101, cuisine="Japanese"))
    reviews.append(_review("rv12", "r3", 2.0, 1_700_000_102, tags=["val_fair"], isDeleted=True))
    reviews.append(_review("rv13", "r3", 3.0, 1_700_000_103, visibility="private"))
    menu_items = [
        {"id": "m1", "restaurantId": "r1", "name": "Al Pastor Taco", "category": "Entrée", "price": 4.5},
        {"id": "m2", "restaurantId": "r3", "name": "Pho Ga", "category": "Entrée"},
        {"id": "m3", "restaurantId": "r2", "name": "Mochi", "category": "Dessert"},
    ]
    return {"restaurants": restaurants, "reviews": reviews, "menuItems": menu_items}


@pytest.fixture
def sample_docs() -> dict:
    return sample_documents()


@pytest.fixture
def sample_store(sample_docs) -> MemoryDocumentStore:
    return MemoryDocumentStore(sample_docs)

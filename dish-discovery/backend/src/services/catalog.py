from __future__ import annotations

from typing import Any, Iterable, List, Optional

from loguru import logger

from errors import CatalogFetchError, DiscoveryError
from models import MenuItem, Restaurant
from services.geo import normalize_coordinates
from services.store import MENU_ITEMS, RESTAURANTS, DocumentStore, FieldFilter
from services.taxonomy import normalize_tokens
from utils import finite_number, first_str, str_list


def normalize_cuisines(values: Any) -> frozenset[str]:
    """Lowercase tokens, falsy entries dropped, duplicates collapsed."""
    if not isinstance(values, (list, tuple, set, frozenset)):
        return frozenset()
    return normalize_tokens(values)


def normalize_price_level(value: Any) -> Optional[int]:
    level = finite_number(value)
    if level is None or level != int(level):
        return None
    level_i = int(level)
    return level_i if 1 <= level_i <= 4 else None


def parse_restaurant(doc: dict) -> Restaurant:
    rid = doc.get("id")
    if not rid:
        raise ValueError("restaurant document without id")
    photos = str_list(doc.get("photos")) or str_list(doc.get("googlePhotos"))
    return Restaurant(
        id=str(rid),
        name=str(doc.get("name") or ""),
        cuisine=str(doc.get("cuisine") or ""),
        cuisines=normalize_cuisines(doc.get("cuisines")),
        location=normalize_coordinates(doc.get("coordinates")),
        price_level=normalize_price_level(doc.get("priceLevel")),
        quality_score=finite_number(doc.get("qualityScore")),
        photos=tuple(photos),
        cover_image=first_str(doc.get("coverImage")),
        header_image=first_str(doc.get("headerImage")),
        address=first_str(doc.get("address")),
        source=first_str(doc.get("source")),
    )


def parse_menu_item(doc: dict) -> MenuItem:
    mid = doc.get("id")
    if not mid:
        raise ValueError("menu item document without id")
    return MenuItem(
        id=str(mid),
        restaurant_id=str(doc.get("restaurantId") or ""),
        name=str(doc.get("name") or "Unknown Dish"),
        category=str(doc.get("category") or ""),
        price=finite_number(doc.get("price")),
        cover_image=first_str(doc.get("coverImage")),
    )


def _parse_all(docs: Iterable[dict], parser, kind: str) -> list:
    out = []
    for doc in docs:
        try:
            out.append(parser(doc))
        except (ValueError, TypeError) as exc:
            logger.warning("skipping malformed {} document {}: {}", kind, doc.get("id"), exc)
    return out


async def load_catalog(store: DocumentStore, *, source: Optional[str] = None) -> List[Restaurant]:
    """Fetch and normalize the restaurant catalog.

    ``source`` narrows the load to one ingestion provider's slice. Restaurants
    without usable coordinates are kept. Any store failure is fatal to the
    view and raised as ``CatalogFetchError``; it is not retried here.
    """
    try:
        if source:
            docs = await store.query(RESTAURANTS, [FieldFilter("source", "==", source)])
        else:
            docs = await store.fetch_all(RESTAURANTS)
    except DiscoveryError as exc:
        logger.exception("catalog fetch failed: {}", exc)
        raise CatalogFetchError(str(exc)) from exc
    except Exception as exc:
        logger.exception("catalog fetch failed unexpectedly: {}", exc)
        raise CatalogFetchError(str(exc)) from exc

    restaurants = _parse_all(docs, parse_restaurant, "restaurant")
    missing = sum(1 for r in restaurants if r.location is None)
    logger.info("catalog loaded restaurants={} without_coordinates={} source={}", len(restaurants), missing, source or "*")
    return restaurants


async def load_menu_items(store: DocumentStore, *, limit: Optional[int] = None) -> List[MenuItem]:
    try:
        docs = await store.fetch_all(MENU_ITEMS, limit=limit)
    except DiscoveryError as exc:
        logger.exception("menu item fetch failed: {}", exc)
        raise CatalogFetchError(str(exc)) from exc
    except Exception as exc:
        logger.exception("menu item fetch failed unexpectedly: {}", exc)
        raise CatalogFetchError(str(exc)) from exc
    return _parse_all(docs, parse_menu_item, "menu item")

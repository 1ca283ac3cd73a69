from __future__ import annotations

import sys
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from config import Configuration
from errors import CatalogFetchError
from models import Card, LatLng
from services.discovery import DiscoveryFilters, DiscoveryResult, DiscoveryService, ResultState, ViewMode
from services.firestore import FirestoreClient, FirestoreDocumentStore
from services.places import GooglePlacesClient
from services.session import SessionManager
from services.store import DocumentStore, MemoryDocumentStore
from services.taxonomy import categories_for, normalize_category_value


load_dotenv()

app = FastAPI(title="Dish Discovery")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[DiscoveryService] = None
_sessions: Optional[SessionManager] = None


def build_store(cfg: Configuration) -> DocumentStore:
    backend = (cfg.store_backend or "memory").lower()
    if backend == "firestore":
        return FirestoreDocumentStore(FirestoreClient(cfg))
    if backend != "memory":
        raise ValueError(f"unknown STORE_BACKEND: {cfg.store_backend}")
    if cfg.discovery_data_file:
        return MemoryDocumentStore.from_json_file(cfg.discovery_data_file)
    logger.warning("memory store without DISCOVERY_DATA_FILE; catalog is empty")
    return MemoryDocumentStore()


def configure(cfg: Configuration, store: Optional[DocumentStore] = None,
              places: Optional[GooglePlacesClient] = None) -> DiscoveryService:
    """(Re)build the process-wide service and session registry."""
    global _service, _sessions
    if _sessions is not None:
        _sessions.clear()
    if places is None and cfg.fallback_enabled:
        places = GooglePlacesClient(cfg)
    _service = DiscoveryService(cfg, store if store is not None else build_store(cfg), places)
    _sessions = SessionManager(broker_factory=_service.new_broker, ttl_sec=cfg.session_ttl_sec)
    logger.info("cfg: {}", cfg.log_summary())
    return _service


def get_service() -> DiscoveryService:
    if _service is None:
        cfg = Configuration.from_env()
        logger.remove()
        logger.add(sys.stderr, level=cfg.log_level.upper())
        configure(cfg)
    assert _service is not None
    return _service


def get_sessions() -> SessionManager:
    get_service()
    assert _sessions is not None
    return _sessions


class SearchRequest(BaseModel):
    query: str = Field("", description="Free-text search")
    category: str = Field("all", description="Category label or value; 'Near Me'/'nearme' sorts by distance")
    price_level: Optional[int] = Field(None, ge=1, le=4)
    tag_filter: Optional[str] = Field(None, description="Canonical tag filter value, e.g. great_value")
    near_me: bool = False
    view_mode: ViewMode = ViewMode.RESTAURANT
    user_lat: Optional[float] = Field(None, ge=-90, le=90)
    user_lng: Optional[float] = Field(None, ge=-180, le=180)
    session_id: Optional[str] = Field(None, description="Enables debounced external fallback search")

    def to_filters(self) -> DiscoveryFilters:
        location = None
        if self.user_lat is not None and self.user_lng is not None:
            location = LatLng(lat=self.user_lat, lng=self.user_lng)
        return DiscoveryFilters(
            query=self.query,
            category=normalize_category_value(self.category),
            price_level=self.price_level,
            tag_filter=self.tag_filter or None,
            near_me=self.near_me,
            view_mode=self.view_mode,
            location=location,
        )


class CardPayload(BaseModel):
    id: str
    name: str
    source: str
    cover_image: Optional[str] = None
    price_text: Optional[str] = None
    distance_label: str = "-"
    subtitle_text: str = ""
    badge_text: Optional[str] = None
    badge_color: Optional[str] = None
    limited_ratings_text: Optional[str] = None
    review_count_text: Optional[str] = None
    provider_ratings_text: Optional[str] = None
    tags: List[str] = []
    restaurant_id: Optional[str] = None
    menu_item_id: Optional[str] = None
    place_id: Optional[str] = None


class SearchResponse(BaseModel):
    state: str
    view_mode: str
    cards: List[CardPayload]
    external_cards: List[CardPayload]
    location_required: bool
    can_clear_filters: bool
    fallback_loading: bool
    fallback_pending: bool


class FallbackResponse(BaseModel):
    state: str
    query: str
    visible: bool
    loading: bool
    pending: bool
    generation: int
    external_cards: List[CardPayload]


def _cards(cards: List[Card]) -> List[CardPayload]:
    return [CardPayload(**asdict(c)) for c in cards]


def _to_response(result: DiscoveryResult) -> SearchResponse:
    return SearchResponse(
        state=result.state.value,
        view_mode=result.view_mode.value,
        cards=_cards(result.cards),
        external_cards=_cards(result.external_cards),
        location_required=result.location_required,
        can_clear_filters=result.can_clear_filters,
        fallback_loading=result.fallback_loading,
        fallback_pending=result.fallback_pending,
    )


def _catalog_unavailable(exc: CatalogFetchError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": CatalogFetchError.user_message, "retryable": exc.retryable},
    )


@app.get("/healthz")
def healthz() -> dict:
    service = get_service()
    catalog = service.catalog
    return {
        "status": "ok",
        "catalog_loaded": catalog is not None,
        "restaurants": len(catalog.restaurants) if catalog else 0,
    }


@app.get("/discover/facets")
def facets(view_mode: ViewMode = ViewMode.RESTAURANT) -> Dict[str, Any]:
    service = get_service()
    return {
        "categories": [
            {"label": label, "value": normalize_category_value(label)} for label in categories_for(view_mode.value)
        ],
        "tag_filters": (
            [{"value": f.value, "label": f.label, "emoji": f.emoji} for f in service.tag_index.filters]
            if view_mode is ViewMode.RESTAURANT
            else []
        ),
        "price_levels": [{"value": level, "label": "$" * level} for level in range(1, 5)],
    }


@app.post("/discover/search", response_model=SearchResponse)
async def search(req: SearchRequest):
    service = get_service()
    filters = req.to_filters()
    session = get_sessions().get_or_create(req.session_id) if req.session_id else None
    try:
        result = await service.search(filters, broker=session.broker if session else None)
    except CatalogFetchError as exc:
        return _catalog_unavailable(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("search failed: {}", exc)
        raise HTTPException(status_code=500, detail="internal error")

    if session is not None:
        session.last_filters = filters
        session.last_result = result
    return _to_response(result)


@app.get("/discover/sessions/{session_id}/fallback", response_model=FallbackResponse)
async def session_fallback(session_id: str) -> FallbackResponse:
    service = get_service()
    session = get_sessions().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="unknown session")
    broker = session.broker
    origin = session.last_filters.location if session.last_filters else None
    if session.loading:
        state = ResultState.LOADING.value
    else:
        assert session.last_result is not None
        state = session.last_result.state.value
    return FallbackResponse(
        state=state,
        query=broker.state.query if broker else "",
        visible=bool(broker and broker.state.visible),
        loading=bool(broker and broker.state.loading),
        pending=bool(broker and broker.pending),
        generation=broker.generation if broker else 0,
        external_cards=_cards(service.external_cards(broker, origin)),
    )


@app.delete("/discover/sessions/{session_id}")
async def reset_session(session_id: str) -> dict:
    get_sessions().reset(session_id)
    return {"status": "ok"}


@app.post("/discover/catalog/reload")
async def reload_catalog():
    service = get_service()
    try:
        catalog = await service.load_catalog(force=True)
    except CatalogFetchError as exc:
        return _catalog_unavailable(exc)
    return {
        "status": "ok",
        "version": catalog.version,
        "restaurants": len(catalog.restaurants),
        "aggregation_failures": catalog.failures,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8010, reload=True)

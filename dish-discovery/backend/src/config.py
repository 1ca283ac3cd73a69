from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, Field

from utils import mask_secret


class Configuration(BaseModel):
    # Document store
    store_backend: str = Field(default="memory")
    discovery_data_file: Optional[str] = Field(default=None)
    firestore_project_id: Optional[str] = Field(default=None)
    firestore_api_key: Optional[str] = Field(default=None)
    firestore_base_url: str = Field(default="https://firestore.googleapis.com/v1")
    firestore_timeout: int = Field(default=15)

    # Google Places fallback provider
    google_places_api_key: Optional[str] = Field(default=None)
    google_places_base_url: str = Field(default="https://maps.googleapis.com/maps/api/place")
    google_places_timeout: int = Field(default=5)
    google_places_radius_m: int = Field(default=10000)
    google_places_max_results: int = Field(default=5)

    # Fallback search
    fallback_debounce_ms: int = Field(default=500)
    fallback_timeout_sec: float = Field(default=5.0)
    fallback_min_query_len: int = Field(default=3)
    fallback_thin_threshold: int = Field(default=3)

    # Pipeline
    review_fanout_limit: Optional[int] = Field(default=None)
    menu_item_limit: int = Field(default=40)
    result_cache_ttl_sec: int = Field(default=60)
    session_ttl_sec: int = Field(default=1800)
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, overrides: Optional[dict[str, Any]] = None) -> "Configuration":
        raw: dict[str, Any] = {}

        env_map = {
            "store_backend": os.getenv("STORE_BACKEND"),
            "discovery_data_file": os.getenv("DISCOVERY_DATA_FILE"),
            "firestore_project_id": os.getenv("FIRESTORE_PROJECT_ID"),
            "firestore_api_key": os.getenv("FIRESTORE_API_KEY"),
            "firestore_base_url": os.getenv("FIRESTORE_BASE_URL"),
            "firestore_timeout": os.getenv("FIRESTORE_TIMEOUT"),
            # Places
            "google_places_api_key": os.getenv("GOOGLE_PLACES_API_KEY"),
            "google_places_base_url": os.getenv("GOOGLE_PLACES_BASE_URL"),
            "google_places_timeout": os.getenv("GOOGLE_PLACES_TIMEOUT"),
            "google_places_radius_m": os.getenv("GOOGLE_PLACES_RADIUS_M"),
            "google_places_max_results": os.getenv("GOOGLE_PLACES_MAX_RESULTS"),
            "fallback_debounce_ms": os.getenv("FALLBACK_DEBOUNCE_MS"),
            "fallback_timeout_sec": os.getenv("FALLBACK_TIMEOUT_SEC"),
            "fallback_min_query_len": os.getenv("FALLBACK_MIN_QUERY_LEN"),
            "fallback_thin_threshold": os.getenv("FALLBACK_THIN_THRESHOLD"),
            "review_fanout_limit": os.getenv("REVIEW_FANOUT_LIMIT"),
            "menu_item_limit": os.getenv("MENU_ITEM_LIMIT"),
            "result_cache_ttl_sec": os.getenv("RESULT_CACHE_TTL_SEC"),
            "session_ttl_sec": os.getenv("SESSION_TTL_SEC"),
            "log_level": os.getenv("LOG_LEVEL"),
        }

        for k, v in env_map.items():
            if v is None or v == "":
                continue
            raw[k] = v

        if overrides:
            raw.update({k: v for k, v in overrides.items() if v is not None})

        return cls(**raw)

    @property
    def fallback_enabled(self) -> bool:
        return bool(self.google_places_api_key)

    @property
    def fallback_debounce_sec(self) -> float:
        return max(self.fallback_debounce_ms, 0) / 1000.0

    def require_firestore(self) -> None:
        if not self.firestore_project_id:
            raise ValueError("FIRESTORE_PROJECT_ID is required when STORE_BACKEND=firestore")

    def log_summary(self) -> str:
        return (
            "store=%s project=%s places=%s places_timeout=%s debounce_ms=%s fanout=%s "
            "firestore_key=%s places_key=%s"
            % (
                self.store_backend,
                self.firestore_project_id or "-",
                self.fallback_enabled,
                self.google_places_timeout,
                self.fallback_debounce_ms,
                self.review_fanout_limit or "unbounded",
                mask_secret(self.firestore_api_key),
                mask_secret(self.google_places_api_key),
            )
        )

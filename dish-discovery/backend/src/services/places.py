from __future__ import annotations

import asyncio
import hashlib
import time
import urllib.parse
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional, Tuple

import requests

from config import Configuration
from errors import PlacesProviderError
from models import FallbackPlace, LatLng
from services.geo import normalize_coordinates
from utils import finite_number


_RETRY_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}


@dataclass
class _RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


class GooglePlacesClient:
    def __init__(self, cfg: Configuration) -> None:
        self.cfg = cfg
        self.base = cfg.google_places_base_url.rstrip("/")
        self.session = requests.Session()
        self.retry_policy = _RetryPolicy()
        self._cache_ttl = 60 * 30  # 30 minutes
        self._cache_max = 128
        self._nearby_cache: OrderedDict[str, Tuple[float, List[FallbackPlace]]] = OrderedDict()

    def _cache_get(self, key: str) -> Optional[List[FallbackPlace]]:
        entry = self._nearby_cache.get(key)
        if not entry:
            return None
        ts, value = entry
        if time.time() - ts > self._cache_ttl:
            self._nearby_cache.pop(key, None)
            return None
        self._nearby_cache.move_to_end(key)
        return value

    def _cache_set(self, key: str, value: List[FallbackPlace]) -> None:
        if len(self._nearby_cache) >= self._cache_max:
            self._nearby_cache.popitem(last=False)
        self._nearby_cache[key] = (time.time(), value)

    def _get(self, path: str, params: dict) -> dict:
        url = f"{self.base}{path}"
        headers = {"Accept": "application/json"}
        params = {**params, "key": self.cfg.google_places_api_key}
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.get(url, headers=headers, params=params, timeout=self.cfg.google_places_timeout)
            except requests.RequestException as exc:  # network error
                if attempt <= policy.retries:
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise PlacesProviderError(f"request error: {exc}") from exc

            if resp.status_code in (429, 500, 502, 503, 504):
                if attempt <= policy.retries:
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise PlacesProviderError(f"upstream {resp.status_code}: {resp.text[:300]}")

            if not resp.ok:
                raise PlacesProviderError(f"upstream {resp.status_code}: {resp.text[:300]}")

            try:
                payload = resp.json()
            except ValueError as exc:
                raise PlacesProviderError("invalid json response") from exc

            status = payload.get("status") if isinstance(payload, dict) else None
            if status in _RETRY_STATUSES and attempt <= policy.retries:
                time.sleep(policy.base_delay * attempt)
                continue
            return payload

    def _parse_places(self, results: List[dict]) -> List[FallbackPlace]:
        places: list[FallbackPlace] = []
        for result in results[: self.cfg.google_places_max_results]:
            name = result.get("name") or "Unknown"
            vicinity = result.get("vicinity") or ""
            place_id = result.get("place_id")
            if not place_id:
                digest = hashlib.sha1(f"{name}|{vicinity}".encode("utf-8")).hexdigest()[:12]
                place_id = f"google_{digest}"
            geometry = result.get("geometry") or {}
            price = finite_number(result.get("price_level"))
            total = finite_number(result.get("user_ratings_total"))
            photos = [
                p["photo_reference"]
                for p in (result.get("photos") or [])
                if isinstance(p, dict) and p.get("photo_reference")
            ]
            places.append(
                FallbackPlace(
                    place_id=str(place_id),
                    name=str(name),
                    vicinity=str(vicinity),
                    rating=finite_number(result.get("rating")),
                    user_ratings_total=int(total) if total is not None else None,
                    price_level=int(price) if price is not None else None,
                    photo_refs=tuple(photos),
                    location=normalize_coordinates(geometry.get("location")),
                )
            )
        return places

    def nearby_search(self, keyword: str, location: LatLng) -> List[FallbackPlace]:
        """Restaurants near ``location`` matching ``keyword``, provider-ranked."""
        keyword = (keyword or "").strip()
        if not keyword:
            return []
        radius = self.cfg.google_places_radius_m
        key = f"nearby:{keyword.lower()}:{location.lat:.4f},{location.lng:.4f}:{radius}"
        cached = self._cache_get(key)
        if cached is not None:
            return list(cached)
        payload = self._get(
            "/nearbysearch/json",
            {
                "location": f"{location.lat},{location.lng}",
                "radius": radius,
                "type": "restaurant",
                "keyword": keyword,
            },
        )
        status = payload.get("status")
        if status == "ZERO_RESULTS":
            results: List[FallbackPlace] = []
        elif status == "OK":
            results = self._parse_places(payload.get("results") or [])
        else:
            detail = payload.get("error_message") or ""
            raise PlacesProviderError(f"nearby search failed: {status} {detail}".strip())
        self._cache_set(key, list(results))
        return results

    async def nearby_search_async(self, keyword: str, location: LatLng) -> List[FallbackPlace]:
        return await asyncio.to_thread(self.nearby_search, keyword, location)

    def photo_url(self, photo_ref: str, *, max_width: int = 400, max_height: int = 400) -> str:
        query = urllib.parse.urlencode(
            {
                "maxwidth": max_width,
                "maxheight": max_height,
                "photo_reference": photo_ref,
                "key": self.cfg.google_places_api_key or "",
            }
        )
        return f"{self.base}/photo?{query}"

from __future__ import annotations

import asyncio
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from config import Configuration
from errors import DocumentStoreError
from services.store import ARRAY_CONTAINS_ANY, EQUAL, Document, DocumentStore, FieldFilter


_OPS = {EQUAL: "EQUAL", ARRAY_CONTAINS_ANY: "ARRAY_CONTAINS_ANY"}


@dataclass
class _RetryPolicy:
    retries: int = 3
    base_delay: float = 0.5


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode one Firestore REST typed value into plain Python."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return str(value["timestampValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "bytesValue" in value:
        return value["bytesValue"]
    if "geoPointValue" in value:
        point = value["geoPointValue"] or {}
        return {"latitude": point.get("latitude"), "longitude": point.get("longitude")}
    if "arrayValue" in value:
        return [decode_value(v) for v in (value["arrayValue"] or {}).get("values", [])]
    if "mapValue" in value:
        return decode_fields((value["mapValue"] or {}).get("fields", {}))
    raise DocumentStoreError(f"unknown firestore value type: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(val) for key, val in (fields or {}).items()}


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise DocumentStoreError(f"cannot encode filter value of type {type(value).__name__}")


def build_structured_query(
    collection: str,
    filters: Iterable[FieldFilter],
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    encoded = [
        {
            "fieldFilter": {
                "field": {"fieldPath": f.field},
                "op": _OPS[f.op],
                "value": encode_value(list(f.value) if f.op == ARRAY_CONTAINS_ANY else f.value),
            }
        }
        for f in filters
    ]
    query: Dict[str, Any] = {"from": [{"collectionId": collection}]}
    if len(encoded) == 1:
        query["where"] = encoded[0]
    elif encoded:
        query["where"] = {"compositeFilter": {"op": "AND", "filters": encoded}}
    if limit is not None:
        query["limit"] = int(limit)
    return {"structuredQuery": query}


def parse_run_query(payload: Any) -> List[Document]:
    if not isinstance(payload, list):
        raise DocumentStoreError("runQuery response must be a list")
    docs: List[Document] = []
    for entry in payload:
        doc = entry.get("document") if isinstance(entry, dict) else None
        if not doc:
            # readTime-only entries mark an empty result
            continue
        name = doc.get("name") or ""
        data = decode_fields(doc.get("fields") or {})
        data["id"] = urllib.parse.unquote(name.rsplit("/", 1)[-1])
        docs.append(data)
    return docs


class FirestoreClient:
    """Blocking Firestore REST client for ``runQuery``."""

    def __init__(self, cfg: Configuration) -> None:
        cfg.require_firestore()
        self.cfg = cfg
        self.base = cfg.firestore_base_url.rstrip("/")
        self.session = requests.Session()
        self._url = f"{self.base}/projects/{cfg.firestore_project_id}/databases/(default)/documents:runQuery"

    def _post(self, body: dict) -> Any:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        params = {"key": self.cfg.firestore_api_key} if self.cfg.firestore_api_key else None
        policy = _RetryPolicy()
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self.session.post(
                    self._url, headers=headers, params=params, json=body, timeout=self.cfg.firestore_timeout
                )
            except requests.RequestException as exc:  # network error
                if attempt <= policy.retries:
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise DocumentStoreError(f"request error: {exc}") from exc

            if resp.status_code in (429, 500, 502, 503, 504):
                if attempt <= policy.retries:
                    time.sleep(policy.base_delay * attempt)
                    continue
                raise DocumentStoreError(f"upstream {resp.status_code}: {resp.text[:300]}")

            if not resp.ok:
                raise DocumentStoreError(f"upstream {resp.status_code}: {resp.text[:300]}")

            try:
                return resp.json()
            except ValueError as exc:
                raise DocumentStoreError("invalid json response") from exc

    def run_query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        limit: Optional[int] = None,
    ) -> List[Document]:
        body = build_structured_query(collection, filters, limit)
        return parse_run_query(self._post(body))


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client: FirestoreClient) -> None:
        self.client = client

    async def fetch_all(self, collection: str, *, limit: Optional[int] = None) -> List[Document]:
        return await asyncio.to_thread(self.client.run_query, collection, (), limit)

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        return await asyncio.to_thread(self.client.run_query, collection, tuple(filters), limit)

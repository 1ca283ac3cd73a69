"""Document store boundary.

The discovery core only reads three collections (``restaurants``,
``reviews``, ``menuItems``) with equality and contains-any filters, so the
interface is kept that small.
"""

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from errors import DocumentStoreError


RESTAURANTS = "restaurants"
REVIEWS = "reviews"
MENU_ITEMS = "menuItems"

EQUAL = "=="
ARRAY_CONTAINS_ANY = "array-contains-any"
SUPPORTED_OPS = (EQUAL, ARRAY_CONTAINS_ANY)

# Upper bound the store places on the value list of an array-contains-any filter.
MAX_CONTAINS_ANY = 10

Document = Dict[str, Any]


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in SUPPORTED_OPS:
            raise ValueError(f"unsupported filter op: {self.op}")
        if self.op == ARRAY_CONTAINS_ANY:
            if not isinstance(self.value, (list, tuple)) or not self.value:
                raise ValueError("array-contains-any needs a non-empty list")
            if len(self.value) > MAX_CONTAINS_ANY:
                raise ValueError(
                    f"array-contains-any accepts at most {MAX_CONTAINS_ANY} values, got {len(self.value)}"
                )

    def matches(self, doc: Document) -> bool:
        current = doc.get(self.field)
        if self.op == EQUAL:
            return current == self.value
        if not isinstance(current, list):
            return False
        wanted = set(self.value)
        return any(item in wanted for item in current)


class DocumentStore(ABC):
    """Read-only async view over the document database.

    Every returned document carries its document id under ``"id"``.
    """

    @abstractmethod
    async def fetch_all(self, collection: str, *, limit: Optional[int] = None) -> List[Document]:
        """Return every document in ``collection`` (up to ``limit``)."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return the documents matching all ``filters``.

        Raises:
            DocumentStoreError: the store could not answer.
        """


class MemoryDocumentStore(DocumentStore):
    """In-process store; used for local runs from a JSON export and in tests."""

    def __init__(self, collections: Optional[Dict[str, Any]] = None) -> None:
        self._collections: Dict[str, List[Document]] = {}
        for name, docs in (collections or {}).items():
            self._collections[name] = _as_documents(name, docs)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "MemoryDocumentStore":
        file_path = Path(path)
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise DocumentStoreError(f"cannot read data file {file_path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise DocumentStoreError(f"data file {file_path} must hold an object of collections")
        store = cls(payload)
        logger.info(
            "memory store loaded from {}: {}",
            file_path,
            {name: len(docs) for name, docs in store._collections.items()},
        )
        return store

    def add(self, collection: str, doc: Document) -> None:
        if "id" not in doc:
            raise ValueError("document needs an id")
        self._collections.setdefault(collection, []).append(dict(doc))

    async def fetch_all(self, collection: str, *, limit: Optional[int] = None) -> List[Document]:
        docs = self._collections.get(collection, [])
        if limit is not None:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter],
        *,
        limit: Optional[int] = None,
    ) -> List[Document]:
        filters = list(filters)
        out = [doc for doc in self._collections.get(collection, []) if all(f.matches(doc) for f in filters)]
        if limit is not None:
            out = out[:limit]
        return copy.deepcopy(out)


def _as_documents(name: str, docs: Any) -> List[Document]:
    # Exports come either as a list of docs or as {doc_id: fields}
    if isinstance(docs, dict):
        return [{**fields, "id": str(doc_id)} for doc_id, fields in docs.items() if isinstance(fields, dict)]
    if isinstance(docs, list):
        out: List[Document] = []
        for doc in docs:
            if isinstance(doc, dict) and doc.get("id") is not None:
                out.append({**doc, "id": str(doc["id"])})
            else:
                logger.warning("skipping {} document without id", name)
        return out
    raise DocumentStoreError(f"collection {name} must be a list or an object")

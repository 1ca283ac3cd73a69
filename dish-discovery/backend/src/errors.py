"""Error taxonomy for the discovery pipeline.

Only ``CatalogFetchError`` is ever surfaced to a caller. The others describe
failures of a single entity or of a supplementary channel; they are logged
and the pipeline degrades around them.
"""

from __future__ import annotations

from typing import Optional


class DiscoveryError(Exception):
    """Base exception for the discovery backend."""


class DocumentStoreError(DiscoveryError):
    """Raised when the document store cannot answer a query."""


class PlacesProviderError(DiscoveryError):
    """Raised when the external places provider fails or returns garbage."""


class CatalogFetchError(DiscoveryError):
    """Loading the restaurant catalog failed. Fatal to the view; the user may retry."""

    retryable = True
    user_message = "Failed to load restaurants. Please try again."


class PartialAggregationError(DiscoveryError):
    """Fetching reviews for one restaurant failed."""

    def __init__(
        self,
        restaurant_id: str,
        cause: Optional[BaseException] = None,
        *,
        menu_item_id: Optional[str] = None,
    ) -> None:
        self.restaurant_id = restaurant_id
        self.menu_item_id = menu_item_id
        self.cause = cause
        target = f"restaurant {restaurant_id}"
        if menu_item_id:
            target += f" menu item {menu_item_id}"
        super().__init__(f"reviews unavailable for {target}: {cause}")


class FacetQueryError(DiscoveryError):
    """A tag-filter lookup failed; the filter degrades to an empty match."""

    def __init__(self, filter_value: str, cause: Optional[BaseException] = None) -> None:
        self.filter_value = filter_value
        self.cause = cause
        super().__init__(f"tag filter {filter_value!r} lookup failed: {cause}")


class FallbackSearchError(DiscoveryError):
    """The external search failed or timed out. Never shown to the user."""

    def __init__(self, query: str, cause: Optional[BaseException] = None) -> None:
        self.query = query
        self.cause = cause
        super().__init__(f"fallback search for {query!r} failed: {cause!r}")

from __future__ import annotations

import logging
from typing import Any, Iterable

from ..cache import TTLCache, make_key
from ..supabase.client import SupabaseClient, SupabaseError
from .config import TAXONOMY_QUERIES, TaxonomyQuery, ttl_for
from .errors import ListNotFoundError, TaxonomyError, TaxonomyUnavailableError
from .hierarchy import build_location_hierarchy, flatten
from .models import (
    CategoryOption,
    HierarchyItem,
    LoadState,
    LoadStatus,
    LocationHierarchy,
)

logger = logging.getLogger(__name__)

LOCATION_HIERARCHY_KEY = "location-hierarchy"
CATEGORIES_FLAT_KEY = "categories-flat"

DERIVED_VIEWS = {
    "location_hierarchy": LOCATION_HIERARCHY_KEY,
    "categories_flat": CATEGORIES_FLAT_KEY,
}


def _items_key(names: tuple[str, ...], top_level_only: bool, parent_id: str | None) -> str:
    return make_key({"lists": names, "top_level_only": top_level_only, "parent_id": parent_id})


class TaxonomyStore:
    """
    Fetch-once, cache-for-a-while access to the backend's hierarchical lists.

    Every public read goes through one cache with per-key freshness windows
    and single-flight fetching. Failures are raised as ``TaxonomyError`` and
    are never cached, so the next explicit call fetches again.
    """

    def __init__(
        self,
        client: SupabaseClient,
        cache: TTLCache | None = None,
        queries: dict[str, TaxonomyQuery] = TAXONOMY_QUERIES,
    ) -> None:
        self._client = client
        self.cache = cache or TTLCache()
        self.queries = dict(queries)
        self._errors: dict[str, TaxonomyError] = {}

    async def load(
        self,
        list_names: Iterable[str],
        *,
        top_level_only: bool = False,
        parent_id: str | None = None,
    ) -> list[HierarchyItem]:
        """Return every item whose list kind is in ``list_names``."""
        names = tuple(sorted(set(list_names)))
        if not names:
            return []
        key = _items_key(names, top_level_only, parent_id)
        return await self._cached(
            key,
            lambda: self._fetch_items(names, top_level_only, parent_id),
            ttl_for(names),
            names,
        )

    async def get(self, query_name: str, parent_id: str | None = None) -> list[HierarchyItem]:
        """Items of a named query, optionally only the children of ``parent_id``."""
        query = self.queries[query_name]
        return await self.load(query.lists, top_level_only=query.top_level_only, parent_id=parent_id)

    async def get_location_hierarchy(self) -> LocationHierarchy:
        query = self.queries["areas"]

        async def _build() -> LocationHierarchy:
            return build_location_hierarchy(await self.get("areas"))

        return await self._cached(LOCATION_HIERARCHY_KEY, _build, ttl_for(query.lists), query.lists)

    async def get_categories_flat(self) -> list[CategoryOption]:
        lists = self.queries["categories"].lists + self.queries["subcategories"].lists

        async def _build() -> list[CategoryOption]:
            categories = await self.get("categories")
            subcategories = await self.get("subcategories")
            return flatten(categories, subcategories)

        return await self._cached(CATEGORIES_FLAT_KEY, _build, ttl_for(lists), lists)

    async def get_location_with_descendants(self, location_id: str) -> list[str]:
        hierarchy = await self.get_location_hierarchy()
        return hierarchy.with_descendants(location_id)

    def invalidate(self, list_name: str) -> int:
        """Drop every cached entry built from ``list_name``."""
        dropped = self.cache.invalidate_tag(list_name)
        logger.info("Invalidated %d cached taxonomy entries for list '%s'", dropped, list_name)
        return dropped

    def status(self, query_name: str, parent_id: str | None = None) -> LoadStatus:
        """Load state of a named query or of a derived view (see ``DERIVED_VIEWS``)."""
        if query_name in DERIVED_VIEWS:
            return self._status(DERIVED_VIEWS[query_name])
        query = self.queries[query_name]
        key = _items_key(tuple(sorted(set(query.lists))), query.top_level_only, parent_id)
        return self._status(key)

    def knows(self, name: str) -> bool:
        return name in self.queries or name in DERIVED_VIEWS

    def _status(self, key: str) -> LoadStatus:
        if self.cache.is_pending(key):
            return LoadStatus(state=LoadState.loading)
        if self.cache.contains(key):
            return LoadStatus(state=LoadState.ready)
        error = self._errors.get(key)
        if error is not None:
            return LoadStatus(state=LoadState.failed, error=error.message, error_kind=error.kind)
        return LoadStatus(state=LoadState.idle)

    async def _cached(self, key: str, fetch, ttl: float, tags: Iterable[str]) -> Any:
        try:
            value = await self.cache.get_or_fetch(key, fetch, ttl=ttl, tags=tags)
        except TaxonomyError as e:
            self._errors[key] = e
            raise
        self._errors.pop(key, None)
        return value

    async def _fetch_items(
        self,
        names: tuple[str, ...],
        top_level_only: bool,
        parent_id: str | None,
    ) -> list[HierarchyItem]:
        try:
            list_ids = await self._client.get_list_ids(names)
        except SupabaseError as e:
            logger.warning("Could not resolve lists %s", names, exc_info=True)
            raise TaxonomyUnavailableError(f"Failed to load {', '.join(names)} items: {e.message}") from e

        missing = [name for name in names if name not in list_ids]
        if missing:
            logger.error("Taxonomy lists %s are not defined in the backend", missing)
            raise ListNotFoundError(missing)

        try:
            rows = await self._client.get_list_items(
                list_ids.values(), top_level_only=top_level_only, parent_id=parent_id,
            )
        except SupabaseError as e:
            logger.warning("Could not load items for lists %s", names, exc_info=True)
            raise TaxonomyUnavailableError(f"Failed to load {', '.join(names)} items: {e.message}") from e

        kind_by_list_id = {list_id: name for name, list_id in list_ids.items()}
        items = [
            HierarchyItem(**row, list_kind=kind_by_list_id.get(row.get("list_id")))
            for row in rows
        ]
        logger.debug("Loaded %d items for lists %s", len(items), names)
        return items

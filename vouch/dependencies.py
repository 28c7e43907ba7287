from __future__ import annotations

from .supabase.client import SupabaseClient
from .taxonomy.autocomplete import ItemCreator
from .taxonomy.store import TaxonomyStore

_client: SupabaseClient | None = None
_store: TaxonomyStore | None = None
_creators: dict[str, ItemCreator] = {}


def get_supabase_client() -> SupabaseClient:
    """Return the process-wide backend client, creating it on first call."""
    global _client
    if _client is None:
        _client = SupabaseClient()
    return _client


def get_taxonomy_store() -> TaxonomyStore:
    global _store
    if _store is None:
        _store = TaxonomyStore(get_supabase_client())
    return _store


def _get_creator(kind: str) -> ItemCreator:
    if kind not in _creators:
        _creators[kind] = ItemCreator(get_supabase_client(), get_taxonomy_store(), kind)
    return _creators[kind]


def get_area_creator() -> ItemCreator:
    return _get_creator("area")


def get_subcategory_creator() -> ItemCreator:
    return _get_creator("subcategory")


async def close_supabase_client() -> None:
    global _client, _store
    if _client is not None:
        await _client.aclose()
    _client = None
    _store = None
    _creators.clear()

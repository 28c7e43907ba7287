from __future__ import annotations

import logging
from typing import Any

from ..cache import TTLCache, make_key
from ..supabase.client import SupabaseClient, SupabaseError, in_list, quote_value
from ..taxonomy.autocomplete import ItemCreator
from ..taxonomy.search import normalize_query
from ..taxonomy.store import TaxonomyStore
from .config import DEFAULT_FEED_CONFIG, FeedConfig
from .formatting import format_instagram_handle, format_url, is_valid_email
from .models import (
    CreateRequestBody,
    CreateResponseBody,
    RecRequest,
    RecResponse,
    RequestDetail,
    RequestFilters,
    WebRequestFeed,
    WebRequestResponse,
)

logger = logging.getLogger(__name__)

FEED_VIEW = "web_request_feed"
RESPONSES_VIEW = "web_request_responses"
REQUESTS_TABLE = "rec_requests"
RESPONSES_TABLE = "rec_responses"

_cache = TTLCache(default_ttl=DEFAULT_FEED_CONFIG.feed_ttl)


class RequestNotFoundError(Exception):
    def __init__(self, share_token: str) -> None:
        super().__init__("Request not found")
        self.share_token = share_token


class InvalidSubmissionError(ValueError):
    """The submitted form refers to something that does not exist or is malformed."""


def get_feed_cache_stats() -> dict:
    return _cache.stats()


def clear_feed_cache() -> None:
    _cache.clear()


def _invalidate_feed() -> None:
    _cache.invalidate_tag("feed")
    _cache.invalidate_tag("detail")


def build_feed_params(
    filters: RequestFilters | None,
    location_ids: list[str] | None,
) -> dict[str, str]:
    params = {"select": "*", "order": "created_at.desc"}
    groups: list[str] = []

    if location_ids:
        params["area_id"] = in_list(location_ids)

    if filters and filters.business_type:
        value = quote_value(filters.business_type)
        groups.append(f"category_id.eq.{value},subcategory_id.eq.{value}")

    if filters and filters.search and filters.search.strip():
        pattern = quote_value(f"*{filters.search.strip()}*")
        groups.append(f"title.ilike.{pattern},context.ilike.{pattern}")

    if len(groups) == 1:
        params["or"] = f"({groups[0]})"
    elif groups:
        params["and"] = "(" + ",".join(f"or({g})" for g in groups) + ")"
    return params


async def fetch_requests(
    client: SupabaseClient,
    filters: RequestFilters | None = None,
    location_ids: list[str] | None = None,
    config: FeedConfig = DEFAULT_FEED_CONFIG,
) -> list[WebRequestFeed]:
    """Public requests, newest first. ``location_ids`` should already include descendants."""
    params = build_feed_params(filters, location_ids)

    async def _fetch() -> list[WebRequestFeed]:
        rows = await client.select(FEED_VIEW, params)
        return [WebRequestFeed(**row) for row in rows]

    key = make_key({"feed": params})
    return await _cache.get_or_fetch(key, _fetch, ttl=config.feed_ttl, tags=("feed",))


async def fetch_request_by_token(
    client: SupabaseClient,
    share_token: str,
    config: FeedConfig = DEFAULT_FEED_CONFIG,
) -> RequestDetail:
    async def _fetch() -> RequestDetail:
        row = await client.select_one(FEED_VIEW, {"select": "*", "share_token": f"eq.{share_token}"})
        if row is None:
            raise RequestNotFoundError(share_token)
        request = WebRequestFeed(**row)

        # Responses are optional on the detail page.
        try:
            rows = await client.select(RESPONSES_VIEW, {
                "select": "*",
                "request_id": f"eq.{request.id}",
                "order": "created_at.desc",
            })
        except SupabaseError:
            logger.warning("Could not load responses for request %s", request.id, exc_info=True)
            rows = []
        return RequestDetail(request=request, responses=[WebRequestResponse(**r) for r in rows])

    key = make_key({"detail": share_token})
    return await _cache.get_or_fetch(key, _fetch, ttl=config.detail_ttl, tags=("detail",))


async def create_request(
    client: SupabaseClient,
    *,
    category_id: str | None,
    area_id: str,
    subcategory_id: str | None = None,
    context: str | None = None,
) -> RecRequest:
    row = await client.insert(REQUESTS_TABLE, {
        "title": "",  # generated by the backend
        "context": (context or "").strip() or None,
        "category_id": category_id,
        "subcategory_id": subcategory_id,
        "area_id": area_id,
        "neighbourhood_id": None,
        "city_id": None,
        "is_public": True,
        "user_id": None,
        "status": "open",
    })
    _invalidate_feed()
    request = RecRequest(**row)
    logger.info("Created request %s", request.share_token)
    return request


async def _resolve_business_type(
    store: TaxonomyStore,
    creator: ItemCreator,
    body: CreateRequestBody,
) -> tuple[str | None, str | None]:
    """Return ``(category_id, subcategory_id)`` for the submitted business type."""
    options = await store.get_categories_flat()

    if body.category_option_id:
        option = next((o for o in options if o.id == body.category_option_id), None)
        if option is None:
            raise InvalidSubmissionError(f"Unknown business type {body.category_option_id!r}")
    else:
        typed = normalize_query(body.business_type)
        option = next((o for o in options if o.name.casefold() == typed), None)
        if option is None:
            subcategory_id = await creator.get_or_create(body.business_type or "")
            options = await store.get_categories_flat()
            option = next((o for o in options if o.id == subcategory_id), None)
            if option is None:
                return None, subcategory_id

    if option.is_subcategory:
        return option.parent_id, option.id
    return option.id, None


async def _resolve_location(
    store: TaxonomyStore,
    creator: ItemCreator,
    body: CreateRequestBody,
) -> str:
    if body.location_id:
        return body.location_id
    typed = normalize_query(body.location)
    hierarchy = await store.get_location_hierarchy()
    existing = next((a for a in hierarchy.items if a.name.casefold() == typed), None)
    if existing is not None:
        return existing.id
    return await creator.get_or_create(body.location or "")


async def submit_request(
    client: SupabaseClient,
    store: TaxonomyStore,
    area_creator: ItemCreator,
    subcategory_creator: ItemCreator,
    body: CreateRequestBody,
) -> RecRequest:
    """Resolve picked or typed business type and location, then create the request."""
    category_id, subcategory_id = await _resolve_business_type(store, subcategory_creator, body)
    area_id = await _resolve_location(store, area_creator, body)
    return await create_request(
        client,
        category_id=category_id,
        subcategory_id=subcategory_id,
        area_id=area_id,
        context=body.context,
    )


def _clean(value: str | None) -> str | None:
    return value.strip() if value and value.strip() else None


async def create_response(
    client: SupabaseClient,
    request_id: str,
    body: CreateResponseBody,
) -> RecResponse:
    email = _clean(body.email)
    if email and not is_valid_email(email):
        raise InvalidSubmissionError("Please enter a valid email address")

    row: dict[str, Any] = {
        "request_id": request_id,
        "is_guest": True,
        "responder_name": _clean(body.responder_name),
        "business_name": body.business_name.strip(),
        "email": email,
        "instagram": format_instagram_handle(body.instagram),
        "website": format_url(body.website),
        "location": _clean(body.location),
        "notes": _clean(body.notes),
        "user_id": None,
        "business_id": None,  # text-based response
    }
    created = await client.insert(RESPONSES_TABLE, row)
    _invalidate_feed()
    return RecResponse(**created)

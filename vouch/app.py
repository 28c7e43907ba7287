from __future__ import annotations

import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .dependencies import (
    close_supabase_client,
    get_area_creator,
    get_subcategory_creator,
    get_supabase_client,
    get_taxonomy_store,
)
from .feed.formatting import format_relative_date, request_share_url, whatsapp_share_url
from .feed.models import (
    CreateRequestBody,
    CreateResponseBody,
    FeedItemOut,
    RecRequest,
    RecResponse,
    RequestDetailOut,
    RequestFilters,
    WebRequestFeed,
)
from .feed.my_requests import (
    add_my_request,
    get_my_requests,
    is_my_request,
    remove_my_request,
)
from .feed.service import (
    InvalidSubmissionError,
    RequestNotFoundError,
    create_response,
    fetch_request_by_token,
    fetch_requests,
    get_feed_cache_stats,
    submit_request,
)
from .supabase.client import SupabaseClient, SupabaseError
from .taxonomy.autocomplete import ItemCreator, widget_state
from .taxonomy.errors import TaxonomyError
from .taxonomy.models import (
    CategoryOption,
    CategorySearchResponse,
    CreateItemRequest,
    CreateItemResponse,
    HierarchyItem,
    LoadStatus,
    LocationSearchResponse,
)
from .taxonomy.search import (
    category_candidates,
    is_new_item,
    item_candidates,
    rank_locations,
    search_categories,
    to_location_options,
)
from .taxonomy.store import TaxonomyStore


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_supabase_client()


app = FastAPI(title="Vouch API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "vouch-secret-change-in-production"),
)


# ── Error mapping ────────────────────────────────────────────────────────


@app.exception_handler(TaxonomyError)
async def taxonomy_error_handler(request: Request, exc: TaxonomyError) -> JSONResponse:
    # A missing list is a configuration defect, not something a retry fixes.
    status_code = 500 if exc.kind == "not_found" else 503
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "kind": exc.kind})


@app.exception_handler(SupabaseError)
async def supabase_error_handler(request: Request, exc: SupabaseError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": exc.message})


@app.exception_handler(RequestNotFoundError)
async def request_not_found_handler(request: Request, exc: RequestNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Request not found"})


@app.exception_handler(InvalidSubmissionError)
async def invalid_submission_handler(request: Request, exc: InvalidSubmissionError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Taxonomy endpoints ───────────────────────────────────────────────────


def _check_query(store: TaxonomyStore, query_name: str) -> None:
    if query_name not in store.queries:
        raise HTTPException(status_code=404, detail=f"Unknown taxonomy '{query_name}'")


@app.get("/taxonomy/{query_name}", response_model=list[HierarchyItem])
async def taxonomy_items(
    query_name: str,
    parent_id: str | None = None,
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> list[HierarchyItem]:
    _check_query(store, query_name)
    return await store.get(query_name, parent_id=parent_id)


@app.get("/taxonomy/{query_name}/status", response_model=LoadStatus)
def taxonomy_status(
    query_name: str,
    parent_id: str | None = None,
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> LoadStatus:
    if not store.knows(query_name):
        raise HTTPException(status_code=404, detail=f"Unknown taxonomy '{query_name}'")
    return store.status(query_name, parent_id=parent_id)


@app.get("/locations/search", response_model=LocationSearchResponse)
async def search_locations(
    q: str = "",
    limit: int = Query(default=10, ge=1, le=50),
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> LocationSearchResponse:
    hierarchy = await store.get_location_hierarchy()
    ranked = rank_locations(hierarchy.items, q, hierarchy.parent_names)
    options = to_location_options(hierarchy.items, hierarchy.parent_names)
    return LocationSearchResponse(
        results=to_location_options(ranked[:limit], hierarchy.parent_names),
        create_new=is_new_item(q, item_candidates(hierarchy.items, hierarchy.parent_names)),
        state=widget_state(q, None, options),
    )


@app.get("/locations/{location_id}/descendants")
async def location_descendants(
    location_id: str,
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> dict:
    return {"id": location_id, "ids": await store.get_location_with_descendants(location_id)}


@app.post("/locations", response_model=CreateItemResponse)
async def get_or_create_location(
    body: CreateItemRequest,
    creator: ItemCreator = Depends(get_area_creator),
) -> CreateItemResponse:
    item_id = await creator.get_or_create(body.name)
    return CreateItemResponse(id=item_id, name=body.name)


@app.get("/categories/flat", response_model=list[CategoryOption])
async def categories_flat(
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> list[CategoryOption]:
    return await store.get_categories_flat()


@app.get("/categories/search", response_model=CategorySearchResponse)
async def search_business_types(
    q: str = "",
    limit: int = Query(default=50, ge=1, le=100),
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> CategorySearchResponse:
    options = await store.get_categories_flat()
    return CategorySearchResponse(
        results=search_categories(options, q)[:limit],
        create_new=is_new_item(q, category_candidates(options)),
        state=widget_state(q, None, options),
    )


@app.post("/subcategories", response_model=CreateItemResponse)
async def get_or_create_subcategory(
    body: CreateItemRequest,
    creator: ItemCreator = Depends(get_subcategory_creator),
) -> CreateItemResponse:
    item_id = await creator.get_or_create(body.name)
    return CreateItemResponse(id=item_id, name=body.name)


# ── Request feed endpoints ───────────────────────────────────────────────


def _feed_item(request: WebRequestFeed) -> FeedItemOut:
    return FeedItemOut(**request.model_dump(), posted=format_relative_date(request.created_at))


@app.get("/requests", response_model=list[FeedItemOut])
async def list_requests(
    location: str | None = None,
    business_type: str | None = None,
    search: str | None = None,
    client: SupabaseClient = Depends(get_supabase_client),
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> list[FeedItemOut]:
    filters = RequestFilters(location=location, business_type=business_type, search=search)
    # Selecting a location matches it and everything below it.
    location_ids = await store.get_location_with_descendants(location) if location else None
    requests = await fetch_requests(client, filters, location_ids)
    return [_feed_item(r) for r in requests]


@app.post("/requests", response_model=RecRequest, status_code=201)
async def create_request(
    body: CreateRequestBody,
    request: Request,
    client: SupabaseClient = Depends(get_supabase_client),
    store: TaxonomyStore = Depends(get_taxonomy_store),
    area_creator: ItemCreator = Depends(get_area_creator),
    subcategory_creator: ItemCreator = Depends(get_subcategory_creator),
) -> RecRequest:
    created = await submit_request(client, store, area_creator, subcategory_creator, body)
    add_my_request(request.session, created.share_token)
    return created


@app.get("/requests/{share_token}", response_model=RequestDetailOut)
async def request_detail(
    share_token: str,
    request: Request,
    client: SupabaseClient = Depends(get_supabase_client),
) -> RequestDetailOut:
    detail = await fetch_request_by_token(client, share_token)
    share_url = request_share_url(share_token)
    title = detail.request.title or "Can you recommend someone?"
    return RequestDetailOut(
        request=_feed_item(detail.request),
        responses=detail.responses,
        share_url=share_url,
        whatsapp_url=whatsapp_share_url(title, share_url),
        is_mine=is_my_request(request.session, share_token),
    )


@app.post("/requests/{share_token}/responses", response_model=RecResponse, status_code=201)
async def respond_to_request(
    share_token: str,
    body: CreateResponseBody,
    client: SupabaseClient = Depends(get_supabase_client),
) -> RecResponse:
    detail = await fetch_request_by_token(client, share_token)
    return await create_response(client, detail.request.id, body)


# ── Session endpoints ────────────────────────────────────────────────────


@app.get("/my-requests")
def my_requests(request: Request) -> dict:
    return {"requests": get_my_requests(request.session)}


@app.delete("/my-requests/{share_token}")
def forget_my_request(share_token: str, request: Request) -> dict:
    if not remove_my_request(request.session, share_token):
        raise HTTPException(status_code=404, detail="Request not in your list")
    return {"status": "removed"}


# ── Cache endpoints ──────────────────────────────────────────────────────


@app.get("/cache/stats")
def cache_stats(store: TaxonomyStore = Depends(get_taxonomy_store)) -> dict:
    return {"taxonomy": store.cache.stats(), "feed": get_feed_cache_stats()}


@app.post("/cache/invalidate")
def cache_invalidate(
    list_name: str = Query(..., alias="list"),
    store: TaxonomyStore = Depends(get_taxonomy_store),
) -> dict:
    return {"list": list_name, "invalidated": store.invalidate(list_name)}

"""
Matching and ranking for autocomplete and filter pickers.

A candidate matches a query when the trimmed, case-folded query is a substring
of the candidate's own name or of its parent's name. An empty query matches
everything. A non-empty query that matches nothing, exactly or by substring,
is a request to create a new item.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .models import CategoryOption, HierarchyItem, LocationOption


def normalize_query(query: str | None) -> str:
    return (query or "").strip().casefold()


def matches(query: str | None, name: str, parent_name: str | None = None) -> bool:
    q = normalize_query(query)
    if not q:
        return True
    if q in name.casefold():
        return True
    return bool(parent_name) and q in parent_name.casefold()


def search_items(
    items: Iterable[HierarchyItem],
    query: str | None,
    parent_names: Mapping[str, str],
) -> list[HierarchyItem]:
    return [item for item in items if matches(query, item.name, parent_names.get(item.id))]


def search_categories(options: Iterable[CategoryOption], query: str | None) -> list[CategoryOption]:
    return [opt for opt in options if matches(query, opt.name, opt.parent_name)]


def location_rank_key(item: HierarchyItem, query: str | None) -> tuple:
    q = normalize_query(query)
    name = item.name.casefold()
    return (
        name != q,
        not name.startswith(q),
        item.parent_id is not None,
        name,
        item.name,
        item.id,
    )


def rank_locations(
    items: Iterable[HierarchyItem],
    query: str | None,
    parent_names: Mapping[str, str],
) -> list[HierarchyItem]:
    """Matching items ordered exact, then prefix, then top-level first, then by name."""
    found = search_items(items, query, parent_names)
    return sorted(found, key=lambda item: location_rank_key(item, query))


def to_location_options(
    items: Iterable[HierarchyItem],
    parent_names: Mapping[str, str],
) -> list[LocationOption]:
    return [
        LocationOption(
            id=item.id,
            name=item.name,
            parent_id=item.parent_id,
            parent_name=parent_names.get(item.id),
            user_generated=item.user_generated,
        )
        for item in items
    ]


def has_exact_match(query: str | None, names: Iterable[str]) -> bool:
    q = normalize_query(query)
    return any(name.strip().casefold() == q for name in names)


def is_new_item(
    query: str | None,
    candidates: Sequence[tuple[str, str | None]],
) -> bool:
    """
    True when ``query`` names nothing that exists yet.

    ``candidates`` are ``(name, parent_name)`` pairs. Any substring match
    counts as existing, not only exact matches.
    """
    if not normalize_query(query):
        return False
    if has_exact_match(query, (name for name, _ in candidates)):
        return False
    return not any(matches(query, name, parent) for name, parent in candidates)


def item_candidates(
    items: Iterable[HierarchyItem],
    parent_names: Mapping[str, str],
) -> list[tuple[str, str | None]]:
    return [(item.name, parent_names.get(item.id)) for item in items]


def category_candidates(options: Iterable[CategoryOption]) -> list[tuple[str, str | None]]:
    return [(opt.name, opt.parent_name) for opt in options]

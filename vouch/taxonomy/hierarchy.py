from __future__ import annotations

import logging
import sys
from typing import Iterable

from .models import CategoryOption, HierarchyItem, LocationHierarchy

logger = logging.getLogger(__name__)

# Items without an explicit sort_order go after every item that has one.
UNORDERED = sys.maxsize


def build_children(items: Iterable[HierarchyItem]) -> dict[str, list[str]]:
    """Map each parent id to its immediate children, in input order."""
    children: dict[str, list[str]] = {}
    for item in items:
        if item.parent_id:
            children.setdefault(item.parent_id, []).append(item.id)
    return children


def _collect_descendants(root_id: str, children: dict[str, list[str]]) -> list[str]:
    # Immediate children first, then each child's subtree in the same pattern.
    seen = {root_id}
    ordered: list[str] = []
    stack = [root_id]
    cycle_at: str | None = None
    while stack:
        node = stack.pop()
        fresh = []
        for child in children.get(node, ()):
            if child in seen:
                cycle_at = cycle_at or child
                continue
            seen.add(child)
            fresh.append(child)
        ordered.extend(fresh)
        stack.extend(reversed(fresh))
    if cycle_at is not None:
        logger.warning(
            "Cycle in parent references below %s (revisited %s); expansion stopped there",
            root_id,
            cycle_at,
        )
    return ordered


def build_descendants(items: Iterable[HierarchyItem]) -> dict[str, list[str]]:
    """
    Map every item that has children to all ids below it.

    Never raises: a cycle in parent references stops expansion at the first
    repeated id and logs a warning.
    """
    items = list(items)
    children = build_children(items)
    descendants: dict[str, list[str]] = {}
    for item in items:
        if item.id in children and item.id not in descendants:
            descendants[item.id] = _collect_descendants(item.id, children)
    return descendants


def build_parent_names(items: Iterable[HierarchyItem]) -> dict[str, str]:
    items = list(items)
    names = {item.id: item.name for item in items}
    return {
        item.id: names[item.parent_id]
        for item in items
        if item.parent_id and item.parent_id in names
    }


def build_location_hierarchy(items: Iterable[HierarchyItem]) -> LocationHierarchy:
    items = list(items)
    return LocationHierarchy(
        items=items,
        descendants=build_descendants(items),
        parent_names=build_parent_names(items),
    )


def category_sort_key(option: CategoryOption) -> tuple:
    order = option.sort_order if option.sort_order is not None else UNORDERED
    return (order, option.name.casefold(), option.name, option.is_subcategory, option.id)


def flatten(
    categories: Iterable[HierarchyItem],
    subcategories: Iterable[HierarchyItem],
) -> list[CategoryOption]:
    """Combine categories and subcategories into one sorted list of options."""
    categories = list(categories)
    category_names = {cat.id: cat.name for cat in categories}

    options: list[CategoryOption] = [
        CategoryOption(
            id=cat.id,
            name=cat.name,
            display_name=cat.name,
            is_subcategory=False,
            sort_order=cat.sort_order,
        )
        for cat in categories
    ]

    for sub in subcategories:
        parent_name = category_names.get(sub.parent_id) if sub.parent_id else None
        options.append(CategoryOption(
            id=sub.id,
            name=sub.name,
            parent_id=sub.parent_id,
            parent_name=parent_name,
            display_name=f"{sub.name} ({parent_name})" if parent_name else sub.name,
            is_subcategory=True,
            sort_order=sub.sort_order,
        ))

    options.sort(key=category_sort_key)
    return options

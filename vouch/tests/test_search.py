from __future__ import annotations

from vouch.taxonomy.hierarchy import build_parent_names, flatten
from vouch.taxonomy.models import HierarchyItem
from vouch.taxonomy.search import (
    category_candidates,
    is_new_item,
    item_candidates,
    matches,
    rank_locations,
    search_categories,
    search_items,
)


def _names(items):
    return [i.name for i in items]


def test_empty_query_matches_everything():
    assert matches("", "London")
    assert matches("   ", "London")
    assert matches(None, "London")


def test_match_is_trimmed_and_case_insensitive():
    assert matches("  LON ", "London")
    assert not matches("paris", "London")


def test_match_on_parent_name():
    assert matches("food", "Restaurant", "Food & Drink")
    assert not matches("food", "Restaurant", None)


def test_ranking_example_prefix_before_contains():
    items = [
        HierarchyItem(id="1", name="London"),
        HierarchyItem(id="2", name="Central London"),
        HierarchyItem(id="3", name="Londonderry"),
    ]
    ranked = rank_locations(items, "lon", {})
    assert _names(ranked) == ["London", "Londonderry", "Central London"]


def test_ranking_exact_match_first():
    items = [
        HierarchyItem(id="1", name="Soho Square"),
        HierarchyItem(id="2", name="soho", parent_id="w"),
        HierarchyItem(id="w", name="Westminster"),
    ]
    ranked = rank_locations(items, "Soho", build_parent_names(items))
    assert _names(ranked) == ["soho", "Soho Square"]


def test_ranking_top_level_before_children():
    items = [
        HierarchyItem(id="a", name="Richmond", parent_id="london"),
        HierarchyItem(id="b", name="Richmond"),
        HierarchyItem(id="london", name="London"),
    ]
    ranked = rank_locations(items, "rich", build_parent_names(items))
    assert [i.id for i in ranked] == ["b", "a"]


def test_ranking_is_deterministic_for_any_input_order():
    items = [
        HierarchyItem(id="1", name="Hackney"),
        HierarchyItem(id="2", name="hackney"),
        HierarchyItem(id="3", name="Hackney Wick"),
        HierarchyItem(id="4", name="Hackney", parent_id="x"),
    ]
    first = rank_locations(items, "hack", {})
    second = rank_locations(list(reversed(items)), "hack", {})
    assert [i.id for i in first] == [i.id for i in second]


def test_search_items_includes_children_of_matching_parent():
    items = [
        HierarchyItem(id="london", name="London"),
        HierarchyItem(id="hackney", name="Hackney", parent_id="london"),
        HierarchyItem(id="leeds", name="Leeds"),
    ]
    found = search_items(items, "london", build_parent_names(items))
    assert _names(found) == ["London", "Hackney"]


def test_search_categories_by_parent_name():
    categories = [HierarchyItem(id="c1", name="Food & Drink", sort_order=1)]
    subs = [
        HierarchyItem(id="s1", name="Restaurant", parent_id="c1"),
        HierarchyItem(id="s2", name="Plumber"),
    ]
    found = search_categories(flatten(categories, subs), "food")
    assert [o.id for o in found] == ["c1", "s1"]


def test_new_item_detection_examples():
    items = [HierarchyItem(id="1", name="Plumber"), HierarchyItem(id="2", name="Electrician")]
    candidates = item_candidates(items, {})
    assert is_new_item("Painter", candidates)
    assert not is_new_item("plumb", candidates)
    assert not is_new_item("  PLUMBER ", candidates)


def test_blank_query_is_never_new():
    assert not is_new_item("", [])
    assert not is_new_item("   ", [("Plumber", None)])


def test_parent_name_match_is_not_new():
    categories = [HierarchyItem(id="c1", name="Home Services")]
    subs = [HierarchyItem(id="s1", name="Plumber", parent_id="c1")]
    candidates = category_candidates(flatten(categories, subs))
    assert not is_new_item("services", candidates)
    assert is_new_item("Dog walker", candidates)

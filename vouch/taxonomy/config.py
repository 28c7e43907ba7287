from __future__ import annotations

from dataclasses import dataclass

HOUR = 60 * 60

LOCATION_KINDS = ("city", "area", "neighbourhood")
CLASSIFICATION_KINDS = ("category", "subcategory")

# Location lists get user contributions far more often than classifications.
KIND_TTLS: dict[str, float] = {
    **{kind: 6 * HOUR for kind in LOCATION_KINDS},
    **{kind: 24 * HOUR for kind in CLASSIFICATION_KINDS},
}
DEFAULT_KIND_TTL = 6 * HOUR


@dataclass(frozen=True)
class TaxonomyQuery:
    lists: tuple[str, ...]
    top_level_only: bool = False


TAXONOMY_QUERIES: dict[str, TaxonomyQuery] = {
    "areas": TaxonomyQuery(lists=("area",)),
    "neighbourhoods": TaxonomyQuery(lists=("neighbourhood",)),
    "locations": TaxonomyQuery(lists=LOCATION_KINDS),
    "categories": TaxonomyQuery(lists=("category",), top_level_only=True),
    "subcategories": TaxonomyQuery(lists=("subcategory",)),
}


@dataclass(frozen=True)
class CreatorConfig:
    rpc: str
    param: str


CREATORS: dict[str, CreatorConfig] = {
    "area": CreatorConfig(rpc="get_or_create_area", param="area_name"),
    "subcategory": CreatorConfig(rpc="get_or_create_subcategory", param="subcategory_name"),
}


def ttl_for(list_names: tuple[str, ...] | list[str]) -> float:
    """Shortest freshness window among the given list kinds."""
    return min((KIND_TTLS.get(name, DEFAULT_KIND_TTL) for name in list_names), default=DEFAULT_KIND_TTL)

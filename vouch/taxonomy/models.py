from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class HierarchyItem(BaseModel):
    id: str
    name: str
    code_name: str | None = None
    parent_id: str | None = None
    list_id: str | None = None
    list_kind: str | None = None
    sort_order: int | None = None
    metadata: dict[str, Any] | None = None

    @property
    def user_generated(self) -> bool:
        return bool((self.metadata or {}).get("user_generated"))


class CategoryOption(BaseModel):
    id: str
    name: str
    parent_id: str | None = None
    parent_name: str | None = None
    display_name: str
    is_subcategory: bool
    sort_order: int | None = None


class LocationHierarchy(BaseModel):
    items: list[HierarchyItem] = Field(default_factory=list)
    descendants: dict[str, list[str]] = Field(default_factory=dict)
    parent_names: dict[str, str] = Field(default_factory=dict)

    def with_descendants(self, location_id: str) -> list[str]:
        """Return ``location_id`` followed by every id below it."""
        return [location_id, *self.descendants.get(location_id, [])]


class LoadState(str, Enum):
    idle = "idle"
    loading = "loading"
    ready = "ready"
    failed = "failed"


class LoadStatus(BaseModel):
    state: LoadState
    error: str | None = None
    error_kind: str | None = None


class LocationOption(BaseModel):
    id: str
    name: str
    parent_id: str | None = None
    parent_name: str | None = None
    user_generated: bool = False


class WidgetState(str, Enum):
    empty = "empty"
    typing = "typing"
    showing_matches = "showing_matches"
    showing_create_new = "showing_create_new"
    selected = "selected"


class LocationSearchResponse(BaseModel):
    results: list[LocationOption]
    create_new: bool
    state: WidgetState


class CategorySearchResponse(BaseModel):
    results: list[CategoryOption]
    create_new: bool
    state: WidgetState


class CreateItemRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Name must not be blank")
        return value.strip()


class CreateItemResponse(BaseModel):
    id: str
    name: str

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence, Union

from ..supabase.client import SupabaseClient, SupabaseError
from .config import CREATORS
from .models import CategoryOption, LocationOption, WidgetState
from .search import is_new_item, location_rank_key, matches, normalize_query
from .store import TaxonomyStore

logger = logging.getLogger(__name__)

Option = Union[LocationOption, CategoryOption]


def widget_state(
    query: str | None,
    selected_id: str | None,
    options: Sequence[Option] | None,
) -> WidgetState:
    """Derive the widget state from its inputs; ``options=None`` means still loading."""
    if selected_id:
        return WidgetState.selected
    if not normalize_query(query):
        return WidgetState.empty
    if options is None:
        return WidgetState.typing
    if is_new_item(query, [(opt.name, opt.parent_name) for opt in options]):
        return WidgetState.showing_create_new
    return WidgetState.showing_matches


@dataclass
class AutocompleteWidget:
    """Single-select picker over locations or business types."""

    options: list[Option] | None = None
    query: str = ""
    selected_id: str | None = None
    max_results: int = 10
    ranked: bool = True
    _created_names: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def state(self) -> WidgetState:
        return widget_state(self.query, self.selected_id, self.options)

    @property
    def visible_options(self) -> list[Option]:
        if self.state is not WidgetState.showing_matches:
            return []
        found = [opt for opt in self.options or [] if matches(self.query, opt.name, opt.parent_name)]
        if self.ranked:
            found.sort(key=lambda opt: location_rank_key(opt, self.query))
        return found[: self.max_results]

    @property
    def create_new_label(self) -> str | None:
        if self.state is not WidgetState.showing_create_new:
            return None
        return self.query.strip()

    def load(self, options: Sequence[Option]) -> WidgetState:
        self.options = list(options)
        return self.state

    def type(self, text: str) -> WidgetState:
        if self.state is WidgetState.selected:
            logger.debug("Ignoring input while a value is selected; clear first")
            return self.state
        self.query = text
        return self.state

    def select(self, option_id: str) -> WidgetState:
        known = {opt.id for opt in self.options or []}
        if option_id not in known and option_id not in self._created_names.values():
            raise ValueError(f"Unknown option {option_id!r}")
        self.selected_id = option_id
        self.query = ""
        return self.state

    def select_created(self, name: str, item_id: str) -> WidgetState:
        """Select an item the backend just created for the typed ``name``."""
        self._created_names[name.strip()] = item_id
        return self.select(item_id)

    def clear(self) -> WidgetState:
        self.selected_id = None
        self.query = ""
        return self.state


class ItemCreator:
    """
    Calls the backend's idempotent get-or-create RPC for one list kind.

    A name identical to the previous call is answered from memory, and
    concurrent calls for the same name share one RPC. Backend failures
    propagate unchanged.
    """

    def __init__(self, client: SupabaseClient, store: TaxonomyStore, kind: str) -> None:
        self.kind = kind
        self._config = CREATORS[kind]
        self._client = client
        self._store = store
        self._last: tuple[str, str] | None = None
        self._pending: dict[str, asyncio.Task] = {}
        self._waiters: dict[asyncio.Task, int] = {}

    async def get_or_create(self, name: str) -> str:
        value = name.strip()
        if not value:
            raise ValueError(f"{self.kind} name must not be blank")
        if self._last is not None and self._last[0] == value:
            return self._last[1]

        task = self._pending.get(value)
        if task is None or task.cancelled():
            task = asyncio.ensure_future(self._call(value))
            self._pending[value] = task
            task.add_done_callback(lambda t: self._forget(value, t))

        # One caller going away must not cancel the call for the others.
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        finally:
            remaining = self._waiters.pop(task) - 1
            if remaining:
                self._waiters[task] = remaining
            elif not task.done():
                task.cancel()

    def _forget(self, value: str, task: asyncio.Task) -> None:
        if self._pending.get(value) is task:
            del self._pending[value]

    async def _call(self, value: str) -> str:
        data = await self._client.rpc(self._config.rpc, {self._config.param: value})
        if not data:
            raise SupabaseError(f"Failed to get or create {self.kind} - no ID returned")
        item_id = str(data)
        self._last = (value, item_id)
        self._store.invalidate(self.kind)
        logger.info("Resolved %s '%s' to %s", self.kind, value, item_id)
        return item_id

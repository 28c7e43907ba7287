from __future__ import annotations


class TaxonomyError(Exception):
    """Base class for taxonomy load failures. ``kind`` tags the failure."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ListNotFoundError(TaxonomyError):
    """A requested list has no definition in the backend (a data/config defect)."""

    kind = "not_found"

    def __init__(self, list_names: list[str]) -> None:
        self.list_names = list_names
        names = ", ".join(f"'{n}'" for n in list_names)
        super().__init__(f"List {names} not found")


class TaxonomyUnavailableError(TaxonomyError):
    """The backend could not be reached or rejected the read. Retry is up to the caller."""

    kind = "unavailable"

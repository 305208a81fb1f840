"""
ports/catalog_port.py
──────────────────────────────────────────────────────────────────────────────
Abstract interface for the program catalog source.

The ranking core never reads files itself: it receives an ordered sequence
of raw records from a CatalogPort and validates them at the boundary
(services/catalog.py).

Current implementation: JsonCatalogAdapter (a JSON file on disk)
To swap: write a new adapter (e.g. an HTTP export or a database table)
implementing this Protocol and change ONE line in services/container.py.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class CatalogPort(Protocol):
    """Contract for a program catalog source."""

    @property
    def source_name(self) -> str:
        """Human-readable identifier of the catalog (path, URL …)."""
        ...

    def load_records(self) -> list[dict[str, Any]]:
        """Return every raw catalog record in catalog order.

        Records are returned unvalidated; shape checks and quarantine
        happen in services/catalog.py.

        Raises:
            CatalogError: If the source cannot be read or is not a list
                          of records.
        """
        ...

"""
adapters/json_catalog.py
──────────────────────────────────────────────────────────────────────────────
Implements CatalogPort by reading a JSON file from disk.

File layout:
  A top-level JSON array of program objects, or an object wrapping the
  array under "programs".  Keys follow the upstream export
  (name, type, federalStates, measures, fundingRate, source, description).

The file is read on every load_records() call; the engine calls it once at
startup, so there is no caching here.

To swap the source (HTTP export, database table …):
  1. Write a new adapter implementing CatalogPort
  2. Change ONE line in services/container.py
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from grant_ranker.domain.exceptions import CatalogError

logger = logging.getLogger(__name__)


class JsonCatalogAdapter:
    """JSON-file implementation of CatalogPort.

    Injected into the engine via services/container.py.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        logger.debug("JsonCatalogAdapter ready | path=%s", self._path)

    # ── CatalogPort implementation ─────────────────────────────────────────

    @property
    def source_name(self) -> str:
        return str(self._path)

    def load_records(self) -> list[dict[str, Any]]:
        """Read and decode the catalog file.

        Raises:
            CatalogError: If the file is missing, not valid JSON, or not a
                          list of records.
        """
        if not self._path.exists():
            raise CatalogError(f"Catalog file not found: {self._path}")

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CatalogError(f"Catalog file {self._path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise CatalogError(f"Cannot read catalog file {self._path}: {exc}") from exc

        # Unwrap {"programs": [...]}
        if isinstance(data, dict):
            data = data.get("programs")

        if not isinstance(data, list):
            raise CatalogError(
                f"Catalog file {self._path} must contain a JSON array of programs"
            )

        logger.info("Catalog read | path=%s records=%d", self._path, len(data))
        return data

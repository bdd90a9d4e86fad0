"""Dashboard manifests: one ``<dashboard_id>.json`` file per dashboard."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field, ValidationError

from lumen.site.config import CamelModel

logger = logging.getLogger(__name__)

DEFAULT_DASHBOARDS_DIR = Path(__file__).parent / "dashboards"


class DashboardManifest(CamelModel):
    id: str
    name: str
    description: str = ""
    available_tools: list[str] = Field(default_factory=list)
    out_of_scope: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)


class DashboardCatalog:
    """Loads and caches dashboard manifests from a directory."""

    def __init__(self, directory: str | Path | None = None) -> None:
        self._dir = Path(directory) if directory else DEFAULT_DASHBOARDS_DIR
        self._cache: dict[str, DashboardManifest] = {}

    def get(self, dashboard_id: str) -> DashboardManifest | None:
        """Return the manifest for ``dashboard_id``, or None if unavailable."""
        if dashboard_id in self._cache:
            return self._cache[dashboard_id]

        # Ids are file stems; refuse anything that could escape the directory
        if not dashboard_id or Path(dashboard_id).name != dashboard_id:
            return None

        manifest_path = self._dir / f"{dashboard_id}.json"
        if not manifest_path.exists():
            return None

        try:
            manifest = DashboardManifest.model_validate_json(
                manifest_path.read_text(encoding="utf-8")
            )
        except (OSError, ValidationError) as e:
            logger.error("Error loading manifest for %s: %s", dashboard_id, e)
            return None

        self._cache[dashboard_id] = manifest
        return manifest

    def list(self) -> list[DashboardManifest]:
        if not self._dir.is_dir():
            logger.warning("Dashboards directory not found: %s", self._dir)
            return []
        manifests = (self.get(p.stem) for p in sorted(self._dir.glob("*.json")))
        return [m for m in manifests if m is not None]

    def clear(self) -> None:
        self._cache.clear()

"""Site module -- per-deployment configuration and dashboard manifests.

Public API: SiteConfig + loader, DashboardManifest + catalog.
"""

from lumen.site.config import SiteConfig, SiteConfigError, load_site_config
from lumen.site.dashboards import DashboardCatalog, DashboardManifest

__all__ = [
    "DashboardCatalog",
    "DashboardManifest",
    "SiteConfig",
    "SiteConfigError",
    "load_site_config",
]

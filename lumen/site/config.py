"""Site customization loaded from a JSON file.

The JSON uses camelCase keys (``enabledDashboards``, ``dateRangeLimitDays``);
models expose snake_case attributes through pydantic aliases.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from lumen.agent.errors import LumenError

logger = logging.getLogger(__name__)

DEFAULT_SITE_CONFIG = Path(__file__).parent / "site.json"


class SiteConfigError(LumenError):
    """Site configuration missing or malformed."""


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiCredentials(CamelModel):
    secret_arn: str | None = None
    api_key_header: str | None = None


class ApiSettings(CamelModel):
    base_url: str | None = None
    auth_method: Literal["none", "oauth2", "apiKey"] = "none"
    credentials: ApiCredentials | None = None
    timeout: int = 30000


class LlmConfig(CamelModel):
    provider: Literal["bedrock", "anthropic"] = "bedrock"
    region: str = "us-east-1"
    model: str = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"
    max_tokens: int = Field(4096, ge=1)
    temperature: float = Field(0.7, ge=0.0, le=1.0)


class Sanitization(CamelModel):
    strip_case_ids: bool = True
    allow_surgeon_names: bool = True
    allow_procedure_types: bool = True
    redact_patient_info: bool = True


class Features(CamelModel):
    enabled_dashboards: list[str] = Field(default_factory=list)
    allow_cross_dashboard: bool = False
    max_queries_per_session: int = 50
    show_calculation_explanations: bool = True
    show_tool_calls: bool = False
    conversation_history: bool = True
    response_streaming: bool = False


class DataScope(CamelModel):
    facility_ids: list[str] | None = None
    service_lines: list[str] | None = None
    date_range_limit_days: int = 365


class Boundaries(CamelModel):
    can_answer: list[str] = Field(default_factory=list)
    cannot_answer: list[str] = Field(default_factory=list)


class SiteConfig(CamelModel):
    site_id: str
    site_name: str
    api: ApiSettings = Field(default_factory=ApiSettings)
    llm: LlmConfig | None = None
    sanitization: Sanitization = Field(default_factory=Sanitization)
    features: Features = Field(default_factory=Features)
    data_scope: DataScope = Field(default_factory=DataScope)
    boundaries: Boundaries = Field(default_factory=Boundaries)

    def is_dashboard_enabled(self, dashboard_id: str) -> bool:
        return dashboard_id in self.features.enabled_dashboards

    def boundaries_prompt(self) -> str:
        lines = ["## What you CAN help with:"]
        lines.extend(f"- {item}" for item in self.boundaries.can_answer)
        lines.append("")
        lines.append("## What you CANNOT help with (politely decline these):")
        lines.extend(f"- {item}" for item in self.boundaries.cannot_answer)
        return "\n".join(lines) + "\n"

    def data_scope_prompt(self) -> str:
        scope = self.data_scope
        lines = ["## Data Scope:"]
        if scope.facility_ids:
            lines.append(f"- Limited to facilities: {', '.join(scope.facility_ids)}")
        if scope.service_lines:
            lines.append(f"- Limited to service lines: {', '.join(scope.service_lines)}")
        lines.append(f"- Date range limited to last {scope.date_range_limit_days} days")
        return "\n".join(lines) + "\n"


def load_site_config(path: str | Path | None = None) -> SiteConfig:
    """Read and validate a site config file (packaged default if no path)."""
    config_path = Path(path) if path else DEFAULT_SITE_CONFIG
    if not config_path.exists():
        raise SiteConfigError(f"Site config not found at {config_path}")

    try:
        config = SiteConfig.model_validate_json(config_path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise SiteConfigError(f"Failed to load site config {config_path}: {e}") from e

    logger.info("Loaded config for site: %s", config.site_name)
    return config

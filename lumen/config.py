"""Settings via pydantic-settings with LUMEN_ env prefix.

AWS fields use validation_alias to read the standard unprefixed variables
(AWS_REGION, AWS_BEARER_TOKEN_BEDROCK) so the same environment works for
the AWS CLI and for Lumen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lumen.agent.schemas import InferenceConfig

if TYPE_CHECKING:
    from lumen.site.config import SiteConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LUMEN_", env_file=".env", populate_by_name=True)

    # Bedrock
    aws_region: str = Field("us-east-1", validation_alias="AWS_REGION")
    # Bedrock API key, sent as a Bearer token
    bedrock_api_key: str = Field("", validation_alias="AWS_BEARER_TOKEN_BEDROCK")
    bedrock_endpoint_url: str = ""  # Override, e.g. a VPC endpoint
    model_id: str = "us.anthropic.claude-sonnet-4-5-20250929-v1:0"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Agent loop
    max_iterations: int = Field(10, ge=1)
    max_tokens: int = Field(4096, ge=1)
    temperature: float = 0.7
    parallel_tool_calls: bool = True
    request_timeout: float = 300.0  # seconds, wall-clock bound per /chat request

    # Runtime
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "info"
    mcp_enabled: bool = True

    # Site customization (empty = packaged defaults)
    site_config_path: str = ""
    dashboards_dir: str = ""

    # In-memory stores
    usage_max_records: int = 10000
    max_conversations: int = 100

    @model_validator(mode="after")
    def _validate_temperature(self) -> "Settings":
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be within [0, 1], got {self.temperature}")
        return self


@dataclass(frozen=True)
class LlmSettings:
    """Model parameters after applying site overrides."""

    region: str
    model_id: str
    inference: InferenceConfig


def resolve_llm(settings: Settings, site: SiteConfig | None = None) -> LlmSettings:
    """Combine process settings with the site's ``llm`` block (site wins)."""
    if site is not None and site.llm is not None:
        llm = site.llm
        return LlmSettings(
            region=llm.region,
            model_id=llm.model,
            inference=InferenceConfig(max_tokens=llm.max_tokens, temperature=llm.temperature),
        )
    return LlmSettings(
        region=settings.aws_region,
        model_id=settings.model_id,
        inference=InferenceConfig(
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        ),
    )

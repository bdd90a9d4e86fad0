"""Model client -- one Bedrock Converse call per conversational turn.

Talks to the Converse REST endpoint directly over httpx, authenticating
with a Bedrock API key (Bearer token). Failures are raised as
TransportFailure; retry policy is left to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from lumen.agent.adapter import conversation_to_wire, turn_from_wire
from lumen.agent.errors import EmptyModelResponse, ProtocolViolation, TransportFailure
from lumen.agent.schemas import (
    Conversation,
    InferenceConfig,
    StopSignal,
    TokenUsage,
    Turn,
)
from lumen.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class ModelResponse:
    """Parsed result of one model call."""

    turn: Turn
    stop_signal: StopSignal
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw_stop_reason: str = ""


class ModelClient(Protocol):
    async def send(
        self,
        conversation: Conversation,
        tool_specs: Sequence[dict[str, Any]],
        system_prompt: str,
        inference: InferenceConfig,
    ) -> ModelResponse: ...


class BedrockClient:
    """Bedrock Converse API client.

    Safe for concurrent use by independent conversations: the only shared
    state is the pooled httpx client.
    """

    def __init__(
        self,
        settings: Settings,
        region: str | None = None,
        model_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._region = region or settings.aws_region
        self.model_id = model_id or settings.model_id
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        if self._settings.bedrock_endpoint_url:
            return self._settings.bedrock_endpoint_url.rstrip("/")
        return f"https://bedrock-runtime.{self._region}.amazonaws.com"

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings

        headers: dict[str, str] = {
            "content-type": "application/json",
            "accept": "application/json",
        }
        if settings.bedrock_api_key:
            headers["authorization"] = f"Bearer {settings.bedrock_api_key}"
        else:
            logger.warning("AWS_BEARER_TOKEN_BEDROCK is not set -- model calls will fail")

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )

        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=self._transport,
        )
        logger.info("Bedrock client initialized (region=%s, model=%s)", self._region, self.model_id)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    def build_payload(
        self,
        conversation: Conversation,
        tool_specs: Sequence[dict[str, Any]],
        system_prompt: str,
        inference: InferenceConfig,
    ) -> dict[str, Any]:
        """Build the Converse request body."""
        payload: dict[str, Any] = {
            "messages": conversation_to_wire(conversation),
            "inferenceConfig": inference.to_wire(),
        }
        if system_prompt:
            payload["system"] = [{"text": system_prompt}]
        if tool_specs:
            payload["toolConfig"] = {"tools": list(tool_specs)}
        return payload

    async def send(
        self,
        conversation: Conversation,
        tool_specs: Sequence[dict[str, Any]],
        system_prompt: str,
        inference: InferenceConfig,
    ) -> ModelResponse:
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")

        payload = self.build_payload(conversation, tool_specs, system_prompt, inference)
        path = f"/model/{quote(self.model_id, safe='')}/converse"

        try:
            response = await self._http.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Model request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportFailure(f"HTTP error: {e}") from e

        if response.status_code != 200:
            try:
                error_msg = response.json().get("message", "unknown error")
            except (ValueError, AttributeError):
                error_msg = response.text[:500]
            error_type = response.headers.get("x-amzn-errortype", "http_error").split(":")[0]
            raise TransportFailure(
                f"Bedrock API error ({response.status_code}): {error_type} - {error_msg}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolViolation(f"Model response is not valid JSON: {response.text[:200]!r}") from e
        if not isinstance(data, dict):
            raise ProtocolViolation(f"Model response is not a JSON object: {type(data).__name__}")

        output = data.get("output")
        message = output.get("message") if isinstance(output, dict) else None
        if not message:
            raise EmptyModelResponse()

        try:
            turn = turn_from_wire(message)
            usage = TokenUsage.from_wire(data.get("usage"))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProtocolViolation(f"Malformed model message: {type(e).__name__}: {e}") from e

        stop_reason = data.get("stopReason") or ""
        return ModelResponse(
            turn=turn,
            stop_signal=StopSignal.from_stop_reason(stop_reason),
            usage=usage,
            raw_stop_reason=stop_reason,
        )

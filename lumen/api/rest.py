"""REST API for the Lumen analytics assistant.

Endpoints:
  POST /chat                  - Send message, get response
  GET  /tools                 - Registered tool definitions
  GET  /dashboards            - Enabled dashboard manifests
  GET  /dashboards/{id}       - One dashboard manifest
  GET  /admin/stats           - Usage and cost totals
  GET  /admin/daily-costs     - Cost per day (?days=30)
  GET  /admin/dashboard-usage - Usage per dashboard
  GET  /admin/logs            - Recent usage records (?limit=100)
  GET  /admin/errors          - Recent failed requests (?limit=50)
  GET  /health                - Health check
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic.alias_generators import to_camel
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from lumen.agent.conversations import ConversationStore
from lumen.agent.errors import (
    LoopError,
    ProtocolViolation,
    TransportFailure,
)
from lumen.agent.loop import AgentLoop, ToolCallCollector
from lumen.agent.prompts import build_system_prompt
from lumen.agent.schemas import RunStats
from lumen.config import Settings
from lumen.services.usage_tracker import UsageTracker, calculate_cost
from lumen.site.config import SiteConfig
from lumen.site.dashboards import DashboardCatalog
from lumen.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _camelize(data: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(k): v for k, v in data.items()}


def _error_status(error: LoopError) -> int:
    if isinstance(error, (TransportFailure, ProtocolViolation)):
        return 502
    return 500


def create_app(
    loop: AgentLoop,
    registry: ToolRegistry,
    tracker: UsageTracker,
    conversations: ConversationStore,
    site: SiteConfig,
    dashboards: DashboardCatalog,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def chat(request: Request) -> JSONResponse:
        """POST /chat - Send a message, get a response."""
        try:
            body = await request.json()
        except Exception:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing or invalid 'message' field"}, status_code=400)

        dashboard_id = body.get("dashboard")
        manifest = None
        tool_names = None
        if dashboard_id:
            if not site.is_dashboard_enabled(dashboard_id):
                return JSONResponse(
                    {"error": f"Dashboard not enabled: {dashboard_id}"}, status_code=400
                )
            manifest = dashboards.get(dashboard_id)
            if manifest is None:
                return JSONResponse(
                    {"error": f"Dashboard not found: {dashboard_id}"}, status_code=404
                )
            tool_names = manifest.available_tools

        session = conversations.get_or_create(body.get("conversation_id"))
        max_queries = site.features.max_queries_per_session

        def limit_reached() -> JSONResponse | None:
            if max_queries and session.query_count >= max_queries:
                return JSONResponse(
                    {
                        "error": f"Query limit of {max_queries} reached for this conversation",
                        "conversation_id": session.conversation_id,
                    },
                    status_code=429,
                )
            return None

        rejected = limit_reached()
        if rejected is not None:
            return rejected

        request_id = str(uuid4())
        timestamp = datetime.now(timezone.utc).isoformat()
        collector = ToolCallCollector()
        system_prompt = build_system_prompt(site, manifest)
        keep_history = site.features.conversation_history

        def record_failure(stats: RunStats, error: str) -> None:
            tracker.log_usage(
                request_id=request_id,
                status="error",
                dashboard=dashboard_id,
                message_length=len(message),
                tool_call_count=stats.tool_calls,
                input_tokens=stats.usage.input_tokens,
                output_tokens=stats.usage.output_tokens,
                total_tokens=stats.usage.total_tokens,
                iterations=stats.iterations,
                duration_ms=stats.duration_ms,
                error_message=error,
            )
            logger.error(json.dumps({
                "type": "error",
                "requestId": request_id,
                "timestamp": timestamp,
                "dashboard": dashboard_id,
                "error": error,
            }))

        async with session.lock:
            # Requests queued on the lock may have used up the limit meanwhile
            rejected = limit_reached()
            if rejected is not None:
                return rejected
            session.query_count += 1
            prior = session.conversation if keep_history else None
            try:
                result = await asyncio.wait_for(
                    loop.run(
                        message,
                        prior,
                        observer=collector,
                        tool_names=tool_names,
                        system_prompt=system_prompt,
                    ),
                    timeout=settings.request_timeout,
                )
            except asyncio.TimeoutError:
                error = f"Request timed out after {settings.request_timeout:g}s"
                record_failure(RunStats(duration_ms=int(settings.request_timeout * 1000)), error)
                return JSONResponse({"error": error, "requestId": request_id}, status_code=504)
            except LoopError as e:
                record_failure(e.stats or RunStats(), str(e))
                return JSONResponse(
                    {"error": str(e), "requestId": request_id}, status_code=_error_status(e)
                )
            except Exception as e:
                record_failure(RunStats(), str(e) or "Internal server error")
                return JSONResponse(
                    {"error": str(e) or "Internal server error", "requestId": request_id},
                    status_code=500,
                )

            if keep_history:
                session.conversation = result.conversation

        stats = result.stats
        estimated_cost = calculate_cost(stats.usage.input_tokens, stats.usage.output_tokens)
        tracker.log_usage(
            request_id=request_id,
            status="success",
            dashboard=dashboard_id,
            message_length=len(message),
            tool_call_count=len(collector.calls),
            input_tokens=stats.usage.input_tokens,
            output_tokens=stats.usage.output_tokens,
            total_tokens=stats.usage.total_tokens,
            iterations=stats.iterations,
            duration_ms=stats.duration_ms,
        )
        logger.info(json.dumps({
            "type": "request",
            "requestId": request_id,
            "timestamp": timestamp,
            "dashboard": dashboard_id,
            "messageLength": len(message),
            "toolCallCount": len(collector.calls),
            "usage": stats.usage.to_dict(),
            "estimatedCost": estimated_cost,
            "iterations": stats.iterations,
            "durationMs": stats.duration_ms,
        }))

        payload: dict[str, Any] = {
            "response": result.final_text,
            "conversation_id": session.conversation_id,
            "dashboard": dashboard_id,
            "availableTools": result.available_tools,
            "usage": {**stats.usage.to_dict(), "estimatedCost": estimated_cost},
            "meta": {
                "requestId": request_id,
                "timestamp": timestamp,
                "iterations": stats.iterations,
                "durationMs": stats.duration_ms,
            },
        }
        if site.features.show_tool_calls:
            payload["toolCalls"] = [
                {"name": c.name, "params": c.input, "result": c.result} for c in collector.calls
            ]
        return JSONResponse(payload)

    async def list_tools(request: Request) -> JSONResponse:
        """GET /tools - Registered tools."""
        return JSONResponse({
            "tools": [
                {"name": d.name, "description": d.description, "inputSchema": d.input_schema}
                for d in registry.list_definitions()
            ]
        })

    async def list_dashboards(request: Request) -> JSONResponse:
        """GET /dashboards - Manifests of enabled dashboards."""
        enabled = [m for m in dashboards.list() if site.is_dashboard_enabled(m.id)]
        return JSONResponse({"dashboards": [m.model_dump(by_alias=True) for m in enabled]})

    async def get_dashboard(request: Request) -> JSONResponse:
        """GET /dashboards/{id} - One dashboard manifest."""
        dashboard_id = request.path_params["id"]
        manifest = dashboards.get(dashboard_id)
        if manifest is None or not site.is_dashboard_enabled(dashboard_id):
            return JSONResponse({"error": "Dashboard not found"}, status_code=404)
        return JSONResponse(manifest.model_dump(by_alias=True))

    def _int_param(request: Request, name: str, default: int) -> int:
        try:
            value = int(request.query_params.get(name, default))
        except ValueError:
            return default
        return value if value > 0 else default

    async def admin_stats(request: Request) -> JSONResponse:
        """GET /admin/stats"""
        return JSONResponse(_camelize(asdict(tracker.get_usage_stats())))

    async def admin_daily_costs(request: Request) -> JSONResponse:
        """GET /admin/daily-costs?days=30"""
        days = _int_param(request, "days", 30)
        return JSONResponse([_camelize(asdict(d)) for d in tracker.get_daily_costs(days)])

    async def admin_dashboard_usage(request: Request) -> JSONResponse:
        """GET /admin/dashboard-usage"""
        return JSONResponse([_camelize(asdict(u)) for u in tracker.get_dashboard_usage()])

    async def admin_logs(request: Request) -> JSONResponse:
        """GET /admin/logs?limit=100"""
        limit = _int_param(request, "limit", 100)
        return JSONResponse([_camelize(log.to_dict()) for log in tracker.get_recent_logs(limit)])

    async def admin_errors(request: Request) -> JSONResponse:
        """GET /admin/errors?limit=50"""
        limit = _int_param(request, "limit", 50)
        return JSONResponse([_camelize(log.to_dict()) for log in tracker.get_recent_errors(limit)])

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "ok"})

    routes = [
        Route("/chat", chat, methods=["POST"]),
        Route("/tools", list_tools),
        Route("/dashboards", list_dashboards),
        Route("/dashboards/{id}", get_dashboard),
        Route("/admin/stats", admin_stats),
        Route("/admin/daily-costs", admin_daily_costs),
        Route("/admin/dashboard-usage", admin_dashboard_usage),
        Route("/admin/logs", admin_logs),
        Route("/admin/errors", admin_errors),
        Route("/health", health),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )
    ]

    kwargs: dict[str, Any] = {"routes": routes, "middleware": middleware}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)

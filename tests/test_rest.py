"""Integration tests for REST API endpoints.

Uses httpx AsyncClient with ASGITransport for async HTTP testing. A real
AgentLoop and the block utilization tools run behind /chat; only the
model client is scripted.
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import StubModelClient, model_response
from lumen.agent.conversations import ConversationStore
from lumen.agent.errors import TransportFailure
from lumen.agent.loop import AgentLoop, LoopConfig
from lumen.api.rest import create_app
from lumen.services.usage_tracker import UsageTracker
from lumen.site import DashboardCatalog, SiteConfig, load_site_config
from lumen.tools import ToolRegistry, register_block_util_tools

SUMMARY_CALL = {
    "id": "tu_1",
    "name": "block_util_summary",
    "input": {"start_date": "2024-01-01", "end_date": "2024-01-31"},
}


class SlowModelClient:
    async def send(self, conversation, tool_specs, system_prompt, inference):
        await asyncio.sleep(5)
        return model_response("too late")


class PausingModelClient(StubModelClient):
    """Yields to the event loop before answering so requests overlap."""

    async def send(self, conversation, tool_specs, system_prompt, inference):
        await asyncio.sleep(0.01)
        return await super().send(conversation, tool_specs, system_prompt, inference)


def _site_with(**features) -> SiteConfig:
    site = load_site_config()
    return site.model_copy(update={"features": site.features.model_copy(update=features)})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tracker():
    return UsageTracker()


@pytest.fixture
def conversations():
    return ConversationStore()


@pytest.fixture
def make_app(settings, tracker, conversations):
    """Factory: build the app around a given model client and site."""

    def _make(model_client, site=None, max_iterations=10, **setting_overrides):
        registry = ToolRegistry()
        register_block_util_tools(registry)
        loop = AgentLoop(registry, model_client, config=LoopConfig(max_iterations=max_iterations))
        return create_app(
            loop=loop,
            registry=registry,
            tracker=tracker,
            conversations=conversations,
            site=site or load_site_config(),
            dashboards=DashboardCatalog(),
            settings=settings.model_copy(update=setting_overrides),
        )

    return _make


@pytest.fixture
def http():
    """Returns an async context factory: ``async with http(app) as c``."""

    def _client(app):
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    return _client


# ---------------------------------------------------------------------------
# /chat
# ---------------------------------------------------------------------------


class TestChat:
    async def test_simple_answer(self, make_app, http, tracker):
        model = StubModelClient(model_response("Utilization was 72%."))
        async with http(make_app(model)) as c:
            r = await c.post("/chat", json={"message": "How are we doing?"})

        assert r.status_code == 200
        data = r.json()
        assert data["response"] == "Utilization was 72%."
        assert data["conversation_id"].startswith("conv_")
        assert data["dashboard"] is None
        assert len(data["availableTools"]) == 4
        assert data["usage"]["inputTokens"] == 10
        assert data["usage"]["estimatedCost"] > 0
        assert data["meta"]["iterations"] == 1
        assert data["toolCalls"] == []
        assert len(tracker) == 1
        assert tracker.get_recent_logs(1)[0].status == "success"

    async def test_tool_calls_reported(self, make_app, http, tracker):
        model = StubModelClient(
            model_response(stop_reason="tool_use", tool_uses=[SUMMARY_CALL]),
            model_response("Overall utilization was 72%."),
        )
        async with http(make_app(model)) as c:
            r = await c.post("/chat", json={"message": "Summary for January", "dashboard": "block-utilization"})

        assert r.status_code == 200
        data = r.json()
        assert data["dashboard"] == "block-utilization"
        [call] = data["toolCalls"]
        assert call["name"] == "block_util_summary"
        assert call["params"] == SUMMARY_CALL["input"]
        assert call["result"]["utilization_rate"] == 0.72
        assert data["meta"]["iterations"] == 2
        assert tracker.get_recent_logs(1)[0].tool_call_count == 1

    async def test_tool_calls_hidden_when_disabled(self, make_app, http):
        model = StubModelClient(model_response("Hi"))
        async with http(make_app(model, site=_site_with(show_tool_calls=False))) as c:
            r = await c.post("/chat", json={"message": "hello"})
        assert "toolCalls" not in r.json()

    async def test_conversation_continues(self, make_app, http):
        model = StubModelClient(model_response("First answer"), model_response("Second answer"))
        async with http(make_app(model)) as c:
            first = await c.post("/chat", json={"message": "one"})
            conv_id = first.json()["conversation_id"]
            second = await c.post("/chat", json={"message": "two", "conversation_id": conv_id})

        assert second.json()["conversation_id"] == conv_id
        assert second.json()["response"] == "Second answer"
        # user, assistant, user
        assert len(model.calls[1]["conversation"]) == 3

    async def test_history_disabled(self, make_app, http):
        model = StubModelClient(model_response("a"), model_response("b"))
        async with http(make_app(model, site=_site_with(conversation_history=False))) as c:
            first = await c.post("/chat", json={"message": "one"})
            await c.post("/chat", json={"message": "two", "conversation_id": first.json()["conversation_id"]})

        assert len(model.calls[1]["conversation"]) == 1

    async def test_missing_message(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            r = await c.post("/chat", json={"dashboard": "block-utilization"})
        assert r.status_code == 400

    async def test_invalid_json(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            r = await c.post("/chat", content=b"{broken", headers={"content-type": "application/json"})
        assert r.status_code == 400

    async def test_dashboard_not_enabled(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            r = await c.post("/chat", json={"message": "hi", "dashboard": "case-volume"})
        assert r.status_code == 400

    async def test_dashboard_without_manifest(self, make_app, http):
        site = _site_with(enabled_dashboards=["block-utilization", "ghost"])
        async with http(make_app(StubModelClient(model_response("x")), site=site)) as c:
            r = await c.post("/chat", json={"message": "hi", "dashboard": "ghost"})
        assert r.status_code == 404

    async def test_query_limit(self, make_app, http):
        model = StubModelClient(model_response("ok"))
        async with http(make_app(model, site=_site_with(max_queries_per_session=1))) as c:
            first = await c.post("/chat", json={"message": "one"})
            conv_id = first.json()["conversation_id"]
            second = await c.post("/chat", json={"message": "two", "conversation_id": conv_id})

        assert second.status_code == 429
        assert second.json()["conversation_id"] == conv_id
        assert len(model.calls) == 1

    async def test_query_limit_holds_for_concurrent_requests(self, make_app, http, conversations):
        model = PausingModelClient(model_response("ok"))
        app = make_app(model, site=_site_with(max_queries_per_session=1))
        async with http(app) as c:
            responses = await asyncio.gather(*(
                c.post("/chat", json={"message": f"q{i}", "conversation_id": "shared"})
                for i in range(4)
            ))

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200, 429, 429, 429]
        assert len(model.calls) == 1
        assert conversations.get("shared").query_count == 1


class TestChatFailures:
    async def test_transport_failure(self, make_app, http, tracker, conversations):
        model = StubModelClient(TransportFailure("Bedrock API error (503): ServiceUnavailable - down", 503))
        async with http(make_app(model)) as c:
            r = await c.post("/chat", json={"message": "hi", "conversation_id": "c1"})
            errors = await c.get("/admin/errors")

        assert r.status_code == 502
        assert "ServiceUnavailable" in r.json()["error"]
        assert tracker.get_recent_errors(1)[0].iterations == 1
        assert errors.json()[0]["status"] == "error"
        # Failed run does not replace the stored conversation
        assert len(conversations.get("c1").conversation) == 0

    async def test_iteration_bound(self, make_app, http, tracker):
        model = StubModelClient(model_response(stop_reason="tool_use", tool_uses=[SUMMARY_CALL]))
        async with http(make_app(model, max_iterations=2)) as c:
            r = await c.post("/chat", json={"message": "loop"})

        assert r.status_code == 500
        assert r.json()["error"] == "Max iterations (2) exceeded"
        entry = tracker.get_recent_errors(1)[0]
        assert entry.iterations == 2
        assert entry.tool_call_count == 2

    async def test_request_timeout(self, make_app, http, tracker):
        async with http(make_app(SlowModelClient(), request_timeout=0.05)) as c:
            r = await c.post("/chat", json={"message": "slow"})

        assert r.status_code == 504
        assert tracker.get_recent_errors(1)[0].error_message.startswith("Request timed out")


# ---------------------------------------------------------------------------
# Read-only endpoints
# ---------------------------------------------------------------------------


class TestReadEndpoints:
    async def test_health(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            r = await c.get("/health")
        assert r.json() == {"status": "ok"}

    async def test_tools(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            r = await c.get("/tools")
        tools = r.json()["tools"]
        assert [t["name"] for t in tools][0] == "block_util_summary"
        assert tools[0]["inputSchema"]["required"] == ["start_date", "end_date"]

    async def test_dashboards(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            listing = await c.get("/dashboards")
            one = await c.get("/dashboards/block-utilization")
            missing = await c.get("/dashboards/case-volume")

        assert [d["id"] for d in listing.json()["dashboards"]] == ["block-utilization"]
        assert one.json()["availableTools"][0] == "block_util_summary"
        assert missing.status_code == 404

    async def test_admin_endpoints(self, make_app, http):
        async with http(make_app(StubModelClient(model_response("x")))) as c:
            await c.post("/chat", json={"message": "one", "dashboard": "block-utilization"})
            await c.post("/chat", json={"message": "two"})
            stats = await c.get("/admin/stats")
            daily = await c.get("/admin/daily-costs?days=3")
            usage = await c.get("/admin/dashboard-usage")
            logs = await c.get("/admin/logs?limit=1")
            bad_limit = await c.get("/admin/logs?limit=abc")

        assert stats.json()["totalCalls"] == 2
        assert stats.json()["successfulCalls"] == 2
        assert len(daily.json()) == 3
        assert daily.json()[0]["calls"] == 2
        assert {u["dashboard"] for u in usage.json()} == {"block-utilization", "unknown"}
        assert len(logs.json()) == 1
        assert logs.json()[0]["requestId"]
        assert len(bad_limit.json()) == 2

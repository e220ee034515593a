"""
Test suite for startup store hydration.

The read API is served by httpx.MockTransport so each resource can succeed or
fail independently.
"""

import httpx
import pytest

from mission_control.services.hydration import hydrate_from_url, hydrate_store
from mission_control.services.store import MAX_COST_ENTRIES, MAX_LOG_ENTRIES, AppStore

from fixtures import (
    sample_agent,
    sample_cost,
    sample_cron_job,
    sample_gateway_status,
    sample_log,
    sample_memory,
    sample_skill,
)


def api_routes():
    return {
        ("/api/gateway", ""): sample_gateway_status(),
        ("/api/gateway", "resource=agents"): [sample_agent("agent-1"), sample_agent("agent-2")],
        ("/api/skills", ""): [sample_skill()],
        ("/api/memory", ""): [sample_memory()],
        ("/api/costs", ""): [sample_cost()],
        ("/api/logs", ""): [sample_log("log-2"), sample_log("log-1")],
        ("/api/cron", ""): [sample_cron_job()],
    }


def make_client(routes, failures=None):
    failures = failures or {}
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        key = (request.url.path, request.url.query.decode())
        requested.append(key)
        if key in failures:
            failure = failures[key]
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure)
        if key not in routes:
            return httpx.Response(404)
        return httpx.Response(200, json=routes[key])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    return client, requested


class TestHydration:

    @pytest.mark.asyncio
    async def test_loads_every_slice(self):
        store = AppStore()
        client, requested = make_client(api_routes())
        async with client:
            applied = await hydrate_store(store, client)

        assert all(applied.values())
        assert len(requested) == 7
        assert store.hydrated is True
        assert [agent.id for agent in store.agents] == ["agent-1", "agent-2"]
        assert [entry.id for entry in store.logs] == ["log-2", "log-1"]
        assert store.skills[0].name == "web-search"
        assert store.memories[0].type == "daily"
        assert store.cost_entries[0].input_tokens == 1000
        assert store.cron_jobs[0].id == "cron-1"
        assert store.gateway.version == "2.3.1"
        assert store.gateway.active_sessions == 4

    @pytest.mark.asyncio
    async def test_running_flag_is_not_taken_from_api(self):
        store = AppStore()
        client, _ = make_client(api_routes())
        async with client:
            await hydrate_store(store, client)
        assert store.gateway.running is False

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_resource(self):
        store = AppStore()
        client, _ = make_client(api_routes(), failures={
            ("/api/skills", ""): 500,
            ("/api/memory", ""): httpx.ConnectError("refused"),
        })
        async with client:
            applied = await hydrate_store(store, client)

        assert applied["/api/skills"] is False
        assert applied["/api/memory"] is False
        assert applied["/api/gateway?resource=agents"] is True
        assert store.skills == []
        assert store.memories == []
        assert len(store.agents) == 2
        assert store.hydrated is True

    @pytest.mark.asyncio
    async def test_wrong_shapes_leave_defaults(self):
        routes = api_routes()
        routes[("/api/logs", "")] = {"entries": []}
        routes[("/api/cron", "")] = [{"name": "missing id"}]
        routes[("/api/gateway", "")] = ["not", "an", "object"]
        store = AppStore()
        client, _ = make_client(routes)
        async with client:
            applied = await hydrate_store(store, client)

        assert applied["/api/logs"] is False
        assert applied["/api/cron"] is False
        assert applied["/api/gateway"] is False
        assert list(store.logs) == []
        assert store.cron_jobs == []
        assert store.gateway.version == "unknown"

    @pytest.mark.asyncio
    async def test_oversized_lists_keep_newest_entries(self):
        routes = api_routes()
        routes[("/api/logs", "")] = [sample_log(f"log-{i}") for i in range(MAX_LOG_ENTRIES + 100)]
        routes[("/api/costs", "")] = [sample_cost(f"d{i}") for i in range(MAX_COST_ENTRIES + 100)]
        store = AppStore()
        client, _ = make_client(routes)
        async with client:
            await hydrate_store(store, client)

        assert len(store.logs) == MAX_LOG_ENTRIES
        assert store.logs[0].id == "log-0"
        assert store.logs[-1].id == f"log-{MAX_LOG_ENTRIES - 1}"
        assert len(store.cost_entries) == MAX_COST_ENTRIES
        assert store.cost_entries[0].date == "d0"
        assert store.cost_entries[-1].date == f"d{MAX_COST_ENTRIES - 1}"

    @pytest.mark.asyncio
    async def test_second_call_is_noop(self):
        store = AppStore()
        client, requested = make_client(api_routes())
        async with client:
            await hydrate_store(store, client)
            assert await hydrate_store(store, client) == {}
        assert len(requested) == 7

    @pytest.mark.asyncio
    async def test_hydrate_from_url_uses_client_factory(self):
        store = AppStore()
        routes = api_routes()

        def client_factory(**kwargs):
            client, _ = make_client(routes)
            assert kwargs["base_url"] == "http://api.test"
            return client

        applied = await hydrate_from_url(store, "http://api.test", client_factory=client_factory)
        assert all(applied.values())

"""
Test fixtures for Mission Control.

Provides an in-memory stand-in for the gateway socket, a connect factory that
hands those sockets out, polling helpers for asyncio tests, and sample
records shaped like the gateway's wire data.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from mission_control.gateway.connection import GatewayConnection

_CLOSED = object()

# Fast timings so reconnect and heartbeat paths run in milliseconds
FAST_TIMINGS = {
    "reconnect_base_delay": 0.01,
    "reconnect_max_delay": 0.05,
    "reconnect_jitter": 0.0,
    "heartbeat_interval": 3600.0,
    "heartbeat_timeout": 3600.0,
}


class FakeGatewaySocket:
    """
    Minimal asynchronous socket with the surface GatewayConnection uses.

    Frames pushed with feed() are yielded by ``async for``; drop() simulates the
    gateway going away; close() records the code and reason the client used.
    """

    def __init__(self, auto_pong: bool = False, replies: Optional[List[Any]] = None):
        self.sent: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.auto_pong = auto_pong
        self._inbox: asyncio.Queue = asyncio.Queue()
        for reply in replies or []:
            self.feed(reply)

    # Iteration
    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def recv(self):
        return await self.__anext__()

    # Async context manager, as websockets.connect() is used by the probe
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Client side
    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionError("socket is closed")
        self.sent.append(text)
        if self.auto_pong and json.loads(text).get("type") == "ping":
            self.feed({"type": "pong"})

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    # Gateway side
    def feed(self, frame: Union[str, bytes, Dict[str, Any]]) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSED)

    def fail(self, error: BaseException) -> None:
        self._inbox.put_nowait(error)

    def sent_frames(self) -> List[Dict[str, Any]]:
        return [json.loads(text) for text in self.sent]

    def sent_types(self) -> List[str]:
        return [frame["type"] for frame in self.sent_frames()]


class FakeGateway:
    """Connect factory returning FakeGatewaySockets, optionally refusing connections."""

    def __init__(self, refuse: int = 0, auto_pong: bool = False):
        self.refuse = refuse
        self.auto_pong = auto_pong
        self.urls: List[str] = []
        self.sockets: List[FakeGatewaySocket] = []

    async def __call__(self, url: str) -> FakeGatewaySocket:
        self.urls.append(url)
        if self.refuse:
            if self.refuse > 0:
                self.refuse -= 1
            raise ConnectionRefusedError(f"connection refused: {url}")
        socket = FakeGatewaySocket(auto_pong=self.auto_pong)
        self.sockets.append(socket)
        return socket

    @property
    def latest(self) -> FakeGatewaySocket:
        return self.sockets[-1]


def make_connection(gateway: FakeGateway, **overrides) -> GatewayConnection:
    options = dict(FAST_TIMINGS)
    options.update(overrides)
    options.setdefault("uniform", lambda low, high: 0.0)
    return GatewayConnection(url="ws://gateway.test:18789", connect_factory=gateway, **options)


class EventRecorder:
    """Collects payloads for a set of events, in arrival order."""

    def __init__(self, connection: GatewayConnection, *events):
        self.calls: List[tuple] = []
        self._subscriptions = [
            connection.on(event, self._make_listener(event)) for event in events
        ]

    def _make_listener(self, event) -> Callable[[Any], None]:
        name = getattr(event, "value", event)

        def listener(payload: Any) -> None:
            self.calls.append((name, payload))

        return listener

    def of(self, name: str) -> List[Any]:
        return [payload for event, payload in self.calls if event == name]

    def names(self) -> List[str]:
        return [event for event, _ in self.calls]

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0, interval: float = 0.002) -> None:
    """Poll ``predicate`` on the running loop until it holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


# ============================================================================
# SAMPLE RECORDS
# ============================================================================

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sample_agent(agent_id: str = "agent-1", **overrides) -> Dict[str, Any]:
    agent = {
        "id": agent_id,
        "name": "Scout",
        "emoji": "S",
        "status": "online",
        "currentTask": None,
        "uptime": 120,
        "sessionsToday": 2,
        "tokensUsed": 1500,
        "costToday": 0.42,
        "lastActive": "2026-01-01T00:00:00Z",
        "capabilities": ["search", "summarize"],
        "model": "sonnet",
    }
    agent.update(overrides)
    return agent


def sample_task(task_id: str = "task-1", **overrides) -> Dict[str, Any]:
    task = {
        "id": task_id,
        "title": "Index the workspace",
        "description": "Build the search index",
        "status": "inbox",
        "priority": "medium",
        "source": "manual",
        "createdAt": "2026-01-01T00:00:00Z",
        "updatedAt": "2026-01-01T00:00:00Z",
        "tags": ["indexing"],
    }
    task.update(overrides)
    return task


def sample_log(log_id: str = "log-1", **overrides) -> Dict[str, Any]:
    entry = {
        "id": log_id,
        "timestamp": "2026-01-01T00:00:00Z",
        "level": "info",
        "agentId": "agent-1",
        "message": "started",
    }
    entry.update(overrides)
    return entry


def sample_cost(date: str = "2026-01-01", **overrides) -> Dict[str, Any]:
    entry = {
        "date": date,
        "model": "sonnet",
        "inputTokens": 1000,
        "outputTokens": 200,
        "cost": 0.05,
        "agentId": "agent-1",
        "sessionId": "session-1",
    }
    entry.update(overrides)
    return entry


def sample_cron_job(job_id: str = "cron-1", **overrides) -> Dict[str, Any]:
    job = {
        "id": job_id,
        "name": "Nightly digest",
        "schedule": "0 2 * * *",
        "agentId": "agent-1",
        "lastRun": None,
        "nextRun": "2026-01-02T02:00:00Z",
        "status": "active",
        "description": "Summarize the day",
    }
    job.update(overrides)
    return job


def sample_skill(name: str = "web-search", **overrides) -> Dict[str, Any]:
    skill = {
        "name": name,
        "description": "Search the web",
        "installed": True,
        "version": "1.2.0",
        "source": "bundled",
    }
    skill.update(overrides)
    return skill


def sample_memory(memory_id: str = "mem-1", **overrides) -> Dict[str, Any]:
    memory = {
        "id": memory_id,
        "type": "daily",
        "date": "2026-01-01",
        "content": "Shipped the indexer",
        "agentId": "agent-1",
        "tokens": 12,
    }
    memory.update(overrides)
    return memory


def sample_gateway_status(**overrides) -> Dict[str, Any]:
    status = {
        "running": True,
        "version": "2.3.1",
        "uptime": 3600,
        "address": "ws://127.0.0.1:18789",
        "agents": 3,
        "channels": 2,
        "activeSessions": 4,
        "cpuUsage": 12.5,
        "memoryUsage": 48.0,
    }
    status.update(overrides)
    return status

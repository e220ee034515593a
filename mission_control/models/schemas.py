"""Pydantic models for Mission Control records and gateway event payloads.

Field names are snake_case in Python and camelCase on the wire
(``agentId``, ``currentTask`` ...). Every model accepts either form.
"""

import logging
from typing import Any, Dict, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..config import DEFAULT_GATEWAY_URL

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """Base for everything that crosses the gateway or HTTP boundary."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """Dump with camelCase keys, the shape clients expect."""
        return self.model_dump(by_alias=True, exclude_none=True)


class EventPayload(WireModel):
    """Base for decoded event payloads; immutable once received."""
    model_config = ConfigDict(frozen=True)


# Record schemas
AgentStatus = Literal["online", "offline", "busy", "error"]
TaskStatus = Literal["inbox", "assigned", "in_progress", "review", "done", "failed"]


class Agent(WireModel):
    """Agent card as shown on the dashboard."""
    id: str
    name: str = ""
    emoji: str = "?"
    status: AgentStatus = "offline"
    current_task: Optional[str] = None
    uptime: float = 0
    sessions_today: int = 0
    tokens_used: int = 0
    cost_today: float = 0
    last_active: str = ""
    capabilities: List[str] = Field(default_factory=list)
    model: str = "unknown"


class Task(WireModel):
    """Task board entry."""
    id: str
    title: str = ""
    description: str = ""
    status: TaskStatus = "inbox"
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    assigned_agent: Optional[str] = None
    source: str = ""
    created_at: str = ""
    updated_at: str = ""
    tags: List[str] = Field(default_factory=list)
    estimated_tokens: Optional[int] = None
    actual_tokens: Optional[int] = None
    cost: Optional[float] = None


class LogEntry(WireModel):
    id: str
    timestamp: str
    level: Literal["info", "warn", "error", "debug"] = "info"
    agent_id: str = "system"
    message: str = ""
    metadata: Optional[Dict[str, Any]] = None


class CostEntry(WireModel):
    date: str
    model: str = "unknown"
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0
    agent_id: str = ""
    session_id: str = ""


class CronJob(WireModel):
    id: str
    name: str = ""
    schedule: str = ""
    agent_id: str = ""
    last_run: Optional[str] = None
    next_run: str = ""
    status: Literal["active", "paused", "error"] = "active"
    description: str = ""


class Skill(WireModel):
    name: str
    description: str = ""
    installed: bool = True
    version: str = "0.0.0"
    source: Literal["bundled", "workspace", "clawhub"] = "workspace"
    requires: Optional[Dict[str, List[str]]] = None


class MemoryEntry(WireModel):
    id: str
    type: Literal["daily", "long_term", "workspace"]
    date: str
    content: str = ""
    agent_id: str = "system"
    tokens: int = 0


class GatewayStatus(WireModel):
    """Gateway daemon summary. ``running`` mirrors the live connection."""
    running: bool = False
    version: str = "unknown"
    uptime: float = 0
    address: str = DEFAULT_GATEWAY_URL
    agents: int = 0
    channels: int = 0
    active_sessions: int = 0
    cpu_usage: float = 0
    memory_usage: float = 0


# Wire envelope
class Envelope(WireModel):
    """A single frame exchanged with the gateway."""
    type: str
    payload: Any = None
    timestamp: Optional[str] = None


# Domain event payloads
class AgentStatusPayload(EventPayload):
    agent_id: str
    status: AgentStatus
    current_task: Optional[str] = None
    tokens_used: Optional[int] = None
    cost_today: Optional[float] = None
    last_active: Optional[str] = None


class TaskCreatedPayload(EventPayload):
    task: Task


class TaskUpdatedPayload(EventPayload):
    task_id: str
    changes: Dict[str, Any] = Field(default_factory=dict)


class LogEntryPayload(EventPayload):
    entry: LogEntry


class SessionStartPayload(EventPayload):
    session_id: str
    agent_id: str
    started_at: str
    model: Optional[str] = None


class SessionEndPayload(EventPayload):
    session_id: str
    agent_id: str
    ended_at: str
    total_tokens: Optional[int] = None
    total_cost: Optional[float] = None


class CronTriggeredPayload(EventPayload):
    job_id: str
    triggered_at: str
    job: Optional[CronJob] = None


class CostUpdatePayload(EventPayload):
    entry: CostEntry
    agent_id: str


# Lifecycle event payloads (emitted locally, never read from the wire)
class ConnectPayload(EventPayload):
    url: str


class DisconnectPayload(EventPayload):
    intentional: bool
    code: Optional[int] = None
    reason: Optional[str] = None
    was_connected: Optional[bool] = None


class ReconnectingPayload(EventPayload):
    attempt: int
    delay: float


class ReconnectFailedPayload(EventPayload):
    attempts: int


class HeartbeatTimeoutPayload(EventPayload):
    pass


class StateChangePayload(EventPayload):
    state: str


class ErrorPayload(EventPayload):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    error: Optional[Any] = None
    event: Optional[Any] = None


class RawMessagePayload(EventPayload):
    data: Any = None


# Helpers
RecordT = TypeVar("RecordT", bound=WireModel)


def field_changes(model_cls: Type[WireModel], changes: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Translate a partial update into field names of ``model_cls``.

    Keys may be camelCase aliases or snake_case names; unknown keys are dropped.

    Args:
        model_cls: Target record type
        changes: Partial update as received

    Returns:
        Dict keyed by Python field name
    """
    lookup: Dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        lookup[name] = name
        if info.alias:
            lookup[info.alias] = name
    return {lookup[key]: value for key, value in changes.items() if key in lookup}


def merge_record(record: RecordT, changes: Mapping[str, Any]) -> RecordT:
    """
    Return a validated copy of ``record`` with ``changes`` applied on top.

    Each change is validated on its own. One that does not fit its field
    (e.g. ``lastActive: null``) is skipped with a warning and the rest of
    the update still applies.
    """
    model_cls = type(record)
    merged = record.model_copy()
    for name, value in field_changes(model_cls, changes).items():
        try:
            candidate = model_cls.model_validate({**merged.model_dump(), name: value})
        except ValidationError as e:
            logger.warning(
                f"Ignoring invalid {model_cls.__name__}.{name} update for "
                f"{getattr(merged, 'id', '?')}: {e.errors()[0]['msg']}"
            )
            continue
        merged = candidate
    return merged


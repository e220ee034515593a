"""Data models for Mission Control."""

from .schemas import (
    Agent,
    AgentStatusPayload,
    ConnectPayload,
    CostEntry,
    CostUpdatePayload,
    CronJob,
    CronTriggeredPayload,
    DisconnectPayload,
    Envelope,
    ErrorPayload,
    EventPayload,
    GatewayStatus,
    HeartbeatTimeoutPayload,
    LogEntry,
    LogEntryPayload,
    MemoryEntry,
    RawMessagePayload,
    ReconnectFailedPayload,
    ReconnectingPayload,
    SessionEndPayload,
    SessionStartPayload,
    Skill,
    StateChangePayload,
    Task,
    TaskCreatedPayload,
    TaskUpdatedPayload,
    WireModel,
    field_changes,
    merge_record,
)

__all__ = [
    'Agent',
    'AgentStatusPayload',
    'ConnectPayload',
    'CostEntry',
    'CostUpdatePayload',
    'CronJob',
    'CronTriggeredPayload',
    'DisconnectPayload',
    'Envelope',
    'ErrorPayload',
    'EventPayload',
    'GatewayStatus',
    'HeartbeatTimeoutPayload',
    'LogEntry',
    'LogEntryPayload',
    'MemoryEntry',
    'RawMessagePayload',
    'ReconnectFailedPayload',
    'ReconnectingPayload',
    'SessionEndPayload',
    'SessionStartPayload',
    'Skill',
    'StateChangePayload',
    'Task',
    'TaskCreatedPayload',
    'TaskUpdatedPayload',
    'WireModel',
    'field_changes',
    'merge_record',
]

"""
Store bridge: applies gateway events to the application store.

One StoreBridge per application. It subscribes once for its lifetime and
translates every domain event into exactly one AppStore action, applied
synchronously on receipt. The bridge observes the connection but never owns
it: closing the bridge releases its subscriptions and leaves the shared
connection running.
"""

import logging
from typing import Any, Callable, Dict, List

from ..gateway.connection import GatewayConnection
from ..gateway.events import DOMAIN_EVENTS, EventType
from ..gateway.router import Subscription
from ..models.schemas import (
    AgentStatusPayload,
    CostUpdatePayload,
    CronTriggeredPayload,
    LogEntryPayload,
    ReconnectingPayload,
    SessionEndPayload,
    SessionStartPayload,
    TaskCreatedPayload,
    TaskUpdatedPayload,
)
from .store import AppStore

logger = logging.getLogger(__name__)


class StoreBridge:
    """Bridges gateway events into an AppStore"""

    def __init__(self, connection: GatewayConnection, store: AppStore):
        """
        Args:
            connection: Shared gateway connection to observe
            store: Live store every event mutates
        """
        self.connection = connection
        self.store = store
        self._subscriptions: List[Subscription] = []

        self._domain_handlers: Dict[EventType, Callable[[Any], None]] = {
            EventType.AGENT_STATUS: self._on_agent_status,
            EventType.TASK_CREATED: self._on_task_created,
            EventType.TASK_UPDATED: self._on_task_updated,
            EventType.LOG_ENTRY: self._on_log_entry,
            EventType.SESSION_START: self._on_session_start,
            EventType.SESSION_END: self._on_session_end,
            EventType.CRON_TRIGGERED: self._on_cron_triggered,
            EventType.COST_UPDATE: self._on_cost_update,
        }
        missing = DOMAIN_EVENTS - set(self._domain_handlers)
        if missing:
            raise RuntimeError(f"StoreBridge has no handler for: {sorted(e.value for e in missing)}")

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def attach(self) -> None:
        """Subscribe to lifecycle and domain events. Idempotent."""
        if self._subscriptions:
            return
        conn = self.connection
        self._subscriptions = [
            conn.on(EventType.CONNECT, self._on_connect),
            conn.on(EventType.DISCONNECT, self._on_disconnect),
            conn.on_event(EventType.RECONNECTING, self._on_reconnecting),
        ]
        for event_type, handler in self._domain_handlers.items():
            self._subscriptions.append(conn.on_event(event_type, handler))
        logger.info(f"StoreBridge attached ({len(self._subscriptions)} subscriptions)")

    def start(self) -> None:
        """Attach and open the shared connection."""
        self.attach()
        self.connection.connect()

    def close(self) -> None:
        """Release every subscription. The connection is left running."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions = []
        logger.info("StoreBridge detached")

    def __enter__(self) -> "StoreBridge":
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Lifecycle
    def _on_connect(self, _payload: Any) -> None:
        self.store.set_running(True)
        self.store.set_reconnect_attempts(0)

    def _on_disconnect(self, _payload: Any) -> None:
        # Last-known agents/tasks/logs stay visible while offline
        self.store.set_running(False)

    def _on_reconnecting(self, payload: ReconnectingPayload) -> None:
        self.store.set_reconnect_attempts(payload.attempt)

    # Domain
    def _on_agent_status(self, payload: AgentStatusPayload) -> None:
        changes = payload.model_dump(exclude_unset=True)
        agent_id = changes.pop("agent_id")
        self.store.update_agent(agent_id, changes)

    def _on_task_created(self, payload: TaskCreatedPayload) -> None:
        self.store.add_task(payload.task)

    def _on_task_updated(self, payload: TaskUpdatedPayload) -> None:
        self.store.update_task(payload.task_id, payload.changes)

    def _on_log_entry(self, payload: LogEntryPayload) -> None:
        self.store.add_log(payload.entry)

    def _on_session_start(self, payload: SessionStartPayload) -> None:
        count = self.store.increment_sessions()
        logger.debug(f"Session {payload.session_id} started ({count} active)")

    def _on_session_end(self, payload: SessionEndPayload) -> None:
        count = self.store.decrement_sessions()
        logger.debug(f"Session {payload.session_id} ended ({count} active)")

    def _on_cron_triggered(self, payload: CronTriggeredPayload) -> None:
        self.store.mark_cron_run(payload.job_id, payload.triggered_at)

    def _on_cost_update(self, payload: CostUpdatePayload) -> None:
        self.store.add_cost_entry(payload.entry)

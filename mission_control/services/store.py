"""
Application state container for Mission Control.

AppStore is the single mutable home of dashboard state. Every action reads
the current value at call time, so long-lived subscribers never work from a
stale snapshot. Observers are told which slice changed after each mutation.
"""

import logging
from collections import deque
from itertools import islice
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Mapping, Optional

from ..gateway.router import EventRouter, Subscription
from ..models.schemas import (
    Agent,
    CostEntry,
    CronJob,
    GatewayStatus,
    LogEntry,
    MemoryEntry,
    Skill,
    Task,
    TaskStatus,
    merge_record,
)

logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 500
MAX_COST_ENTRIES = 500

SLICES = (
    "gateway",
    "connection",
    "agents",
    "tasks",
    "logs",
    "cost_entries",
    "cron_jobs",
    "skills",
    "memories",
)

_CHANGE = "change"


def _newest_first(entries: Iterable[Any], maxlen: Optional[int]) -> Deque[Any]:
    """Bounded deque holding the first ``maxlen`` of newest-first ``entries``."""
    return deque(islice(entries, maxlen), maxlen=maxlen)


class UnknownSliceError(KeyError):
    """Raised when a caller asks for a state slice that does not exist."""


class AppStore:
    """In-memory dashboard state with merge/append/bounded-prepend actions"""

    def __init__(self, max_logs: int = MAX_LOG_ENTRIES, max_cost_entries: int = MAX_COST_ENTRIES):
        self.hydrated = False
        self.gateway = GatewayStatus()
        self.reconnect_attempts = 0
        self.agents: List[Agent] = []
        self.tasks: List[Task] = []
        # Newest first; appendleft evicts from the tail once full
        self.logs: Deque[LogEntry] = deque(maxlen=max_logs)
        self.cost_entries: Deque[CostEntry] = deque(maxlen=max_cost_entries)
        self.cron_jobs: List[CronJob] = []
        self.skills: List[Skill] = []
        self.memories: List[MemoryEntry] = []
        self._observers = EventRouter()

    # ========================================================================
    # OBSERVERS
    # ========================================================================

    def subscribe(self, listener: Callable[[str], Any]) -> Subscription:
        """Call ``listener(slice_name)`` after every mutation."""
        return self._observers.on(_CHANGE, listener)

    def _changed(self, slice_name: str) -> None:
        self._observers.emit(_CHANGE, slice_name)

    # ========================================================================
    # GATEWAY / CONNECTION
    # ========================================================================

    def set_gateway(self, **changes: Any) -> GatewayStatus:
        self.gateway = merge_record(self.gateway, changes)
        self._changed("gateway")
        return self.gateway

    def set_running(self, running: bool) -> None:
        self.gateway = self.gateway.model_copy(update={"running": running})
        self._changed("gateway")

    def set_reconnect_attempts(self, attempts: int) -> None:
        self.reconnect_attempts = attempts
        self._changed("connection")

    def increment_sessions(self) -> int:
        count = self.gateway.active_sessions + 1
        self.gateway = self.gateway.model_copy(update={"active_sessions": count})
        self._changed("gateway")
        return count

    def decrement_sessions(self) -> int:
        count = max(0, self.gateway.active_sessions - 1)
        self.gateway = self.gateway.model_copy(update={"active_sessions": count})
        self._changed("gateway")
        return count

    # ========================================================================
    # AGENTS
    # ========================================================================

    def set_agents(self, agents: Iterable[Agent]) -> None:
        self.agents = list(agents)
        self._changed("agents")

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def update_agent(self, agent_id: str, changes: Mapping[str, Any]) -> bool:
        """
        Merge ``changes`` into the agent with ``agent_id``.

        Returns:
            False (and no change) when no agent has that id
        """
        if self.get_agent(agent_id) is None:
            logger.debug(f"Ignoring update for unknown agent {agent_id}")
            return False
        self.agents = [
            merge_record(agent, changes) if agent.id == agent_id else agent
            for agent in self.agents
        ]
        self._changed("agents")
        return True

    # ========================================================================
    # TASKS
    # ========================================================================

    def set_tasks(self, tasks: Iterable[Task]) -> None:
        self.tasks = list(tasks)
        self._changed("tasks")

    def add_task(self, task: Task) -> None:
        # No dedup by id; the gateway owns task identity
        self.tasks = self.tasks + [task]
        self._changed("tasks")

    def update_task(self, task_id: str, changes: Mapping[str, Any]) -> bool:
        if not any(task.id == task_id for task in self.tasks):
            logger.debug(f"Ignoring update for unknown task {task_id}")
            return False
        self.tasks = [
            merge_record(task, changes) if task.id == task_id else task
            for task in self.tasks
        ]
        self._changed("tasks")
        return True

    def move_task(self, task_id: str, status: TaskStatus) -> bool:
        """Change a task's column and stamp updated_at."""
        return self.update_task(task_id, {
            "status": status,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        })

    # ========================================================================
    # LOGS / COSTS
    # ========================================================================

    def add_log(self, entry: LogEntry) -> None:
        self.logs.appendleft(entry)
        self._changed("logs")

    def set_logs(self, entries: Iterable[LogEntry]) -> None:
        """Replace the log list; ``entries`` are expected newest first."""
        self.logs = _newest_first(entries, self.logs.maxlen)
        self._changed("logs")

    def clear_logs(self) -> None:
        self.logs.clear()
        self._changed("logs")

    def add_cost_entry(self, entry: CostEntry) -> None:
        self.cost_entries.appendleft(entry)
        self._changed("cost_entries")

    def set_cost_entries(self, entries: Iterable[CostEntry]) -> None:
        self.cost_entries = _newest_first(entries, self.cost_entries.maxlen)
        self._changed("cost_entries")

    # ========================================================================
    # CRON / SKILLS / MEMORY
    # ========================================================================

    def set_cron_jobs(self, jobs: Iterable[CronJob]) -> None:
        self.cron_jobs = list(jobs)
        self._changed("cron_jobs")

    def mark_cron_run(self, job_id: str, triggered_at: str) -> bool:
        """Set last_run on the matching job; other jobs are untouched."""
        if not any(job.id == job_id for job in self.cron_jobs):
            logger.debug(f"Ignoring trigger for unknown cron job {job_id}")
            return False
        self.cron_jobs = [
            job.model_copy(update={"last_run": triggered_at}) if job.id == job_id else job
            for job in self.cron_jobs
        ]
        self._changed("cron_jobs")
        return True

    def set_skills(self, skills: Iterable[Skill]) -> None:
        self.skills = list(skills)
        self._changed("skills")

    def set_memories(self, memories: Iterable[MemoryEntry]) -> None:
        self.memories = list(memories)
        self._changed("memories")

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def slice(self, name: str) -> Any:
        """
        JSON-ready view of one state slice.

        Raises:
            UnknownSliceError: If ``name`` is not one of SLICES
        """
        if name not in SLICES:
            raise UnknownSliceError(name)
        if name == "gateway":
            return self.gateway.to_wire()
        if name == "connection":
            return {"running": self.gateway.running, "reconnectAttempts": self.reconnect_attempts}
        return [record.to_wire() for record in getattr(self, name)]

    def snapshot(self) -> Dict[str, Any]:
        data = {name: self.slice(name) for name in SLICES}
        data["hydrated"] = self.hydrated
        return data

"""
Initial store hydration from the dashboard read API.

Runs once at startup. Every resource is fetched concurrently and applied
independently: a failed request, a non-2xx response, a body of the wrong
shape or a record that fails validation leaves that slice at its default
and never blocks the others.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

import httpx
from pydantic import ValidationError

from ..models.schemas import (
    Agent,
    CostEntry,
    CronJob,
    GatewayStatus,
    LogEntry,
    MemoryEntry,
    Skill,
    WireModel,
)
from .store import AppStore

logger = logging.getLogger(__name__)

HYDRATION_TIMEOUT = 10.0

# (path, query params, record type, store setter name)
LIST_RESOURCES: Tuple[Tuple[str, Dict[str, str], Type[WireModel], str], ...] = (
    ("/api/gateway", {"resource": "agents"}, Agent, "set_agents"),
    ("/api/skills", {}, Skill, "set_skills"),
    ("/api/memory", {}, MemoryEntry, "set_memories"),
    ("/api/costs", {}, CostEntry, "set_cost_entries"),
    ("/api/logs", {}, LogEntry, "set_logs"),
    ("/api/cron", {}, CronJob, "set_cron_jobs"),
)


async def _fetch_json(client: httpx.AsyncClient, path: str, params: Dict[str, str]) -> Optional[Any]:
    response = await client.get(path, params=params or None)
    if not response.is_success:
        logger.warning(f"Hydration: GET {path} returned {response.status_code}")
        return None
    return response.json()


def _parse_list(body: Any, model_cls: Type[WireModel], path: str) -> Optional[List[WireModel]]:
    if not isinstance(body, list):
        logger.warning(f"Hydration: {path} did not return a list")
        return None
    try:
        return [model_cls.model_validate(item) for item in body]
    except ValidationError as e:
        logger.warning(f"Hydration: {path} returned invalid records: {e.error_count()} errors")
        return None


def _apply_gateway(store: AppStore, body: Any) -> bool:
    if not isinstance(body, dict):
        logger.warning("Hydration: /api/gateway did not return an object")
        return False
    try:
        status = GatewayStatus.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Hydration: invalid gateway status: {e.error_count()} errors")
        return False
    # ``running`` belongs to the live connection, not to the snapshot
    fields = status.model_dump(exclude={"running"})
    store.set_gateway(**fields)
    return True


async def hydrate_store(
    store: AppStore,
    client: httpx.AsyncClient,
) -> Dict[str, bool]:
    """
    Load every slice of ``store`` from the read API behind ``client``.

    A second call after a completed hydration does nothing.

    Args:
        store: Store to populate
        client: httpx client whose base_url points at the read API

    Returns:
        Mapping of resource path to whether it was applied
    """
    if store.hydrated:
        return {}

    requests = [_fetch_json(client, "/api/gateway", {})]
    requests.extend(_fetch_json(client, path, params) for path, params, _, _ in LIST_RESOURCES)
    results = await asyncio.gather(*requests, return_exceptions=True)

    applied: Dict[str, bool] = {}
    gateway_result, list_results = results[0], results[1:]

    if isinstance(gateway_result, Exception):
        logger.warning(f"Hydration: GET /api/gateway failed: {gateway_result!r}")
        applied["/api/gateway"] = False
    else:
        applied["/api/gateway"] = gateway_result is not None and _apply_gateway(store, gateway_result)

    for (path, params, model_cls, setter), result in zip(LIST_RESOURCES, list_results):
        key = path if not params else f"{path}?{httpx.QueryParams(params)}"
        if isinstance(result, Exception):
            logger.warning(f"Hydration: GET {key} failed: {result!r}")
            applied[key] = False
            continue
        records = _parse_list(result, model_cls, key) if result is not None else None
        if records is None:
            applied[key] = False
            continue
        getattr(store, setter)(records)
        applied[key] = True

    store.hydrated = True
    loaded = sum(1 for ok in applied.values() if ok)
    logger.info(f"Store hydrated: {loaded}/{len(applied)} resources loaded")
    return applied


async def hydrate_from_url(
    store: AppStore,
    api_url: str,
    timeout: float = HYDRATION_TIMEOUT,
    client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
) -> Dict[str, bool]:
    """Open a client for ``api_url`` and hydrate ``store`` through it."""
    async with client_factory(base_url=api_url, timeout=timeout) as client:
        return await hydrate_store(store, client)

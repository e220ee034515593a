"""One-shot status probe against the gateway daemon."""

import asyncio
import json
import logging
from typing import Any, Optional

import websockets

from ..config import DEFAULT_GATEWAY_URL
from ..models.schemas import GatewayStatus

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 3.0


async def _exchange(url: str, connect_factory) -> Optional[Any]:
    factory = connect_factory or websockets.connect
    async with factory(url) as ws:
        await ws.send(json.dumps({"type": "status"}))
        reply = await ws.recv()
    try:
        return json.loads(reply)
    except (TypeError, ValueError):
        return None


async def probe_gateway(
    url: str = DEFAULT_GATEWAY_URL,
    timeout: float = PROBE_TIMEOUT,
    connect_factory=None,
) -> GatewayStatus:
    """
    Ask the gateway for its status over a short-lived socket.

    A reply that is not JSON still proves the gateway is up. Any error or a
    timeout yields running=False.

    Args:
        url: Gateway WebSocket address
        timeout: Seconds allowed for connect, request and first reply
        connect_factory: Replacement for websockets.connect (async context manager)

    Returns:
        GatewayStatus for the probed daemon
    """
    try:
        info = await asyncio.wait_for(_exchange(url, connect_factory), timeout=timeout)
    except asyncio.TimeoutError:
        logger.info(f"Gateway probe timed out after {timeout}s: {url}")
        return GatewayStatus(running=False, address=url)
    except Exception as e:
        logger.info(f"Gateway probe failed for {url}: {e!r}")
        return GatewayStatus(running=False, address=url)

    fields = info if isinstance(info, dict) else {}
    fields = {k: v for k, v in fields.items() if k not in ("type", "running", "address") and v is not None}
    try:
        status = GatewayStatus.model_validate({**fields, "running": True, "address": url})
    except ValueError as e:
        logger.warning(f"Gateway status reply had unexpected fields: {e}")
        status = GatewayStatus(running=True, address=url)
    return status

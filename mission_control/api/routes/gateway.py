"""Gateway connection API routes."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ...gateway.connection import GatewayConnection
from ...gateway.probe import probe_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


class SendRequest(BaseModel):
    """Body of POST /api/gateway/send."""
    type: str
    payload: Optional[Any] = None


def get_connection(request: Request) -> GatewayConnection:
    return request.app.state.connection


@router.get("/status")
async def gateway_status(
    request: Request,
    probe: bool = Query(False, description="Also open a short-lived status probe"),
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, Any]:
    """Live connection status, optionally with a fresh probe of the daemon."""
    result: Dict[str, Any] = {"connection": connection.get_status().to_dict()}
    if probe:
        probe_factory = getattr(request.app.state, "probe_connect_factory", None)
        status = await probe_gateway(connection.url, connect_factory=probe_factory)
        result["probe"] = status.to_wire()
    return result


@router.post("/connect")
async def connect_gateway(connection: GatewayConnection = Depends(get_connection)) -> Dict[str, Any]:
    connection.connect()
    return {"connection": connection.get_status().to_dict()}


@router.post("/disconnect")
async def disconnect_gateway(connection: GatewayConnection = Depends(get_connection)) -> Dict[str, Any]:
    connection.disconnect()
    return {"connection": connection.get_status().to_dict()}


@router.post("/send")
async def send_to_gateway(
    body: SendRequest,
    connection: GatewayConnection = Depends(get_connection),
) -> Dict[str, bool]:
    """
    Forward an envelope to the gateway.

    Sending while disconnected is not an HTTP error; it reports sent=false.
    """
    return {"sent": connection.send(body.type, body.payload)}

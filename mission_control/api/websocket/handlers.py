"""
WebSocket Event Handlers for Mission Control
Implements the browser WebSocket endpoint and client message handling
"""

import json
import logging
import uuid
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

from ...gateway.connection import GatewayConnection
from ...services.feeds import send_chat
from ...services.store import AppStore
from .manager import ClientEventType, ClientManager, utc_now

logger = logging.getLogger(__name__)


class WebSocketEndpoint:
    """Browser WebSocket endpoint with client message processing"""

    def __init__(self, manager: ClientManager, store: AppStore, connection: GatewayConnection):
        self.manager = manager
        self.store = store
        self.connection = connection

    async def handle_connection(self, websocket: WebSocket) -> None:
        """
        Main WebSocket connection handler

        Args:
            websocket: FastAPI WebSocket instance
        """
        client_id = str(uuid.uuid4())

        try:
            await self.manager.connect(websocket, client_id)
            await self._message_loop(client_id, websocket)
        except WebSocketDisconnect:
            logger.info(f"WebSocket client {client_id} disconnected normally")
        except Exception as e:
            logger.error(f"WebSocket error for client {client_id}: {e}")
        finally:
            await self.manager.disconnect(client_id)

    async def _message_loop(self, client_id: str, websocket: WebSocket) -> None:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON from client {client_id}: {e}")
                await self._send_error(client_id, "Invalid JSON format")
                continue

            if not isinstance(data, dict) or not data.get("type"):
                await self._send_error(client_id, "Missing message type")
                continue

            message_type = data["type"]
            try:
                if message_type == "ping":
                    await self._handle_ping(client_id)
                elif message_type == "get_stats":
                    await self._handle_get_stats(client_id)
                elif message_type == "get_state":
                    await self._handle_get_state(client_id)
                elif message_type == "subscribe":
                    await self._handle_subscribe(client_id, data)
                elif message_type == "chat":
                    await self._handle_chat(client_id, data)
                else:
                    await self._send_error(client_id, f"Unknown message type: {message_type}")
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Error processing '{message_type}' from {client_id}: {e}")
                await self._send_error(client_id, str(e))

    async def _handle_ping(self, client_id: str) -> None:
        await self.manager.send_to_client(client_id, {"type": "pong", "timestamp": utc_now()})

    async def _handle_get_stats(self, client_id: str) -> None:
        await self.manager.send_to_client(client_id, {
            "type": "stats",
            "data": self.manager.get_connection_stats(),
        })

    async def _handle_get_state(self, client_id: str) -> None:
        await self.manager.send_to_client(client_id, {
            "type": "state",
            "data": self.store.snapshot(),
            "timestamp": utc_now(),
        })

    async def _handle_subscribe(self, client_id: str, data: Dict[str, Any]) -> None:
        """
        Expected format:
        {
            "type": "subscribe",
            "slices": ["agents", "logs"]   (omit or null for every slice)
        }
        """
        slices = data.get("slices")
        if slices is not None and not isinstance(slices, list):
            await self._send_error(client_id, "slices must be a list")
            return
        try:
            accepted = await self.manager.subscribe(client_id, slices)
        except ValueError as e:
            await self._send_error(client_id, str(e))
            return
        await self.manager.send_to_client(client_id, {
            "type": "subscription_confirmed",
            "slices": sorted(accepted) if accepted is not None else "all",
            "timestamp": utc_now(),
        })

    async def _handle_chat(self, client_id: str, data: Dict[str, Any]) -> None:
        """
        Expected format:
        {
            "type": "chat",
            "agentId": "agent-1",
            "message": "hello"
        }
        """
        agent_id = data.get("agentId")
        message = data.get("message")
        if not agent_id or not isinstance(message, str):
            await self._send_error(client_id, "Missing agentId or message")
            return
        sent = send_chat(self.connection, agent_id, message)
        await self.manager.send_to_client(client_id, {
            "type": "chat_ack",
            "agentId": agent_id,
            "sent": sent,
        })

    async def _send_error(self, client_id: str, error_message: str) -> None:
        await self.manager.send_to_client(client_id, {
            "type": ClientEventType.ERROR.value,
            "message": error_message,
            "timestamp": utc_now(),
        })


async def websocket_route(websocket: WebSocket) -> None:
    """FastAPI WebSocket route; the endpoint lives on app.state."""
    await websocket.app.state.ws_endpoint.handle_connection(websocket)

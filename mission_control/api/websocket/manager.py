"""
WebSocket Client Manager for Mission Control
Tracks browser clients and relays store and gateway changes to them
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from ...gateway.connection import GatewayConnection
from ...gateway.events import DomainEvent, EventType, decode_event
from ...gateway.router import Subscription
from ...models.schemas import Envelope
from ...services.store import SLICES, AppStore

logger = logging.getLogger(__name__)


class ClientEventType(Enum):
    """Server-to-client message types"""
    STATE_UPDATE = "state_update"
    CONNECTION_STATUS = "connection_status"
    GATEWAY_EVENT = "gateway_event"
    SERVER_SHUTDOWN = "server_shutdown"
    ERROR = "error"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ClientConnection:
    """Represents a connected browser client"""
    client_id: str
    websocket: WebSocket
    connected_at: datetime
    # None means every slice
    slices: Optional[Set[str]] = None

    def wants(self, slice_name: str) -> bool:
        return self.slices is None or slice_name in self.slices


class ClientManager:
    """Manages browser WebSocket clients and fan-out of dashboard updates"""

    def __init__(self):
        self._clients: Dict[str, ClientConnection] = {}
        self._lock = asyncio.Lock()
        self._relays: List[Subscription] = []
        self._connection: Optional[GatewayConnection] = None
        self._store: Optional[AppStore] = None
        self.stats = {
            "state_updates_sent": 0,
            "gateway_events_relayed": 0,
        }

    # ========================================================================
    # CLIENTS
    # ========================================================================

    async def connect(self, websocket: WebSocket, client_id: str) -> ClientConnection:
        """
        Accept a browser connection and greet it with the gateway status.

        Args:
            websocket: The FastAPI WebSocket instance
            client_id: Unique identifier for the client

        Returns:
            ClientConnection object
        """
        await websocket.accept()

        async with self._lock:
            client = ClientConnection(
                client_id=client_id,
                websocket=websocket,
                connected_at=datetime.now(timezone.utc),
            )
            self._clients[client_id] = client

        await self.send_to_client(client_id, self._status_message(client_id=client_id))
        logger.info(f"Client {client_id} connected. Total connections: {len(self._clients)}")
        return client

    async def disconnect(self, client_id: str) -> None:
        async with self._lock:
            if self._clients.pop(client_id, None) is None:
                return
        logger.info(f"Client {client_id} disconnected. Remaining connections: {len(self._clients)}")

    async def subscribe(self, client_id: str, slices: Optional[Iterable[str]]) -> Optional[Set[str]]:
        """
        Restrict which store slices a client receives.

        Args:
            client_id: Client requesting the change
            slices: Slice names, or None for all of them

        Returns:
            The accepted slice set (None for all)

        Raises:
            ValueError: If a slice name is unknown
        """
        wanted = None if slices is None else set(slices)
        if wanted is not None:
            unknown = wanted - set(SLICES)
            if unknown:
                raise ValueError(f"Unknown slices: {sorted(unknown)}")

        async with self._lock:
            client = self._clients.get(client_id)
            if client is None:
                logger.warning(f"Subscribe request from unknown client: {client_id}")
                return None
            client.slices = wanted
        logger.debug(f"Client {client_id} subscribed to {sorted(wanted) if wanted else 'all slices'}")
        return wanted

    async def send_to_client(self, client_id: str, message: Dict[str, Any]) -> None:
        client = self._clients.get(client_id)
        if client is None:
            return
        try:
            await client.websocket.send_json(message)
        except Exception as e:
            logger.error(f"Failed to send message to {client_id}: {e}")
            raise

    async def broadcast(self, message: Dict[str, Any], slice_name: Optional[str] = None) -> int:
        """
        Send a message to every client (or those watching ``slice_name``).

        Clients that fail to receive are dropped.

        Returns:
            Number of clients the message reached
        """
        async with self._lock:
            targets = [
                client.client_id for client in self._clients.values()
                if slice_name is None or client.wants(slice_name)
            ]

        sent = 0
        disconnected = []
        for client_id in targets:
            try:
                await self.send_to_client(client_id, message)
                sent += 1
            except Exception as e:
                logger.error(f"Error broadcasting to {client_id}: {e}")
                disconnected.append(client_id)

        for client_id in disconnected:
            await self.disconnect(client_id)
        return sent

    def get_connection_stats(self) -> Dict[str, Any]:
        return {
            "total_connections": len(self._clients),
            **self.stats,
            "clients": [
                {
                    "client_id": client.client_id,
                    "connected_at": client.connected_at.isoformat(),
                    "slices": sorted(client.slices) if client.slices is not None else "all",
                }
                for client in self._clients.values()
            ],
        }

    # ========================================================================
    # RELAY
    # ========================================================================

    def attach(self, connection: GatewayConnection, store: AppStore) -> None:
        """Start relaying store changes and gateway lifecycle to clients."""
        self.detach()
        self._connection = connection
        self._store = store
        self._relays = [
            store.subscribe(self._on_store_change),
            connection.on(EventType.STATE_CHANGE, self._on_lifecycle),
            connection.on(EventType.RECONNECT_FAILED, self._on_lifecycle),
            connection.on(EventType.MESSAGE, self._on_gateway_message),
        ]
        logger.info("ClientManager relaying store and gateway updates")

    def detach(self) -> None:
        for subscription in self._relays:
            subscription.close()
        self._relays = []

    async def broadcast_state(self, slice_name: str) -> int:
        if self._store is None:
            return 0
        message = {
            "type": ClientEventType.STATE_UPDATE.value,
            "slice": slice_name,
            "data": self._store.slice(slice_name),
            "timestamp": utc_now(),
        }
        sent = await self.broadcast(message, slice_name=slice_name)
        self.stats["state_updates_sent"] += sent
        return sent

    async def broadcast_status(self) -> int:
        return await self.broadcast(self._status_message())

    def _on_store_change(self, slice_name: str):
        if not self._clients:
            return None
        return self.broadcast_state(slice_name)

    def _on_lifecycle(self, _payload: Any):
        if not self._clients:
            return None
        return self.broadcast_status()

    def _on_gateway_message(self, envelope: Envelope):
        if not self._clients:
            return None
        return self._relay_gateway_event(envelope)

    async def _relay_gateway_event(self, envelope: Envelope) -> None:
        try:
            event = decode_event(envelope)
        except ValueError as e:
            logger.warning(f"Not relaying malformed '{envelope.type}' event: {e}")
            return
        message = {
            "type": ClientEventType.GATEWAY_EVENT.value,
            "event": envelope.type,
            "known": isinstance(event, DomainEvent),
            "payload": event.payload.to_wire() if isinstance(event, DomainEvent) else event.payload,
            "timestamp": envelope.timestamp or utc_now(),
        }
        self.stats["gateway_events_relayed"] += await self.broadcast(message)

    def _status_message(self, **extra: Any) -> Dict[str, Any]:
        status = self._connection.get_status().to_dict() if self._connection else None
        return {
            "type": ClientEventType.CONNECTION_STATUS.value,
            "status": "connected",
            "gateway": status,
            "timestamp": utc_now(),
            **extra,
        }

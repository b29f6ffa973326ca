"""Reload channel - fan-out of reload/inject/error messages to connected browsers."""

from typing import Any, Protocol

from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


class ReloadClient(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ReloadHub:
    """
    Connected development clients.

    Message shapes::

        {"type": "reload"}
        {"type": "inject", "kind": "css", "path": "css/style.min.css"}
        {"type": "error", "pipeline": "scripts", "message": "..."}
    """

    def __init__(self):
        self._clients: set[ReloadClient] = set()

    def connect(self, client: ReloadClient) -> None:
        self._clients.add(client)
        logger.debug("reload_client_connected", clients=len(self._clients))

    def disconnect(self, client: ReloadClient) -> None:
        self._clients.discard(client)
        logger.debug("reload_client_disconnected", clients=len(self._clients))

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send to every client; clients that fail are dropped. Returns deliveries."""
        delivered = 0
        for client in list(self._clients):
            try:
                await client.send_json(message)
                delivered += 1
            except Exception as e:
                logger.debug("reload_client_dropped", error=str(e))
                self._clients.discard(client)
        logger.debug("reload_broadcast", type=message.get("type"), delivered=delivered)
        return delivered

    async def reload(self) -> int:
        return await self.broadcast({"type": "reload"})

    async def inject(self, kind: str, path: str) -> int:
        return await self.broadcast({"type": "inject", "kind": kind, "path": path})

    async def error(self, pipeline: str, message: str) -> int:
        return await self.broadcast({"type": "error", "pipeline": pipeline, "message": message})

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket


class WebSocketManager:
    """
    Fans serialized iSCSI events out to every connected WebSocket client.

    ``publish()`` never blocks the event stream: messages are queued and a
    single send loop delivers them in order. A client whose send fails is
    dropped.
    """

    def __init__(self):
        self._clients: Set[WebSocket] = set()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._send_task: Optional[asyncio.Task] = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def start(self) -> None:
        if self._send_task is None:
            self._send_task = asyncio.create_task(self._send_loop(), name="websocket-send-loop")
            logging.info("WebSocket send loop started")

    async def stop(self) -> None:
        if self._send_task is None:
            return
        self._send_task.cancel()
        try:
            await self._send_task
        except asyncio.CancelledError:
            pass
        self._send_task = None
        logging.info(f"WebSocket send loop stopped ({self.client_count} client(s) still open)")

    def publish(self, message: Dict[str, Any]) -> None:
        self._outbox.put_nowait(message)

    async def drain(self) -> None:
        """Waits until every published message has been handed to the clients."""
        await self._outbox.join()

    async def _send_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                await self._send_to_all(json.dumps(message))
            except Exception as e:
                logging.error(f"Could not deliver {message.get('type', 'message')}: {e}")
            finally:
                self._outbox.task_done()

    async def _send_to_all(self, text: str) -> None:
        for websocket in list(self._clients):
            try:
                await websocket.send_text(text)
            except Exception as e:
                logging.warning(f"Dropping WebSocket client after failed send: {e!r}")
                self.disconnect(websocket)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logging.info(f"WebSocket client connected ({self.client_count} open)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logging.info(f"WebSocket client disconnected ({self.client_count} open)")

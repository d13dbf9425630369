"""
Link Status WebSocket Server Module

Streams link status snapshots (state, controller flags, current and target
positions, update intervals) to web clients. Displays consume this instead
of touching the link clients directly.

Messages are JSON objects:
  {"type": "status", "timestamp": <unix time>, "status": {...}}
Clients may send the text "status" to request an immediate snapshot.
"""

import asyncio
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set

import websockets

logger = logging.getLogger(__name__)


def build_status_message(status: Dict[str, Any], timestamp: Optional[float] = None) -> str:
    """Serialize a status snapshot into a WebSocket message."""
    return json.dumps({
        'type': 'status',
        'timestamp': time.time() if timestamp is None else timestamp,
        'status': status,
    })


class LinkStatusWebSocketServer:
    """
    WebSocket server broadcasting link status.

    Runs its own asyncio loop (see run_status_server); the sync methods are
    safe to call from link threads.
    """

    def __init__(self, get_status: Callable[[], Dict[str, Any]], host: str = "0.0.0.0",
                 port: int = 5005, interval: float = 0.5):
        """
        Args:
            get_status: Returns the current link status snapshot
            host: Bind address
            port: WebSocket server port
            interval: Seconds between periodic broadcasts
        """
        self.get_status = get_status
        self.host = host
        self.port = port
        self.interval = interval

        self.clients: Set[Any] = set()
        self.running = False
        self.server = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.started = threading.Event()

    async def start(self):
        """Serve until stop_sync() is called."""
        self.loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self.running = True

        try:
            self.server = await websockets.serve(self.handle_client, self.host, self.port)
            logger.info(f"Status WebSocket server started on port {self.port}")
            self.started.set()

            while not self._stop_event.is_set():
                await self.broadcast_status()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass

        except OSError as e:
            logger.error(f"Status WebSocket server error: {e}")
        finally:
            self.running = False
            self.started.set()
            await self._shutdown()

    async def handle_client(self, websocket, path: Optional[str] = None):
        """Register a client, send a snapshot, answer 'status' requests."""
        client_addr = websocket.remote_address
        logger.info(f"Status client connected: {client_addr}")
        self.clients.add(websocket)

        try:
            await websocket.send(build_status_message(self.get_status()))

            async for message in websocket:
                if message == "status":
                    await websocket.send(build_status_message(self.get_status()))

        except websockets.exceptions.ConnectionClosed:
            logger.info(f"Status client disconnected: {client_addr}")
        finally:
            self.clients.discard(websocket)

    async def broadcast_status(self):
        """Send the current snapshot to every connected client."""
        if not self.clients:
            return
        await self.broadcast(build_status_message(self.get_status()))

    async def broadcast(self, message: str):
        disconnected_clients = set()
        for client in list(self.clients):
            try:
                await client.send(message)
            except websockets.exceptions.ConnectionClosed:
                disconnected_clients.add(client)
            except OSError as e:
                logger.error(f"Error broadcasting to status client: {e}")
                disconnected_clients.add(client)

        self.clients -= disconnected_clients

    def notify_state_change(self, old_state: Any = None, new_state: Any = None):
        """
        Push a snapshot right away (e.g. on a link state change).

        Thread-safe; matches the link state_changed handler signature.
        """
        if self.loop and self.running:
            asyncio.run_coroutine_threadsafe(self.broadcast_status(), self.loop)

    def stop_sync(self):
        """Ask the server loop to finish. Thread-safe."""
        if self.loop and self._stop_event is not None and self.running:
            self.loop.call_soon_threadsafe(self._stop_event.set)

    async def _shutdown(self):
        if self.clients:
            await asyncio.gather(
                *[client.close() for client in self.clients],
                return_exceptions=True
            )
            self.clients.clear()

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("Status WebSocket server stopped")


def run_status_server(server: LinkStatusWebSocketServer):
    """Run the server's event loop on the calling thread (use a daemon thread)."""
    asyncio.run(server.start())

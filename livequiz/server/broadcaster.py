"""Fan-out of domain events to connected websocket observers.

All outbound websocket traffic goes through one dispatcher task that
drains a FIFO queue. ``QuizManager`` publishes events while holding its
lock, possibly from a grace-timer thread, so ``publish`` only hands the
events to the event loop with ``call_soon_threadsafe``; this keeps
delivery in commit order and never lets two sends hit one socket at the
same time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any

from fastapi import WebSocket

from livequiz.constants.network_constants import SEND_TIMEOUT_SECONDS
from livequiz.core.events import GameEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Connection:
    connection_id: str
    websocket: WebSocket
    is_host: bool = False


class Broadcaster:
    """Owns the live websocket connections and the outbound queue."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS) -> None:
        self._send_timeout = send_timeout
        self._connections: dict[str, Connection] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[tuple[str, Any]] | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._dispatch_loop(), name="broadcast-dispatcher")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._loop = None
        self._queue = None

    # --- Connections ---

    def register(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)

    def connection_count(self) -> int:
        return len(self._connections)

    # --- Thread-safe entry points ---

    def publish(self, events: list[GameEvent]) -> None:
        """QuizManager listener: queue events for every observer."""
        self._enqueue(("broadcast", list(events)))

    def send_direct(self, connection_id: str, payload: dict[str, object]) -> None:
        """Queue a message for a single connection (replies, errors, snapshots)."""
        self._enqueue(("direct", (connection_id, payload)))

    def _enqueue(self, item: tuple[str, Any]) -> None:
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            logger.debug("Dropping %s message, broadcaster is not running", item[0])
            return
        loop.call_soon_threadsafe(queue.put_nowait, item)

    # --- Dispatcher ---

    async def _dispatch_loop(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            kind, body = await queue.get()
            if kind == "broadcast":
                for event in body:
                    await self._fan_out(event)
            else:
                connection_id, payload = body
                connection = self._connections.get(connection_id)
                if connection is not None:
                    await self._send(connection, payload)

    async def _fan_out(self, event: GameEvent) -> None:
        host_payload = event.to_payload(include_answer=True)
        player_payload = event.to_payload(include_answer=False)
        for connection in list(self._connections.values()):
            await self._send(connection, host_payload if connection.is_host else player_payload)

    async def _send(self, connection: Connection, payload: dict[str, object]) -> None:
        try:
            await asyncio.wait_for(connection.websocket.send_json(payload), self._send_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Send to %s timed out after %.1fs; dropping observer",
                connection.connection_id,
                self._send_timeout,
            )
            self.unregister(connection.connection_id)
            await self._close(connection)
        except Exception as exc:
            # The receive loop of that socket notices the drop and releases it.
            logger.debug("Send to %s failed: %s", connection.connection_id, exc)
            self.unregister(connection.connection_id)

    async def _close(self, connection: Connection) -> None:
        # Closing ends that socket's receive loop, which releases its player.
        try:
            await asyncio.wait_for(connection.websocket.close(), self._send_timeout)
        except Exception as exc:
            logger.debug("Close of %s failed: %s", connection.connection_id, exc)

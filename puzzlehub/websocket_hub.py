from __future__ import annotations

import asyncio

from fastapi import WebSocket


class PlayerWebSocketHub:
    """In-process WebSocket fan-out for player session updates.

    Contract:
      - register a screen via `connect(websocket)`.
      - push lightweight events with `broadcast(payload)`, or `notify(payload)` from sync code.

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._conns)

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._conns.discard(ws)

    def notify(self, payload: dict[str, object]) -> None:
        """Schedule a broadcast on the running loop (for sync callbacks)."""

        task = asyncio.get_running_loop().create_task(self.broadcast(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


hub = PlayerWebSocketHub()

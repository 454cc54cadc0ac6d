"""Client side of the LockPilot IPC socket."""
import asyncio
import itertools
import json
import logging
from pathlib import Path
from typing import Any

from ..core.config import DEFAULT_SOCKET
from ..core.errors import ERRORS_BY_KIND

logger = logging.getLogger(__name__)


class IPCError(Exception):
    """The daemon answered with an error that is not a timer error."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class IPCClient:
    """Sends JSON-RPC requests to a running daemon, one connection per call."""

    def __init__(self, socket_path: Path = DEFAULT_SOCKET, timeout: float = 5.0):
        self.socket_path = socket_path
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def call(self, method: str, **params: Any) -> Any:
        """Invoke an RPC method and return its result.

        Raises:
            TimerError: subclass matching the daemon's error kind
            IPCError: for protocol or server errors
            OSError: if the daemon is not reachable
        """
        request = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        logger.debug(f"Calling {method} on {self.socket_path}")

        reader, writer = await asyncio.wait_for(
            asyncio.open_unix_connection(str(self.socket_path)),
            timeout=self.timeout,
        )
        try:
            writer.write((json.dumps(request) + "\n").encode("utf-8"))
            await writer.drain()
            line = await asyncio.wait_for(reader.readline(), timeout=self.timeout)
        finally:
            writer.close()
            await writer.wait_closed()

        if not line:
            raise IPCError(-32000, "Daemon closed the connection")

        response = json.loads(line.decode("utf-8"))
        error = response.get("error")
        if error:
            kind = (error.get("data") or {}).get("kind")
            if kind in ERRORS_BY_KIND:
                raise ERRORS_BY_KIND[kind](error.get("message"))
            raise IPCError(error.get("code", -32000), error.get("message", "Unknown error"))

        return response.get("result")

    async def create_timer(self, action: str, target_time: str, message: str | None = None) -> dict:
        params: dict[str, Any] = {"action": action, "targetTime": target_time}
        if message is not None:
            params["message"] = message
        return await self.call("create_timer", **params)

    async def list_timers(self) -> list[dict]:
        return await self.call("list_timers")

    async def cancel_timer(self, timer_id: str) -> bool:
        return await self.call("cancel_timer", id=timer_id)

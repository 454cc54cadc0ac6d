"""Unix socket server exposing the timer commands.

Front-ends talk to the daemon with JSON-RPC 2.0 over a Unix socket.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Coroutine

from ..core.config import DEFAULT_SOCKET
from ..core.errors import TimerError
from ..scheduler import TimerScheduler

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


@dataclass
class RPCRequest:
    """JSON-RPC request."""

    method: str
    params: dict[str, Any]
    id: str | int | None = None


@dataclass
class RPCResponse:
    """JSON-RPC response."""

    result: Any = None
    error: dict[str, Any] | None = None
    id: str | int | None = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        data = {"jsonrpc": "2.0", "id": self.id}
        if self.error:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return json.dumps(data)


class IPCServer:
    """Unix socket server for front-end communication.

    Protocol: JSON-RPC 2.0 over Unix socket
    Each message is a line of JSON terminated by newline.
    """

    def __init__(self, socket_path: Path = DEFAULT_SOCKET):
        self.socket_path = socket_path
        self._server: asyncio.Server | None = None
        self._handlers: dict[str, Callable[..., Coroutine[Any, Any, Any]]] = {}
        self._running = False

    def register_handler(
        self,
        method: str,
        handler: Callable[..., Coroutine[Any, Any, Any]]
    ):
        """Register a handler for an RPC method.

        Args:
            method: The RPC method name
            handler: Async function to handle the method
        """
        self._handlers[method] = handler
        logger.debug(f"Registered handler for method: {method}")

    async def start(self):
        """Start the IPC server."""
        # Remove a stale socket left by a previous run
        if self.socket_path.exists():
            self.socket_path.unlink()

        self.socket_path.parent.mkdir(parents=True, exist_ok=True)

        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=str(self.socket_path)
        )

        # User only
        os.chmod(self.socket_path, 0o600)

        self._running = True
        logger.info(f"IPC server started on {self.socket_path}")

    async def stop(self):
        """Stop the IPC server."""
        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        if self.socket_path.exists():
            self.socket_path.unlink()

        logger.info("IPC server stopped")

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ):
        """Handle a client connection."""
        logger.debug("Client connected")

        try:
            while self._running:
                line = await reader.readline()
                if not line:
                    break

                response = await self.handle_line(line)

                writer.write((response.to_json() + "\n").encode("utf-8"))
                await writer.drain()

        except asyncio.CancelledError:
            raise
        except ConnectionError as e:
            logger.debug(f"Client connection lost: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
            logger.debug("Client disconnected")

    async def handle_line(self, line: bytes) -> RPCResponse:
        """Decode one request line and dispatch it."""
        try:
            data = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return RPCResponse(
                error={"code": PARSE_ERROR, "message": f"Parse error: {e}"},
                id=None
            )

        if not isinstance(data, dict) or not isinstance(data.get("method"), str):
            return RPCResponse(
                error={"code": INVALID_REQUEST, "message": "Invalid request"},
                id=data.get("id") if isinstance(data, dict) else None
            )

        params = data.get("params") or {}
        if not isinstance(params, dict):
            return RPCResponse(
                error={"code": INVALID_PARAMS, "message": "Params must be an object"},
                id=data.get("id")
            )

        request = RPCRequest(method=data["method"], params=params, id=data.get("id"))
        return await self._handle_request(request)

    async def _handle_request(self, request: RPCRequest) -> RPCResponse:
        """Handle an RPC request."""
        logger.debug(f"Handling RPC: {request.method}")

        if request.method not in self._handlers:
            return RPCResponse(
                error={"code": METHOD_NOT_FOUND, "message": f"Method not found: {request.method}"},
                id=request.id
            )

        handler = self._handlers[request.method]
        try:
            result = await handler(**request.params)
            return RPCResponse(result=result, id=request.id)
        except TimerError as e:
            return RPCResponse(error=e.to_dict(), id=request.id)
        except TypeError as e:
            return RPCResponse(
                error={"code": INVALID_PARAMS, "message": f"Invalid params: {e}"},
                id=request.id
            )
        except Exception as e:
            logger.error(f"Handler error for {request.method}: {e}", exc_info=True)
            return RPCResponse(
                error={"code": SERVER_ERROR, "message": str(e)},
                id=request.id
            )


def register_timer_handlers(server: IPCServer, scheduler: TimerScheduler) -> None:
    """Expose the scheduler's commands on an IPC server."""

    async def create_timer(action: str, targetTime: str, message: str | None = None):
        timer = scheduler.create_timer(action, targetTime, message)
        return timer.to_dict()

    async def list_timers():
        return [timer.to_dict() for timer in scheduler.list_timers()]

    async def cancel_timer(id: str):
        return scheduler.cancel_timer(id)

    async def stats():
        return scheduler.get_stats()

    server.register_handler("create_timer", create_timer)
    server.register_handler("list_timers", list_timers)
    server.register_handler("cancel_timer", cancel_timer)
    server.register_handler("stats", stats)


async def start_server(
    scheduler: TimerScheduler,
    socket_path: Path = DEFAULT_SOCKET,
) -> IPCServer:
    """Start the IPC server with the timer handlers.

    Args:
        scheduler: Scheduler that serves the commands
        socket_path: Path for the Unix socket

    Returns:
        Started IPCServer instance
    """
    server = IPCServer(socket_path)
    register_timer_handlers(server, scheduler)
    await server.start()
    return server

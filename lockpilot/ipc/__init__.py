"""IPC module for communication with front-ends."""
from .client import IPCClient, IPCError
from .socket_server import IPCServer, register_timer_handlers, start_server

__all__ = ["IPCClient", "IPCError", "IPCServer", "register_timer_handlers", "start_server"]

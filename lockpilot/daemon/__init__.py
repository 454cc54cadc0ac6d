"""LockPilot daemon."""
from .main import LockPilotDaemon, main, run

__all__ = ["LockPilotDaemon", "main", "run"]

"""LockPilot actions - the macOS side effects a timer can trigger."""
from .applescript import run_command, run_osascript
from .executor import ActionExecutor, Executor

__all__ = [
    "ActionExecutor",
    "Executor",
    "run_command",
    "run_osascript",
]

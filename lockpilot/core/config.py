"""Configuration management for LockPilot.

Handles loading config from a .env file and environment variables.
"""
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

# .env beside a source checkout; a .env in the working directory is read too
ENV_PATH = Path(__file__).parent.parent.parent / ".env"

# Default paths
DEFAULT_HOME = Path.home() / ".lockpilot"
DEFAULT_SOCKET = Path("/tmp/lockpilot.sock")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}, using {default}")
        return default
    return value


@dataclass
class WebConfig:
    """Settings for the optional REST server."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class ExecutorConfig:
    """Settings for the macOS action executor."""

    dialog_title: str = "LockPilot"
    osascript_path: str = "/usr/bin/osascript"
    pmset_path: str = "/usr/bin/pmset"


@dataclass
class LockPilotConfig:
    """Runtime configuration for the LockPilot daemon."""

    home: Path = DEFAULT_HOME
    socket_path: Path = DEFAULT_SOCKET
    log_level: str = "INFO"
    log_max_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 3
    lock_timeout: float = 1.0
    web: WebConfig = field(default_factory=WebConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "home": str(self.home),
            "socket_path": str(self.socket_path),
            "log_level": self.log_level,
            "log_max_bytes": self.log_max_bytes,
            "log_backup_count": self.log_backup_count,
            "lock_timeout": self.lock_timeout,
            "web": {
                "enabled": self.web.enabled,
                "host": self.web.host,
                "port": self.web.port,
            },
            "executor": {
                "dialog_title": self.executor.dialog_title,
                "osascript_path": self.executor.osascript_path,
                "pmset_path": self.executor.pmset_path,
            },
        }


def load_config(env_file: Path | None = None) -> LockPilotConfig:
    """Build the configuration from the environment.

    Variables already set in the environment take priority over the .env file.

    Args:
        env_file: Optional .env file to load instead of the default locations

    Returns:
        Populated LockPilotConfig
    """
    if env_file is not None:
        candidates = [env_file]
    else:
        cwd_env = find_dotenv(usecwd=True)
        candidates = [ENV_PATH] + ([Path(cwd_env)] if cwd_env else [])

    for env_path in candidates:
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded .env from {env_path}")

    log_level = os.environ.get("LOCKPILOT_LOG_LEVEL", "INFO").upper()
    if _env_bool("LOCKPILOT_DEBUG", False):
        log_level = "DEBUG"

    return LockPilotConfig(
        home=Path(os.environ.get("LOCKPILOT_HOME", DEFAULT_HOME)).expanduser(),
        socket_path=Path(os.environ.get("LOCKPILOT_SOCKET", DEFAULT_SOCKET)).expanduser(),
        log_level=log_level,
        log_max_bytes=_env_int("LOCKPILOT_LOG_MAX_BYTES", 5 * 1024 * 1024),
        log_backup_count=_env_int("LOCKPILOT_LOG_BACKUPS", 3),
        lock_timeout=_env_float("LOCKPILOT_LOCK_TIMEOUT", 1.0),
        web=WebConfig(
            enabled=_env_bool("LOCKPILOT_WEB_ENABLED", False),
            host=os.environ.get("LOCKPILOT_WEB_HOST", "127.0.0.1"),
            port=_env_int("LOCKPILOT_WEB_PORT", 8765),
        ),
        executor=ExecutorConfig(
            dialog_title=os.environ.get("LOCKPILOT_DIALOG_TITLE", "LockPilot"),
            osascript_path=os.environ.get("LOCKPILOT_OSASCRIPT", "/usr/bin/osascript"),
            pmset_path=os.environ.get("LOCKPILOT_PMSET", "/usr/bin/pmset"),
        ),
    )

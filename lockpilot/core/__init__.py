"""LockPilot core: configuration, logging and errors."""

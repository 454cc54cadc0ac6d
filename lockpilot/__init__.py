"""LockPilot - schedule a popup, screen lock, shutdown or restart for later."""

__version__ = "0.1.0"

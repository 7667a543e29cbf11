"""API module."""

from reelhub.api.websocket import ConnectionManager, manager

__all__ = ["ConnectionManager", "manager"]

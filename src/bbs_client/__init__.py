"""Terminal client for a bulletin board service for AI agents and observers."""

from .api_client import ApiClient, ApiError, AuthError
from .config import ClientConfig, load_config
from .connection import ConnectionManager
from .controller import Controller
from .session import SessionContext

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthError",
    "ClientConfig",
    "ConnectionManager",
    "Controller",
    "SessionContext",
    "load_config",
]

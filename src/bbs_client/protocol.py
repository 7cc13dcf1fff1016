"""Duplex channel message kinds and frame builders."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

# Client -> server
MSG_REQUEST_NODE = "request_node"
MSG_ACTIVITY = "activity"
MSG_CHAT_JOIN = "CHAT_JOIN"
MSG_CHAT_LEAVE = "CHAT_LEAVE"
MSG_CHAT_MESSAGE = "CHAT_MESSAGE"

# Server -> client: connection administration
MSG_CONNECTION_ASSIGNED = "connection_assigned"
MSG_AGENT_NODES_FULL = "agent_nodes_full"
MSG_OBSERVER_SLOTS_FULL = "observer_slots_full"
MSG_TIMEOUT = "timeout"

# Server -> client: push events
MSG_NEW_POST = "new_post"
MSG_CHAT_HISTORY = "CHAT_HISTORY"
MSG_CHAT_MESSAGE_RECEIVED = "CHAT_MESSAGE_RECEIVED"
MSG_CHAT_USER_LIST = "CHAT_USER_LIST"
MSG_CHAT_USER_JOINED = "CHAT_USER_JOINED"
MSG_CHAT_USER_LEFT = "CHAT_USER_LEFT"

CONNECTION_AGENT = "agent"
CONNECTION_OBSERVER = "observer"

CHAT_CHANNELS = ("general", "tech", "random")
DEFAULT_CHANNEL = "general"


def handshake(session_id: str, credential: Optional[str]) -> Dict[str, Any]:
    return {"type": MSG_REQUEST_NODE, "apiKey": credential or None, "sessionId": session_id}


def heartbeat() -> Dict[str, Any]:
    return {"type": MSG_ACTIVITY}


def chat_join(channel: str, display_name: str) -> Dict[str, Any]:
    return {"type": MSG_CHAT_JOIN, "channel": channel, "username": display_name}


def chat_leave(channel: str) -> Dict[str, Any]:
    return {"type": MSG_CHAT_LEAVE, "channel": channel}


def chat_message(channel: str, text: str) -> Dict[str, Any]:
    return {"type": MSG_CHAT_MESSAGE, "channel": channel, "message": text}


def decode_frame(raw: str) -> Optional[Dict[str, Any]]:
    """Parse an inbound text frame; ``None`` for anything without a string ``type``."""

    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
        return None
    return frame


def frame_int(frame: Dict[str, Any], key: str, default: int = 0) -> int:
    value = frame.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return default

"""The single mutable context shared by the router, coordinator and dispatcher."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from bbs_client import client_store
from bbs_client.client_store import SessionRecord
from bbs_client.views import ActiveView, ViewName, mode_for

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    ASSIGNED_AGENT = "assigned_agent"
    ASSIGNED_OBSERVER = "assigned_observer"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    CLOSED = "closed"


@dataclass
class ConnectionIdentity:
    state: ConnectionState = ConnectionState.CONNECTING
    node_id: Optional[int] = None
    observer_slot: Optional[int] = None
    max_nodes: int = 0
    max_observers: int = 0
    agents_online: int = 0
    observers_online: int = 0
    rejected_capacity: int = 0

    @property
    def is_agent(self) -> bool:
        return self.state == ConnectionState.ASSIGNED_AGENT


@dataclass
class ChannelMembership:
    """Client mirror of one chat channel; each server message replaces a part wholesale."""

    channel: str
    display_name: str
    transcript: List[Dict[str, Any]] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class GameSessionRef:
    handle: str
    player: Dict[str, Any] = field(default_factory=dict)
    location: Dict[str, Any] = field(default_factory=dict)


class SessionContext:
    """Everything that outlives a single view.

    Exactly one :class:`ActiveView` exists at a time. ``transition`` is the
    only way to replace it and always bumps the request generation, so a
    fresh view never inherits the previous view's buffer or sub-state.
    """

    def __init__(self, record: SessionRecord, state_path: Path = client_store.STATE_PATH) -> None:
        self.record = record
        self.state_path = state_path
        self.identity = ConnectionIdentity()
        self.generation = 0
        self.view = ActiveView(ViewName.CONNECTING, self.generation)
        self.profile: Optional[Dict[str, Any]] = None
        self.membership: Optional[ChannelMembership] = None
        self.game: Optional[GameSessionRef] = None
        self.quote: Optional[str] = None
        self.chat_name: Optional[str] = None
        self.game_handle: Optional[str] = None

    @property
    def session_id(self) -> str:
        return self.record.session_id

    @property
    def credential(self) -> Optional[str]:
        return self.record.credential

    def has_credential(self) -> bool:
        return bool(self.record.credential)

    def set_credential(self, credential: str) -> None:
        client_store.save_credential(self.record, credential, self.state_path)
        self.profile = None
        logger.info("credential stored")

    def clear_credential(self) -> None:
        """Drop the stored credential and anything derived from it."""

        if self.record.credential:
            client_store.clear_credential(self.record, self.state_path)
            logger.info("credential cleared")
        self.profile = None
        self.game_handle = None

    def transition(self, name: ViewName, state: Any = None) -> ActiveView:
        self.generation += 1
        self.view = ActiveView(name=name, generation=self.generation, mode=mode_for(name), state=state)
        logger.debug("view -> %s (generation %d)", name.value, self.generation)
        return self.view

    def is_current(self, generation: int) -> bool:
        return generation == self.view.generation

    def agent_name(self) -> Optional[str]:
        if not self.profile:
            return None
        name = self.profile.get("name")
        return name if isinstance(name, str) and name else None

    def display_name(self) -> str:
        """Chat name: the agent's own name, else a per-process anonymous handle."""

        name = self.agent_name()
        if name:
            return name
        if self.chat_name is None:
            self.chat_name = f"human{random.randint(0, 999999):06d}"
        return self.chat_name

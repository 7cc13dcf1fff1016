"""Duplex channel lifecycle: handshake, administrative frames, heartbeat."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import aiohttp

from bbs_client import protocol
from bbs_client.session import ConnectionState

logger = logging.getLogger(__name__)

Frame = Dict[str, Any]


class ConnectionManager:
    """One websocket per process, never reconnected.

    ``listener`` receives ``on_assigned(frame, state)``, ``on_rejected(frame)``,
    ``on_timed_out(frame)``, ``on_push(frame)`` and ``on_closed()``; all are
    plain synchronous calls made from the receive loop.
    """

    def __init__(
        self,
        ws_url: str,
        http: aiohttp.ClientSession,
        listener: Any,
        heartbeat_interval: float = 30.0,
    ) -> None:
        self.ws_url = ws_url
        self._http = http
        self._listener = listener
        self.heartbeat_interval = heartbeat_interval
        self.state = ConnectionState.CONNECTING
        self.heartbeats_sent = 0
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._admin: Dict[str, Callable[[Frame], None]] = {
            protocol.MSG_CONNECTION_ASSIGNED: self._on_assigned,
            protocol.MSG_AGENT_NODES_FULL: self._on_rejected,
            protocol.MSG_OBSERVER_SLOTS_FULL: self._on_rejected,
            protocol.MSG_TIMEOUT: self._on_timed_out,
        }

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def run(self, session_id: str, credential: Optional[str]) -> None:
        """Connect, hand-shake, then pump inbound frames until the channel closes."""

        self._set_state(ConnectionState.CONNECTING)
        try:
            async with self._http.ws_connect(self.ws_url) as ws:
                self._ws = ws
                await ws.send_json(protocol.handshake(session_id, credential))
                while True:
                    msg = await ws.receive()
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        frame = protocol.decode_frame(msg.data)
                        if frame is None:
                            logger.debug("dropping undecodable frame")
                            continue
                        self.handle_frame(frame)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("channel error: %s", ws.exception())
                        break
                    elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                        break
        except aiohttp.ClientError as exc:
            logger.warning("could not open channel to %s: %s", self.ws_url, exc)
        finally:
            self._ws = None
            self._stop_heartbeat()
            if self.state not in (ConnectionState.REJECTED, ConnectionState.TIMED_OUT):
                self._set_state(ConnectionState.CLOSED)
            self._listener.on_closed()

    def handle_frame(self, frame: Frame) -> None:
        handler = self._admin.get(frame["type"])
        if handler is not None:
            handler(frame)
            return
        self._listener.on_push(frame)

    async def send(self, frame: Frame) -> bool:
        if not self.is_open:
            logger.debug("channel closed, not sending %s", frame.get("type"))
            return False
        try:
            await self._ws.send_str(json.dumps(frame))
        except (ConnectionResetError, aiohttp.ClientError) as exc:
            logger.warning("send of %s failed: %s", frame.get("type"), exc)
            return False
        return True

    async def close(self) -> None:
        self._stop_heartbeat()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

    def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.info("connection %s -> %s", self.state.value, state.value)
        self.state = state

    def _on_assigned(self, frame: Frame) -> None:
        if frame.get("connectionType") == protocol.CONNECTION_AGENT:
            self._set_state(ConnectionState.ASSIGNED_AGENT)
        else:
            self._set_state(ConnectionState.ASSIGNED_OBSERVER)
        self._start_heartbeat()
        self._listener.on_assigned(frame, self.state)

    def _on_rejected(self, frame: Frame) -> None:
        self._set_state(ConnectionState.REJECTED)
        self._stop_heartbeat()
        self._listener.on_rejected(frame)

    def _on_timed_out(self, frame: Frame) -> None:
        self._set_state(ConnectionState.TIMED_OUT)
        self._stop_heartbeat()
        self._listener.on_timed_out(frame)

    # -- heartbeat ----------------------------------------------------------

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.ensure_future(self._heartbeat())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not self.is_open:
                return
            if await self.send(protocol.heartbeat()):
                self.heartbeats_sent += 1
                logger.debug("heartbeat %d sent", self.heartbeats_sent)

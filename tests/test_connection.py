import asyncio
import json
import unittest
from typing import Any, Dict, List

import aiohttp
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer

from bbs_client import protocol
from bbs_client.connection import ConnectionManager
from bbs_client.session import ConnectionState


class RecordingListener:
    def __init__(self) -> None:
        self.assigned: List[Any] = []
        self.rejected: List[Dict[str, Any]] = []
        self.timed_out: List[Dict[str, Any]] = []
        self.pushes: List[Dict[str, Any]] = []
        self.closed = 0

    def on_assigned(self, frame, state) -> None:
        self.assigned.append((frame, state))

    def on_rejected(self, frame) -> None:
        self.rejected.append(frame)

    def on_timed_out(self, frame) -> None:
        self.timed_out.append(frame)

    def on_push(self, frame) -> None:
        self.pushes.append(frame)

    def on_closed(self) -> None:
        self.closed += 1


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class ConnectionManagerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.handshakes: List[Dict[str, Any]] = []
        self.inbound: List[Dict[str, Any]] = []
        self.script: List[Dict[str, Any]] = []
        self.close_after_script = False

        app = web.Application()
        app.router.add_get("/", self._ws_handler)
        self.server = TestServer(app)
        await self.server.start_server()
        self.http = aiohttp.ClientSession()
        self.listener = RecordingListener()
        self.ws_url = str(self.server.make_url("/")).replace("http://", "ws://", 1)

    async def asyncTearDown(self) -> None:
        await self.http.close()
        await self.server.close()

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.handshakes.append(await ws.receive_json())
        for frame in self.script:
            await ws.send_json(frame)
        if self.close_after_script:
            await ws.close()
            return ws
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                self.inbound.append(json.loads(msg.data))
        return ws

    def _activity_count(self) -> int:
        return sum(1 for frame in self.inbound if frame.get("type") == protocol.MSG_ACTIVITY)

    async def test_handshake_then_heartbeats_until_close(self):
        self.script = [
            {"type": "connection_assigned", "connectionType": "agent", "nodeId": 2, "maxNodes": 4},
        ]
        manager = ConnectionManager(self.ws_url, self.http, self.listener, heartbeat_interval=0.05)
        runner = asyncio.ensure_future(manager.run("sid-1", "latentvox_ag_key"))

        await _wait_for(lambda: self.listener.assigned)
        self.assertEqual(self.handshakes, [{"type": "request_node", "apiKey": "latentvox_ag_key", "sessionId": "sid-1"}])
        self.assertEqual(self.listener.assigned[0][1], ConnectionState.ASSIGNED_AGENT)
        self.assertEqual(manager.state, ConnectionState.ASSIGNED_AGENT)

        await _wait_for(lambda: self._activity_count() >= 2)
        await manager.close()
        await asyncio.wait_for(runner, 5)

        sent = manager.heartbeats_sent
        received = self._activity_count()
        await asyncio.sleep(0.2)
        self.assertEqual(manager.heartbeats_sent, sent)
        self.assertEqual(self._activity_count(), received)
        self.assertEqual(manager.state, ConnectionState.CLOSED)
        self.assertEqual(self.listener.closed, 1)
        self.assertFalse(await manager.send(protocol.heartbeat()))

    async def test_observer_assignment(self):
        self.script = [{"type": "connection_assigned", "connectionType": "observer", "observerSlot": 7}]
        manager = ConnectionManager(self.ws_url, self.http, self.listener, heartbeat_interval=60)
        runner = asyncio.ensure_future(manager.run("sid-2", None))
        await _wait_for(lambda: self.listener.assigned)
        self.assertIsNone(self.handshakes[0]["apiKey"])
        self.assertEqual(manager.state, ConnectionState.ASSIGNED_OBSERVER)
        await manager.close()
        await asyncio.wait_for(runner, 5)

    async def test_rejection_is_terminal(self):
        self.script = [{"type": "agent_nodes_full", "maxNodes": 4}]
        self.close_after_script = True
        manager = ConnectionManager(self.ws_url, self.http, self.listener, heartbeat_interval=0.05)
        await asyncio.wait_for(manager.run("sid-3", "latentvox_ag_key"), 5)

        self.assertEqual(manager.state, ConnectionState.REJECTED)
        self.assertEqual(self.listener.rejected, [{"type": "agent_nodes_full", "maxNodes": 4}])
        self.assertEqual(self.listener.closed, 1)
        self.assertEqual(manager.heartbeats_sent, 0)

    async def test_timeout_stops_heartbeat(self):
        self.script = [
            {"type": "connection_assigned", "connectionType": "agent", "nodeId": 1},
            {"type": "timeout", "message": "idle"},
        ]
        self.close_after_script = True
        manager = ConnectionManager(self.ws_url, self.http, self.listener, heartbeat_interval=60)
        await asyncio.wait_for(manager.run("sid-4", "latentvox_ag_key"), 5)

        self.assertEqual(manager.state, ConnectionState.TIMED_OUT)
        self.assertEqual(len(self.listener.timed_out), 1)
        self.assertEqual(manager.heartbeats_sent, 0)

    async def test_pushes_reach_listener_and_junk_is_dropped(self):
        self.script = [
            {"type": "connection_assigned", "connectionType": "observer"},
            {"type": "new_post", "boardId": 1},
            {"no_type": True},
            {"type": "CHAT_HISTORY", "channel": "general", "messages": []},
        ]
        self.close_after_script = True
        manager = ConnectionManager(self.ws_url, self.http, self.listener, heartbeat_interval=60)
        await asyncio.wait_for(manager.run("sid-5", None), 5)

        self.assertEqual([frame["type"] for frame in self.listener.pushes], ["new_post", "CHAT_HISTORY"])
        self.assertEqual(manager.state, ConnectionState.CLOSED)

    async def test_unreachable_server_reports_closed(self):
        manager = ConnectionManager("ws://127.0.0.1:1/", self.http, self.listener)
        await asyncio.wait_for(manager.run("sid-6", None), 10)
        self.assertEqual(manager.state, ConnectionState.CLOSED)
        self.assertEqual(self.listener.closed, 1)
        self.assertEqual(self.listener.assigned, [])


if __name__ == "__main__":
    unittest.main()

"""Apply unsolicited server pushes to whichever view is live."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from bbs_client import protocol
from bbs_client import screen as scr
from bbs_client.screen import BufferScreen
from bbs_client.session import ChannelMembership, SessionContext
from bbs_client.views import ViewName

logger = logging.getLogger(__name__)

Frame = Dict[str, Any]


def _system_line(text: str) -> Dict[str, Any]:
    return {"sender_name": "*", "sender_type": "system", "message": text}


class PushDispatcher:
    """Map of push kind to handler.

    Chat pushes only touch the transcript of the channel this session has
    joined; a live chat view is re-rendered afterwards. Board notices are
    advisory and never replace content.
    """

    def __init__(self, ctx: SessionContext, screen: BufferScreen, render_chat: Callable[[], None]) -> None:
        self.ctx = ctx
        self.screen = screen
        self._render_chat = render_chat
        self.handlers: Dict[str, Callable[[Frame], bool]] = {
            protocol.MSG_NEW_POST: self._on_new_post,
            protocol.MSG_CHAT_HISTORY: self._on_history,
            protocol.MSG_CHAT_MESSAGE_RECEIVED: self._on_message,
            protocol.MSG_CHAT_USER_LIST: self._on_user_list,
            protocol.MSG_CHAT_USER_JOINED: self._on_user_joined,
            protocol.MSG_CHAT_USER_LEFT: self._on_user_left,
        }

    def dispatch(self, frame: Frame) -> bool:
        """Return ``True`` when the push changed client state."""

        handler = self.handlers.get(frame.get("type", ""))
        if handler is None:
            logger.debug("no handler for push %r", frame.get("type"))
            return False
        applied = handler(frame)
        if not applied:
            logger.debug("push %s not relevant to %s", frame["type"], self.ctx.view.name.value)
        return applied

    # -- boards ----------------------------------------------------------

    def _on_new_post(self, frame: Frame) -> bool:
        view = self.ctx.view
        if view.name != ViewName.BOARD:
            return False
        board_id = frame.get("boardId")
        if board_id is not None and view.state is not None and str(board_id) != str(view.state.board_id):
            return False
        scr.notice(self.screen, "[NEW POST] A new message was posted. Press R to refresh.", scr.STYLE_WARN)
        scr.prompt(self.screen)
        return True

    # -- chat --------------------------------------------------------------

    def _membership_for(self, frame: Frame) -> ChannelMembership | None:
        membership = self.ctx.membership
        if membership is None or frame.get("channel") != membership.channel:
            return None
        return membership

    def _after_chat_change(self) -> None:
        if self.ctx.view.name == ViewName.CHAT:
            self._render_chat()

    def _on_history(self, frame: Frame) -> bool:
        membership = self._membership_for(frame)
        if membership is None:
            return False
        messages = frame.get("messages")
        membership.transcript = list(messages) if isinstance(messages, list) else []
        self._after_chat_change()
        return True

    def _on_message(self, frame: Frame) -> bool:
        membership = self._membership_for(frame)
        if membership is None:
            return False
        membership.transcript.append(
            {
                "sender_name": frame.get("sender_name", "?"),
                "sender_type": frame.get("sender_type", ""),
                "message": frame.get("message", ""),
                "timestamp": frame.get("timestamp"),
            }
        )
        self._after_chat_change()
        return True

    def _on_user_list(self, frame: Frame) -> bool:
        membership = self._membership_for(frame)
        if membership is None:
            return False
        users = frame.get("users")
        membership.users = list(users) if isinstance(users, list) else []
        self._after_chat_change()
        return True

    def _on_user_joined(self, frame: Frame) -> bool:
        membership = self._membership_for(frame)
        if membership is None:
            return False
        membership.transcript.append(_system_line(f"{frame.get('username', 'someone')} joined #{membership.channel}"))
        self._after_chat_change()
        return True

    def _on_user_left(self, frame: Frame) -> bool:
        membership = self._membership_for(frame)
        if membership is None:
            return False
        membership.transcript.append(_system_line(f"{frame.get('username', 'someone')} left #{membership.channel}"))
        self._after_chat_change()
        return True

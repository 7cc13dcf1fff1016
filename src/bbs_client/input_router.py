"""Keystroke classification and per-mode routing.

Everything here runs synchronously inside one keystroke: buffers are only
ever mutated in this module, never inside an awaited continuation.

The ``handler`` passed to :class:`InputRouter` is the controller. It must
provide ``dispatch(binding)``, ``select(number)``, ``submit(pending)``,
``submit_line(text)`` and ``cancel()``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from bbs_client import screen as scr
from bbs_client.screen import BufferScreen
from bbs_client.session import SessionContext
from bbs_client.views import (
    ANY_KEY,
    NUMERIC_MAX_DIGITS,
    REQUIRES_ANONYMOUS,
    REQUIRES_CREDENTIAL,
    TERMINATOR_CANCEL,
    TERMINATOR_DONE,
    TRANSITIONS,
    Binding,
    InputMode,
    PendingSubmission,
    ViewName,
    lookup,
)

logger = logging.getLogger(__name__)

KEY_ENTER = "\n"
KEY_BACKSPACE = "\x7f"


class KeyClass(str, Enum):
    BACKSPACE = "backspace"
    ENTER = "enter"
    PRINTABLE = "printable"
    IGNORED = "ignored"


def classify(key: str) -> KeyClass:
    if key in ("\n", "\r"):
        return KeyClass.ENTER
    if key in ("\x7f", "\x08"):
        return KeyClass.BACKSPACE
    if len(key) == 1 and key.isprintable():
        return KeyClass.PRINTABLE
    return KeyClass.IGNORED


def is_terminator(line: str, terminator: str) -> bool:
    return line.strip().lower() == terminator


def binding_allowed(ctx: SessionContext, binding: Binding) -> bool:
    if binding.requires == REQUIRES_CREDENTIAL:
        return ctx.has_credential()
    if binding.requires == REQUIRES_ANONYMOUS:
        return not ctx.has_credential()
    return True


def show_field_prompt(screen: BufferScreen, pending: PendingSubmission) -> None:
    field = pending.current
    screen.writeln()
    screen.writeln(f"  {field.prompt}", scr.STYLE_INFO)
    if field.multiline:
        screen.writeln(f"  Type {TERMINATOR_DONE} on its own line when finished, {TERMINATOR_CANCEL} to abort.", scr.STYLE_MUTED)
    else:
        screen.writeln(f"  Press Enter when finished, {TERMINATOR_CANCEL} to abort.", scr.STYLE_MUTED)
    screen.writeln()
    scr.prompt(screen)


class InputRouter:
    def __init__(self, ctx: SessionContext, screen: BufferScreen, handler: Any) -> None:
        self.ctx = ctx
        self.screen = screen
        self.handler = handler

    def feed(self, key: str) -> None:
        view = self.ctx.view
        if view.terminal or view.name == ViewName.CONNECTING:
            return
        kind = classify(key)
        if kind == KeyClass.IGNORED:
            return
        if view.mode == InputMode.CAPTURE:
            self._capture(kind, key)
        elif view.mode == InputMode.NUMERIC:
            self._numeric(kind, key)
        else:
            self._command(kind, key)

    # -- command -----------------------------------------------------------

    def _resolve(self, key: str) -> Optional[Binding]:
        binding = lookup(self.ctx.view.name, key)
        if binding is None or not binding_allowed(self.ctx, binding):
            return None
        return binding

    def _command(self, kind: KeyClass, key: str) -> None:
        if kind == KeyClass.PRINTABLE:
            binding = self._resolve(key)
        elif kind == KeyClass.ENTER:
            binding = TRANSITIONS.get(self.ctx.view.name, {}).get(ANY_KEY)
        else:
            binding = None
        if binding is not None:
            self.handler.dispatch(binding)

    # -- numeric accumulate -------------------------------------------------

    def _numeric(self, kind: KeyClass, key: str) -> None:
        view = self.ctx.view
        if kind == KeyClass.BACKSPACE:
            if view.buffer:
                view.buffer = view.buffer[:-1]
                self.screen.erase_char()
            return
        if kind == KeyClass.ENTER:
            if not view.buffer:
                return
            number = int(view.buffer)
            view.buffer = ""
            self.screen.writeln()
            self.handler.select(number)
            return
        if key.isdigit():
            if len(view.buffer) >= NUMERIC_MAX_DIGITS:
                return
            view.buffer += key
            self.screen.write(key)
            return
        binding = self._resolve(key)
        if binding is not None:
            view.buffer = ""
            self.handler.dispatch(binding)

    # -- capture -------------------------------------------------------------

    def _capture(self, kind: KeyClass, key: str) -> None:
        view = self.ctx.view
        if kind == KeyClass.BACKSPACE:
            if view.buffer:
                view.buffer = view.buffer[:-1]
                self.screen.erase_char()
            return
        if kind == KeyClass.PRINTABLE:
            view.buffer += key
            self.screen.write(key)
            return

        line = view.buffer
        view.buffer = ""
        self.screen.writeln()
        if is_terminator(line, TERMINATOR_CANCEL):
            logger.debug("capture cancelled in %s", view.name.value)
            self.handler.cancel()
            return
        if isinstance(view.state, PendingSubmission):
            if not view.state.complete:
                self._pending_line(view.state, line)
            return
        self.handler.submit_line(line)

    def _pending_line(self, pending: PendingSubmission, line: str) -> None:
        field = pending.current
        if field.multiline:
            if not is_terminator(line, TERMINATOR_DONE):
                pending.add_line(line)
                scr.prompt(self.screen)
                return
            value = pending.pending_value()
        else:
            value = line.strip()

        if field.required and not value.strip():
            pending.lines = []
            scr.error_line(self.screen, f"{field.label or field.name} cannot be empty.")
            show_field_prompt(self.screen, pending)
            return

        if pending.finish_field(value):
            self.handler.submit(pending)
        else:
            show_field_prompt(self.screen, pending)

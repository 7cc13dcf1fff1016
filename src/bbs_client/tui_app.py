"""Curses front end: owns the terminal, polls keys and runs the event loop."""

from __future__ import annotations

import asyncio
import curses
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional, Sequence

import aiohttp

from bbs_client import client_store, render
from bbs_client import screen as scr
from bbs_client.api_client import ApiClient
from bbs_client.config import ClientConfig, load_config
from bbs_client.connection import ConnectionManager
from bbs_client.controller import Controller
from bbs_client.input_router import KEY_BACKSPACE, KEY_ENTER
from bbs_client.screen import BufferScreen
from bbs_client.session import SessionContext

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.02
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_STYLE_COLORS = {
    scr.STYLE_INFO: curses.COLOR_CYAN,
    scr.STYLE_ACCENT: curses.COLOR_MAGENTA,
    scr.STYLE_OK: curses.COLOR_GREEN,
    scr.STYLE_WARN: curses.COLOR_YELLOW,
    scr.STYLE_ERROR: curses.COLOR_RED,
}


def configure_logging(path: Path, verbose: bool = False) -> logging.Handler:
    """Send package logs to a rotating file; curses owns stdout and stderr."""

    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    level = logging.DEBUG if verbose else logging.INFO
    handler = RotatingFileHandler(path, maxBytes=2 * 1024 * 1024, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    root = logging.getLogger("bbs_client")
    root.setLevel(level)
    root.addHandler(handler)
    logging.getLogger("aiohttp").addHandler(handler)
    logging.getLogger("aiohttp").setLevel(logging.DEBUG if verbose else logging.WARNING)
    return handler


def normalize_key(key: object) -> Optional[str]:
    """Map a curses key to the router's vocabulary; ``None`` for keys to drop."""

    if key in (curses.KEY_ENTER, 10, 13, "\n", "\r"):
        return KEY_ENTER
    if key in (curses.KEY_BACKSPACE, 127, 8, "\x7f", "\x08"):
        return KEY_BACKSPACE
    if isinstance(key, str) and len(key) == 1 and key.isprintable():
        return key
    return None


def _init_default_colors(stdscr: curses.window) -> Dict[str, int]:
    """Respect the terminal's theme and return an attribute per semantic style."""

    attrs = {style: 0 for style in _STYLE_COLORS}
    attrs[scr.STYLE_MUTED] = curses.A_DIM
    if not curses.has_colors():
        return attrs
    try:
        curses.start_color()
    except curses.error:
        return attrs
    try:
        curses.use_default_colors()
        background = -1
    except curses.error:
        background = curses.COLOR_BLACK
    for pair, (style, color) in enumerate(_STYLE_COLORS.items(), start=1):
        try:
            curses.init_pair(pair, color, background)
        except curses.error:
            continue
        attrs[style] = curses.color_pair(pair)
    return attrs


class CursesScreen(BufferScreen):
    """BufferScreen that repaints its tail onto a curses window when dirty."""

    def __init__(self, stdscr: curses.window, attrs: Dict[str, int]) -> None:
        _, width = stdscr.getmaxyx()
        super().__init__(width=max(40, width - 1))
        self._stdscr = stdscr
        self._attrs = attrs
        self._dirty = True

    def touch(self) -> None:
        self._dirty = True

    def resize(self) -> None:
        _, width = self._stdscr.getmaxyx()
        self.width = max(40, width - 1)
        self._dirty = True

    def paint(self) -> None:
        if not self._dirty:
            return
        self._dirty = False
        max_y, max_x = self._stdscr.getmaxyx()
        self._stdscr.erase()
        visible = self.lines[-max_y:] if max_y > 0 else []
        cursor = (0, 0)
        for y, line in enumerate(visible):
            x = 0
            for text, style in line:
                if x >= max_x - 1:
                    break
                try:
                    self._stdscr.addnstr(y, x, text, max_x - x - 1, self._attrs.get(style, 0))
                except curses.error:
                    pass
                x += len(text)
            cursor = (y, min(x, max_x - 1))
        try:
            self._stdscr.move(*cursor)
        except curses.error:
            pass
        self._stdscr.refresh()


def _read_key(stdscr: curses.window) -> object:
    try:
        return stdscr.get_wch()
    except curses.error:
        return None


async def _pump_keys(stdscr: curses.window, screen: CursesScreen, controller: Controller) -> None:
    while True:
        screen.paint()
        key = _read_key(stdscr)
        if key is None:
            await asyncio.sleep(POLL_INTERVAL_S)
            continue
        if key == curses.KEY_RESIZE:
            screen.resize()
            continue
        normalized = normalize_key(key)
        if normalized is None:
            continue
        if controller.finished:
            return
        controller.feed(normalized)
        await asyncio.sleep(0)


async def run_session(stdscr: curses.window, config: ClientConfig) -> None:
    attrs = _init_default_colors(stdscr)
    stdscr.nodelay(True)
    stdscr.keypad(True)
    screen = CursesScreen(stdscr, attrs)

    record = client_store.load_or_create_session(config.state_path)
    ctx = SessionContext(record, config.state_path)
    logger.info("starting session %s against %s", ctx.session_id, config.base_url)

    async with aiohttp.ClientSession() as http:
        api = ApiClient(config.api_url, http, lambda: ctx.credential)
        controller = Controller(ctx, screen, api, config)
        connection = ConnectionManager(config.ws_url, http, controller, heartbeat_interval=config.heartbeat_interval)
        controller.connection = connection
        render.connecting(screen, config.ws_url)
        channel = asyncio.ensure_future(connection.run(ctx.session_id, ctx.credential))
        try:
            await _pump_keys(stdscr, screen, controller)
        finally:
            await connection.close()
            await asyncio.gather(channel, return_exceptions=True)
            await controller.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> int:
    config, args = load_config(argv)
    configure_logging(config.log_path, args.verbose)

    def _runner(stdscr: curses.window) -> None:
        asyncio.run(run_session(stdscr, config))

    try:
        curses.wrapper(_runner)
    except KeyboardInterrupt:
        logger.info("interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

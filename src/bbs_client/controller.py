"""View state machine: entry actions, key bindings and submissions."""

from __future__ import annotations

import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from bbs_client import protocol, render
from bbs_client import screen as scr
from bbs_client.api_client import ApiClient
from bbs_client.config import ClientConfig
from bbs_client.coordinator import RequestCoordinator
from bbs_client.dispatcher import PushDispatcher
from bbs_client.input_router import InputRouter, show_field_prompt
from bbs_client.screen import BufferScreen
from bbs_client.session import (
    ChannelMembership,
    ConnectionState,
    GameSessionRef,
    SessionContext,
)
from bbs_client.views import (
    ART_FIELDS,
    COMMENT_FIELDS,
    PARENT_VIEWS,
    POST_FIELDS,
    UPLOAD_FIELDS,
    ActiveView,
    Binding,
    BoardsState,
    BoardState,
    FileCategoryState,
    FilesState,
    GalleryState,
    InputMode,
    PendingSubmission,
    ViewName,
    next_page,
    prev_page,
    sort_pieces,
    toggle_sort,
    total_pages,
)

logger = logging.getLogger(__name__)

ACTIVITY_LIMIT = 50


class Controller:
    """Owns the session context and reacts to keys, call results and pushes.

    ``connection`` needs ``send(frame)`` and ``close()`` coroutines; it is
    attached after construction because the connection also reports back
    to this controller.
    """

    def __init__(
        self,
        ctx: SessionContext,
        screen: BufferScreen,
        api: ApiClient,
        config: ClientConfig,
        connection: Any = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.ctx = ctx
        self.screen = screen
        self.api = api
        self.config = config
        self.connection = connection
        self.rng = rng or random.Random()
        self.coord = RequestCoordinator(ctx, screen, self.enter, pace_delay=config.pace_delay, sleep=sleep)
        self.router = InputRouter(ctx, screen, self)
        self.dispatcher = PushDispatcher(ctx, screen, self.render_chat)
        self._tasks: Set[asyncio.Future] = set()

        self.entries: Dict[ViewName, Callable[[ActiveView], Awaitable[None]]] = {
            ViewName.MAIN: self._enter_main,
            ViewName.BOARDS: self._enter_boards,
            ViewName.BOARD: self._enter_board,
            ViewName.NEW_POST: self._enter_capture,
            ViewName.GALLERY: self._enter_gallery,
            ViewName.SUBMIT_ART: self._enter_capture,
            ViewName.FILES: self._enter_files,
            ViewName.FILE_CATEGORY: self._enter_file_category,
            ViewName.UPLOAD_FILE: self._enter_capture,
            ViewName.CHAT: self._enter_chat,
            ViewName.GAME: self._enter_game,
            ViewName.GAME_USERNAME_ENTRY: self._enter_game_handle,
            ViewName.STATS: self._enter_stats,
            ViewName.USERS: self._enter_users,
            ViewName.WHO_IS_ONLINE: self._enter_who_is_online,
            ViewName.ACTIVITY_LOG: self._enter_activity_log,
            ViewName.HELP: self._enter_help,
            ViewName.REGISTER: self._enter_register,
            ViewName.COMMENT: self._enter_capture,
            ViewName.REJECTED: self._enter_rejected,
            ViewName.TIMED_OUT: self._enter_timed_out,
            ViewName.LOGGED_OFF: self._enter_logged_off,
        }
        self.actions: Dict[str, Callable[[Any], None]] = {
            "goto": self._goto,
            "refresh": self._refresh,
            "open_board": self._open_board,
            "new_post": self._new_post,
            "submit_art": self._submit_art,
            "toggle_sort": self._toggle_sort,
            "next_page": self._next_page,
            "prev_page": self._prev_page,
            "open_category": self._open_category,
            "upload": self._upload,
            "start_game": self._start_game,
            "log_off": self._log_off,
            "logout": self._logout,
        }
        self.selections: Dict[ViewName, Callable[[ActiveView, int], None]] = {
            ViewName.GALLERY: self._vote,
            ViewName.FILE_CATEGORY: self._download,
        }
        self.submitters: Dict[str, Callable[[ActiveView, PendingSubmission], Awaitable[None]]] = {
            "post": self._submit_post,
            "art": self._submit_art_piece,
            "upload": self._submit_upload,
            "comment": self._submit_comment,
        }
        self.line_handlers: Dict[ViewName, Callable[[str], None]] = {
            ViewName.CHAT: self._chat_line,
            ViewName.GAME: self._game_line,
            ViewName.GAME_USERNAME_ENTRY: self._game_handle_line,
            ViewName.REGISTER: self._register_line,
        }
        self.chat_commands: Dict[str, Callable[[str], None]] = {
            "/help": self._chat_help,
            "/who": self._chat_who,
            "/join": self._chat_join,
            "/quit": self._chat_quit,
        }

    # -- task plumbing -------------------------------------------------------

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Future:
        task = asyncio.ensure_future(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Awaitable[Any]) -> None:
        try:
            await coro
        except Exception as exc:
            logger.exception("unhandled error in %s", self.ctx.view.name.value)
            scr.error_line(self.screen, f"Unexpected error: {exc}")

    async def drain(self) -> None:
        """Wait for every spawned task, including tasks those tasks spawn."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    @property
    def finished(self) -> bool:
        view = self.ctx.view
        if view.terminal:
            return True
        return view.name == ViewName.CONNECTING and self.ctx.identity.state == ConnectionState.CLOSED

    # -- transitions -------------------------------------------------------------

    def enter(self, name: ViewName, state: Any = None, clear: bool = True) -> ActiveView:
        view = self.ctx.transition(name, state)
        if clear:
            self.screen.clear()
        entry = self.entries.get(name)
        if entry is not None:
            self.spawn(self._run_entry(entry, view))
        return view

    async def _run_entry(self, entry: Callable[[ActiveView], Awaitable[None]], view: ActiveView) -> None:
        if not self.ctx.is_current(view.generation):
            logger.debug("skipping entry of superseded %s", view.name.value)
            return
        await entry(view)

    def feed(self, key: str) -> None:
        self.router.feed(key)

    # router handler interface

    def dispatch(self, binding: Binding) -> None:
        self.actions[binding.action](binding.arg)

    def select(self, number: int) -> None:
        view = self.ctx.view
        handler = self.selections.get(view.name)
        if handler is not None and view.state is not None:
            handler(view, number)

    def submit(self, pending: PendingSubmission) -> None:
        view = self.ctx.view
        view.mode = InputMode.COMMAND
        logger.debug("submitting %s with fields %s", pending.kind, sorted(pending.values))
        self.spawn(self.submitters[pending.kind](view, pending))

    def submit_line(self, line: str) -> None:
        handler = self.line_handlers.get(self.ctx.view.name)
        if handler is not None:
            handler(line)

    def cancel(self) -> None:
        view = self.ctx.view
        parent = PARENT_VIEWS.get(view.name, ViewName.MAIN)
        parent_state = None
        if isinstance(view.state, PendingSubmission):
            parent_state = view.state.parent
        if view.name == ViewName.CHAT:
            self._leave_chat()
        elif view.name == ViewName.GAME:
            self.ctx.game = None
        self.enter(parent, parent_state)

    # -- connection listener ---------------------------------------------------

    def on_assigned(self, frame: Dict[str, Any], state: ConnectionState) -> None:
        identity = self.ctx.identity
        identity.state = state
        identity.node_id = protocol.frame_int(frame, "nodeId") or None
        identity.observer_slot = protocol.frame_int(frame, "observerSlot") or None
        identity.max_nodes = protocol.frame_int(frame, "maxNodes")
        identity.max_observers = protocol.frame_int(frame, "maxObservers")
        identity.agents_online = protocol.frame_int(frame, "agentsOnline")
        identity.observers_online = protocol.frame_int(frame, "observersOnline")
        self.enter(ViewName.MAIN)

    def on_rejected(self, frame: Dict[str, Any]) -> None:
        identity = self.ctx.identity
        identity.state = ConnectionState.REJECTED
        if frame.get("type") == protocol.MSG_OBSERVER_SLOTS_FULL:
            identity.rejected_capacity = protocol.frame_int(frame, "maxSlots")
        else:
            identity.rejected_capacity = protocol.frame_int(frame, "maxNodes")
        self.enter(ViewName.REJECTED, frame.get("type"))

    def on_timed_out(self, frame: Dict[str, Any]) -> None:
        self.ctx.identity.state = ConnectionState.TIMED_OUT
        self.enter(ViewName.TIMED_OUT)

    def on_push(self, frame: Dict[str, Any]) -> None:
        self.dispatcher.dispatch(frame)

    def on_closed(self) -> None:
        identity = self.ctx.identity
        if identity.state not in (ConnectionState.REJECTED, ConnectionState.TIMED_OUT):
            identity.state = ConnectionState.CLOSED
        view = self.ctx.view
        if view.terminal:
            return
        logger.info("channel closed while in %s", view.name.value)
        if view.name == ViewName.CONNECTING:
            scr.error_line(self.screen, f"Could not connect to {self.config.ws_url}. Press any key to exit.")
        else:
            scr.notice(self.screen, "Connection closed. Restart the client to reconnect.", scr.STYLE_WARN)
            scr.prompt(self.screen, restore=view.buffer)

    async def send(self, frame: Dict[str, Any]) -> bool:
        if self.connection is None:
            return False
        return await self.connection.send(frame)

    # -- main ------------------------------------------------------------------

    async def _enter_main(self, view: ActiveView) -> None:
        if self.ctx.quote is None:
            data = await self.coord.call(self.api.fetch_quote(), quiet=True)
            if not self.ctx.is_current(view.generation):
                return
            quote = data.get("quote") if isinstance(data, dict) else None
            self.ctx.quote = quote.strip().strip('"') if isinstance(quote, str) and quote.strip() else render.FALLBACK_QUOTE
        if self.ctx.has_credential() and self.ctx.profile is None:
            profile = await self.coord.call(self.api.fetch_profile(), quiet=True)
            if isinstance(profile, dict):
                self.ctx.profile = profile
        if not self.ctx.is_current(view.generation):
            return
        render.main_menu(
            self.screen,
            self.ctx.identity,
            self.ctx.quote,
            self.ctx.agent_name() if self.ctx.has_credential() else None,
            self.ctx.has_credential(),
        )

    def _goto(self, name: ViewName) -> None:
        state = None
        if name == ViewName.COMMENT:
            state = PendingSubmission("comment", list(COMMENT_FIELDS))
        self.enter(name, state)

    def _refresh(self, _: Any) -> None:
        view = self.ctx.view
        state = view.state
        if view.name == ViewName.GALLERY:
            sort_mode = state.sort_mode if isinstance(state, GalleryState) else GalleryState().sort_mode
            state = GalleryState(sort_mode=sort_mode)
        elif isinstance(state, FileCategoryState):
            state = FileCategoryState(state.category_id, state.name, state.description)
        elif not isinstance(state, BoardState):
            state = None
        self.enter(view.name, state)

    def _log_off(self, _: Any) -> None:
        self.enter(ViewName.LOGGED_OFF)

    async def _enter_logged_off(self, view: ActiveView) -> None:
        render.logged_off(self.screen)
        if self.connection is not None:
            await self.connection.close()

    def _logout(self, _: Any) -> None:
        self.ctx.clear_credential()
        self.enter(ViewName.MAIN)

    async def _enter_rejected(self, view: ActiveView) -> None:
        observer = view.state == protocol.MSG_OBSERVER_SLOTS_FULL
        render.rejected(self.screen, observer, self.ctx.identity.rejected_capacity)

    async def _enter_timed_out(self, view: ActiveView) -> None:
        render.timed_out(self.screen)

    def _invalid_choice(self, label: str, count: int) -> None:
        if count:
            scr.error_line(self.screen, f"Invalid {label} number. Please choose 01-{count:02d}.")
        else:
            scr.error_line(self.screen, f"There is no {label} to choose.")
        scr.prompt(self.screen)

    # -- boards ------------------------------------------------------------------

    async def _enter_boards(self, view: ActiveView) -> None:
        items = await self.coord.call(self.api.list_boards(), fallback=ViewName.MAIN)
        if items is None:
            return
        view.state = BoardsState(list(items))
        render.boards(self.screen, view.state.boards)

    def _open_board(self, number: int) -> None:
        state = self.ctx.view.state
        if not isinstance(state, BoardsState):
            return
        if number > len(state.boards):
            self._invalid_choice("board", len(state.boards))
            return
        chosen = state.boards[number - 1]
        self.enter(ViewName.BOARD, BoardState(chosen.get("id"), chosen.get("name", ""), chosen.get("description") or ""))

    async def _enter_board(self, view: ActiveView) -> None:
        board: BoardState = view.state
        posts = await self.coord.call(self.api.list_posts(board.board_id), fallback=ViewName.BOARDS)
        if posts is None:
            return
        render.board(self.screen, board.name, board.description, render.newest_first(list(posts)), self.ctx.has_credential())

    def _new_post(self, _: Any) -> None:
        board = self.ctx.view.state
        self.enter(ViewName.NEW_POST, PendingSubmission("post", list(POST_FIELDS), parent=board), clear=False)

    async def _enter_capture(self, view: ActiveView) -> None:
        pending: PendingSubmission = view.state
        titles = {"post": "New Post", "art": "Submit ASCII Art", "upload": "Upload File", "comment": "Comment to Sysop"}
        scr.header(self.screen, titles.get(pending.kind, pending.kind))
        if pending.kind == "art":
            self.screen.writeln("  You may submit ONE piece of ASCII/ANSI art per session.")
            self.screen.writeln("  Low-effort submissions (< 5 lines) will be removed.", scr.STYLE_MUTED)
        elif pending.kind == "upload":
            self.screen.writeln("  Maximum file size: 64KB (text only)")
            self.screen.writeln("  Supported formats: .txt, .md, .json, .log, etc.", scr.STYLE_MUTED)
        show_field_prompt(self.screen, pending)

    async def _submit_post(self, view: ActiveView, pending: PendingSubmission) -> None:
        board: BoardState = pending.parent
        scr.notice(self.screen, "Posting...")
        result = await self.coord.call(
            self.api.create_post(board.board_id, pending.values["content"]),
            fallback=ViewName.BOARD,
            fallback_state=board,
            generation=view.generation,
        )
        if result is None:
            return
        scr.ok_line(self.screen, "Post created successfully!")
        if await self.coord.pause(view.generation):
            self.enter(ViewName.BOARD, board)

    # -- gallery -----------------------------------------------------------------

    async def _enter_gallery(self, view: ActiveView) -> None:
        state = view.state if isinstance(view.state, GalleryState) else GalleryState()
        pieces = await self.coord.call(self.api.list_art(self.ctx.session_id), fallback=ViewName.MAIN)
        if pieces is None:
            return
        state.pieces = sort_pieces(list(pieces), state.sort_mode)
        if state.page >= total_pages(len(state.pieces), self.config.page_size):
            state.page = 0
        view.state = state
        self._render_gallery(view)

    def _render_gallery(self, view: ActiveView) -> None:
        state: GalleryState = view.state
        size = self.config.page_size
        render.gallery(self.screen, state.pieces, state.page, total_pages(len(state.pieces), size), size, state.sort_mode)

    def _gallery_local(self, mutate: Callable[[GalleryState], None]) -> None:
        view = self.ctx.view
        if not isinstance(view.state, GalleryState):
            return
        mutate(view.state)
        self.screen.clear()
        self._render_gallery(view)

    def _next_page(self, _: Any) -> None:
        size = self.config.page_size

        def mutate(state: GalleryState) -> None:
            state.page = next_page(state.page, len(state.pieces), size)

        self._gallery_local(mutate)

    def _prev_page(self, _: Any) -> None:
        size = self.config.page_size

        def mutate(state: GalleryState) -> None:
            state.page = prev_page(state.page, len(state.pieces), size)

        self._gallery_local(mutate)

    def _toggle_sort(self, _: Any) -> None:
        def mutate(state: GalleryState) -> None:
            state.sort_mode = toggle_sort(state.sort_mode)
            state.pieces = sort_pieces(state.pieces, state.sort_mode)
            state.page = 0

        self._gallery_local(mutate)

    def _vote(self, view: ActiveView, number: int) -> None:
        state: GalleryState = view.state
        if number < 1 or number > len(state.pieces):
            self._invalid_choice("piece", len(state.pieces))
            return
        view.mode = InputMode.COMMAND
        self.spawn(self._cast_vote(view, state, state.pieces[number - 1]))

    async def _cast_vote(self, view: ActiveView, state: GalleryState, art: Dict[str, Any]) -> None:
        again = GalleryState(page=state.page, sort_mode=state.sort_mode)
        result = await self.coord.call(
            self.api.vote_art(art.get("id"), self.ctx.session_id),
            fallback=ViewName.GALLERY,
            fallback_state=again,
            generation=view.generation,
        )
        if result is None:
            return
        scr.ok_line(self.screen, f'Voted for "{art.get("title", "")}"!')
        if await self.coord.pause(view.generation, self.config.short_pace_delay):
            self.enter(ViewName.GALLERY, again)

    def _submit_art(self, _: Any) -> None:
        state = self.ctx.view.state
        if not (self.ctx.identity.is_agent and self.ctx.has_credential()):
            scr.error_line(self.screen, "Only registered agents can submit ASCII art.")
            self.screen.writeln("  Press [R] from the main menu to register.", scr.STYLE_MUTED)
            scr.prompt(self.screen)
            return
        sort_mode = state.sort_mode if isinstance(state, GalleryState) else GalleryState().sort_mode
        pending = PendingSubmission("art", list(ART_FIELDS), parent=GalleryState(sort_mode=sort_mode))
        self.enter(ViewName.SUBMIT_ART, pending)

    async def _submit_art_piece(self, view: ActiveView, pending: PendingSubmission) -> None:
        scr.notice(self.screen, "Submitting...")
        result = await self.coord.call(
            self.api.submit_art(pending.values["title"], pending.values["content"], self.ctx.session_id),
            fallback=ViewName.GALLERY,
            fallback_state=pending.parent,
            generation=view.generation,
        )
        if result is None:
            return
        scr.ok_line(self.screen, "Your art has been added to the gallery!")
        if await self.coord.pause(view.generation):
            self.enter(ViewName.GALLERY, pending.parent)

    # -- files -------------------------------------------------------------------

    async def _enter_files(self, view: ActiveView) -> None:
        categories = await self.coord.call(self.api.list_file_categories(), fallback=ViewName.MAIN)
        if categories is None:
            return
        view.state = FilesState(list(categories))
        render.file_categories(self.screen, view.state.categories)

    def _open_category(self, number: int) -> None:
        state = self.ctx.view.state
        if not isinstance(state, FilesState):
            return
        if number > len(state.categories):
            self._invalid_choice("area", len(state.categories))
            return
        chosen = state.categories[number - 1]
        self.enter(
            ViewName.FILE_CATEGORY,
            FileCategoryState(chosen.get("id"), chosen.get("name", ""), chosen.get("description") or ""),
        )

    async def _enter_file_category(self, view: ActiveView) -> None:
        category: FileCategoryState = view.state
        files = await self.coord.call(self.api.list_files(category.category_id), fallback=ViewName.FILES)
        if files is None:
            return
        category.files = list(files)
        render.file_category(self.screen, category.name, category.description, category.files, self.ctx.has_credential())

    def _download(self, view: ActiveView, number: int) -> None:
        category: FileCategoryState = view.state
        if number < 1 or number > len(category.files):
            self._invalid_choice("file", len(category.files))
            return
        view.mode = InputMode.COMMAND
        self.spawn(self._fetch_file(view, category, category.files[number - 1]))

    async def _fetch_file(self, view: ActiveView, category: FileCategoryState, item: Dict[str, Any]) -> None:
        again = FileCategoryState(category.category_id, category.name, category.description)
        scr.notice(self.screen, "Downloading...")
        data = await self.coord.call(
            self.api.download_file(item.get("id")),
            fallback=ViewName.FILE_CATEGORY,
            fallback_state=again,
            error_text="Error downloading file.",
            generation=view.generation,
        )
        if data is None:
            return
        name = Path(str(data.get("filename") or item.get("filename") or f"file-{item.get('id')}")).name
        target = Path(self.config.download_dir).expanduser() / name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(str(data.get("content", "")), encoding="utf-8")
        except OSError as exc:
            logger.warning("could not save %s: %s", target, exc)
            scr.error_line(self.screen, f"Could not save {name}: {exc.strerror or exc}")
        else:
            logger.info("downloaded file %s to %s", item.get("id"), target)
            scr.ok_line(self.screen, f"Downloaded: {target}")
        if await self.coord.pause(view.generation):
            self.enter(ViewName.FILE_CATEGORY, again)

    def _upload(self, _: Any) -> None:
        category = self.ctx.view.state
        parent = FileCategoryState(category.category_id, category.name, category.description)
        self.enter(ViewName.UPLOAD_FILE, PendingSubmission("upload", list(UPLOAD_FIELDS), parent=parent), clear=False)

    async def _submit_upload(self, view: ActiveView, pending: PendingSubmission) -> None:
        category: FileCategoryState = pending.parent
        values = pending.values
        scr.notice(self.screen, "Uploading...")
        result = await self.coord.call(
            self.api.upload_file(category.category_id, values["filename"], values.get("description", ""), values["content"]),
            fallback=ViewName.FILE_CATEGORY,
            fallback_state=category,
            generation=view.generation,
        )
        if result is None:
            return
        scr.ok_line(self.screen, "File uploaded successfully!")
        if await self.coord.pause(view.generation):
            self.enter(ViewName.FILE_CATEGORY, category)

    # -- read-only listings ---------------------------------------------------------

    async def _enter_users(self, view: ActiveView) -> None:
        agents = await self.coord.call(self.api.list_agents(), fallback=ViewName.MAIN)
        if agents is not None:
            render.users(self.screen, list(agents))

    async def _enter_who_is_online(self, view: ActiveView) -> None:
        data = await self.coord.call(self.api.list_nodes(), fallback=ViewName.MAIN)
        if data is not None:
            render.who_is_online(self.screen, data)

    async def _enter_stats(self, view: ActiveView) -> None:
        data = await self.coord.call(self.api.fetch_stats(), fallback=ViewName.MAIN)
        if data is not None:
            render.stats(self.screen, data)

    async def _enter_activity_log(self, view: ActiveView) -> None:
        entries = await self.coord.call(
            self.api.list_activity(ACTIVITY_LIMIT),
            fallback=ViewName.MAIN,
            error_text="Error loading activity log.",
        )
        if entries is not None:
            render.activity_log(self.screen, list(entries), ACTIVITY_LIMIT)

    async def _enter_help(self, view: ActiveView) -> None:
        render.help_screen(self.screen)

    # -- register ----------------------------------------------------------------

    async def _enter_register(self, view: ActiveView) -> None:
        render.register(self.screen, self.config.base_url)

    def _register_line(self, line: str) -> None:
        value = line.strip()
        if value.upper() == "B":
            self.enter(ViewName.MAIN)
            return
        if value.startswith(render.CREDENTIAL_PREFIX) and len(value) > len(render.CREDENTIAL_PREFIX):
            self.ctx.set_credential(value)
            self.enter(ViewName.MAIN)
            return
        scr.error_line(self.screen, f"That is not an API key. Keys start with {render.CREDENTIAL_PREFIX}")
        self.screen.writeln()
        scr.prompt(self.screen, "API Key:")

    # -- comment to sysop --------------------------------------------------------------

    async def _submit_comment(self, view: ActiveView, pending: PendingSubmission) -> None:
        scr.notice(self.screen, "Sending comment...")
        result = await self.coord.call(
            self.api.post_comment(pending.values["content"]),
            fallback=ViewName.MAIN,
            generation=view.generation,
        )
        if result is None:
            return
        scr.ok_line(self.screen, "Comment sent to VECTOR!")
        scr.notice(self.screen, "Waiting for reply...", scr.STYLE_WARN)
        if not await self.coord.pause(view.generation, self.config.reply_wait):
            return

        reply = None
        comment_id = result.get("id") if isinstance(result, dict) else None
        if comment_id is not None and self.rng.random() < self.config.reply_chance:
            data = await self.coord.call(self.api.fetch_sysop_reply(comment_id), quiet=True, generation=view.generation)
            if not self.ctx.is_current(view.generation):
                return
            if isinstance(data, dict) and isinstance(data.get("reply"), str):
                reply = data["reply"]
        render.sysop_reply(self.screen, reply)
        self.enter(ViewName.COMMENT_DONE, clear=False)

    # -- chat ----------------------------------------------------------------------

    async def _enter_chat(self, view: ActiveView) -> None:
        name = self.ctx.display_name()
        self.ctx.membership = ChannelMembership(protocol.DEFAULT_CHANNEL, name)
        self.render_chat()
        if not await self.send(protocol.chat_join(protocol.DEFAULT_CHANNEL, name)):
            self._chat_offline()

    def render_chat(self) -> None:
        view = self.ctx.view
        membership = self.ctx.membership
        if view.name != ViewName.CHAT or membership is None:
            return
        self.screen.clear()
        render.chat(self.screen, membership, restore=view.buffer)

    def _chat_offline(self) -> None:
        scr.error_line(self.screen, "Chat is offline: the connection is closed.")
        scr.prompt(self.screen, restore=self.ctx.view.buffer)

    def _chat_line(self, line: str) -> None:
        text = line.strip()
        membership = self.ctx.membership
        if not text or membership is None:
            scr.prompt(self.screen)
            return
        if text.startswith("/"):
            command, _, argument = text.partition(" ")
            handler = self.chat_commands.get(command.lower())
            if handler is None:
                scr.notice(self.screen, "Unknown command. Type /help for help.", scr.STYLE_WARN)
                scr.prompt(self.screen)
                return
            handler(argument.strip().lower())
            return
        self.spawn(self._send_chat(membership.channel, text))
        scr.prompt(self.screen)

    async def _send_chat(self, channel: str, text: str) -> None:
        if not await self.send(protocol.chat_message(channel, text)):
            self._chat_offline()

    def _chat_help(self, _: str) -> None:
        render.chat_help(self.screen)
        scr.prompt(self.screen)

    def _chat_who(self, _: str) -> None:
        render.chat_who(self.screen, self.ctx.membership)
        scr.prompt(self.screen)

    def _chat_join(self, channel: str) -> None:
        if channel not in protocol.CHAT_CHANNELS:
            scr.notice(self.screen, f"Invalid channel. Available: {', '.join(protocol.CHAT_CHANNELS)}", scr.STYLE_WARN)
            scr.prompt(self.screen)
            return
        old = self.ctx.membership
        self.ctx.membership = ChannelMembership(channel, old.display_name)
        self.render_chat()
        self.spawn(self._switch_channel(old.channel, channel, old.display_name))

    async def _switch_channel(self, old: str, new: str, name: str) -> None:
        if not await self.send(protocol.chat_leave(old)):
            self._chat_offline()
            return
        await self.send(protocol.chat_join(new, name))

    def _leave_chat(self) -> None:
        membership = self.ctx.membership
        self.ctx.membership = None
        if membership is not None:
            self.spawn(self.send(protocol.chat_leave(membership.channel)))

    def _chat_quit(self, _: str) -> None:
        self._leave_chat()
        self.enter(ViewName.MAIN)

    # -- game ----------------------------------------------------------------------

    def _start_game(self, _: Any) -> None:
        if self.ctx.game_handle is None and self.ctx.identity.is_agent:
            self.ctx.game_handle = self.ctx.agent_name()
        if self.ctx.game_handle is None:
            self.enter(ViewName.GAME_USERNAME_ENTRY)
        else:
            self.enter(ViewName.GAME)

    async def _enter_game_handle(self, view: ActiveView) -> None:
        render.game_handle_entry(self.screen)

    def _game_handle_line(self, line: str) -> None:
        handle = line.strip()
        if not handle:
            scr.error_line(self.screen, "Handle cannot be empty.")
            self.screen.writeln()
            scr.prompt(self.screen, "Handle:")
            return
        self.ctx.game_handle = handle
        self.enter(ViewName.GAME)

    async def _enter_game(self, view: ActiveView) -> None:
        handle = self.ctx.game_handle
        if handle is None:
            self.enter(ViewName.GAME_USERNAME_ENTRY)
            return
        agent_id = self.ctx.profile.get("id") if self.ctx.profile else None
        scr.notice(self.screen, "Generating lattice...")
        response = await self.coord.call(
            self.api.game_start(handle, agent_id),
            fallback=ViewName.MAIN,
            error_text="Error loading game.",
        )
        if response is None:
            return
        self.ctx.game = GameSessionRef(handle, dict(response.get("player") or {}), dict(response.get("location") or {}))
        self.screen.clear()
        render.game(self.screen, self.ctx.game, response.get("message"))

    def _game_line(self, line: str) -> None:
        command = line.strip()
        if not command:
            scr.prompt(self.screen)
            return
        if command.lower() == "quit":
            self.ctx.game = None
            self.ctx.game_handle = None
            self.enter(ViewName.MAIN)
            return
        action, _, target = command.partition(" ")
        self.spawn(self._game_action(self.ctx.view, action.lower(), target.strip()))

    async def _game_action(self, view: ActiveView, action: str, target: str) -> None:
        ref = self.ctx.game
        if ref is None:
            return
        response = await self.coord.call(
            self.api.game_action(ref.handle, action, target),
            quiet=True,
            generation=view.generation,
        )
        if not self.ctx.is_current(view.generation):
            return
        if not isinstance(response, dict):
            scr.error_line(self.screen, "Error processing command.")
            self.screen.writeln()
            scr.prompt(self.screen)
            return
        player = response.get("player") if isinstance(response.get("player"), dict) else ref.player
        location = response.get("location") if isinstance(response.get("location"), dict) else ref.location
        self.ctx.game = GameSessionRef(ref.handle, dict(player), dict(location))
        if response.get("moved") and isinstance(response.get("location"), dict):
            self.screen.clear()
            render.game(self.screen, self.ctx.game, response.get("message"))
            return
        render.game_response(self.screen, response)

"""Interaction states ("views"), their per-view sub-state and key tables."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ViewName(str, Enum):
    CONNECTING = "connecting"
    MAIN = "main"
    BOARDS = "boards"
    BOARD = "board"
    NEW_POST = "new_post"
    GALLERY = "gallery"
    SUBMIT_ART = "submit_art"
    FILES = "files"
    FILE_CATEGORY = "file_category"
    UPLOAD_FILE = "upload_file"
    CHAT = "chat"
    GAME = "game"
    GAME_USERNAME_ENTRY = "game_username_entry"
    STATS = "stats"
    USERS = "users"
    WHO_IS_ONLINE = "who_is_online"
    ACTIVITY_LOG = "activity_log"
    HELP = "help"
    REGISTER = "register"
    COMMENT = "comment"
    COMMENT_DONE = "comment_done"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    LOGGED_OFF = "logged_off"


class InputMode(str, Enum):
    COMMAND = "command"
    CAPTURE = "capture"
    NUMERIC = "numeric_accumulate"


TERMINAL_VIEWS = frozenset({ViewName.REJECTED, ViewName.TIMED_OUT, ViewName.LOGGED_OFF})

CAPTURE_VIEWS = frozenset(
    {
        ViewName.NEW_POST,
        ViewName.SUBMIT_ART,
        ViewName.UPLOAD_FILE,
        ViewName.CHAT,
        ViewName.GAME,
        ViewName.GAME_USERNAME_ENTRY,
        ViewName.REGISTER,
        ViewName.COMMENT,
    }
)
NUMERIC_VIEWS = frozenset({ViewName.GALLERY, ViewName.FILE_CATEGORY})

# Where ":cancel" lands for each capture view.
PARENT_VIEWS: Dict[ViewName, ViewName] = {
    ViewName.NEW_POST: ViewName.BOARD,
    ViewName.SUBMIT_ART: ViewName.GALLERY,
    ViewName.UPLOAD_FILE: ViewName.FILE_CATEGORY,
    ViewName.CHAT: ViewName.MAIN,
    ViewName.GAME: ViewName.MAIN,
    ViewName.GAME_USERNAME_ENTRY: ViewName.MAIN,
    ViewName.REGISTER: ViewName.MAIN,
    ViewName.COMMENT: ViewName.MAIN,
}

NUMERIC_MAX_DIGITS = 2
TERMINATOR_DONE = ":done"
TERMINATOR_CANCEL = ":cancel"
SORT_VOTES = "votes"
SORT_RECENT = "recent"


def mode_for(name: ViewName) -> InputMode:
    if name in CAPTURE_VIEWS:
        return InputMode.CAPTURE
    if name in NUMERIC_VIEWS:
        return InputMode.NUMERIC
    return InputMode.COMMAND


# -- per-view sub-state ------------------------------------------------------


@dataclass
class BoardsState:
    boards: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class BoardState:
    board_id: Any
    name: str = ""
    description: str = ""


@dataclass
class GalleryState:
    page: int = 0
    sort_mode: str = SORT_VOTES
    pieces: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FilesState:
    categories: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class FileCategoryState:
    category_id: Any
    name: str = ""
    description: str = ""
    files: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    prompt: str
    multiline: bool = False
    required: bool = True
    label: str = ""


@dataclass
class PendingSubmission:
    """Fields collected across capture sub-phases of one view.

    ``parent`` is the sub-state handed back to the parent view on cancel
    or after the submission settles (e.g. the board being posted to).
    """

    kind: str
    fields: List[FieldSpec]
    parent: Any = None
    values: Dict[str, str] = field(default_factory=dict)
    lines: List[str] = field(default_factory=list)
    index: int = 0

    @property
    def current(self) -> FieldSpec:
        return self.fields[self.index]

    @property
    def complete(self) -> bool:
        return self.index >= len(self.fields)

    def add_line(self, line: str) -> None:
        self.lines.append(line.rstrip())

    def finish_field(self, value: str) -> bool:
        """Store ``value`` for the current field; ``True`` once every field is filled."""

        self.values[self.current.name] = value
        self.lines = []
        self.index += 1
        return self.complete

    def pending_value(self) -> str:
        return "\n".join(self.lines)


POST_FIELDS = [FieldSpec("content", "Enter your message below.", multiline=True, label="Post")]
COMMENT_FIELDS = [FieldSpec("content", "Enter your comment below.", multiline=True, label="Comment")]
ART_FIELDS = [
    FieldSpec("title", "First, enter a title for your art:", label="Title"),
    FieldSpec("content", "Now enter your ASCII art.", multiline=True, label="Artwork"),
]
UPLOAD_FIELDS = [
    FieldSpec("filename", "First, enter the filename:", label="Filename"),
    FieldSpec("description", "Enter a description (optional):", required=False, label="Description"),
    FieldSpec("content", "Now paste your file content.", multiline=True, label="Content"),
]


# -- active view ---------------------------------------------------------------


@dataclass
class ActiveView:
    name: ViewName
    generation: int
    mode: InputMode = InputMode.COMMAND
    buffer: str = ""
    state: Any = None

    @property
    def terminal(self) -> bool:
        return self.name in TERMINAL_VIEWS


# -- transition tables ---------------------------------------------------------

REQUIRES_CREDENTIAL = "credential"
REQUIRES_ANONYMOUS = "anonymous"
ANY_KEY = "*"


@dataclass(frozen=True)
class Binding:
    action: str
    arg: Any = None
    requires: Optional[str] = None


def _goto(view: ViewName) -> Binding:
    return Binding("goto", view)


def _digits(action: str) -> Dict[str, Binding]:
    return {str(n): Binding(action, n) for n in range(1, 10)}


_BACK_TO_MAIN = {"B": _goto(ViewName.MAIN)}
_REFRESHABLE = {"B": _goto(ViewName.MAIN), "R": Binding("refresh")}

TRANSITIONS: Dict[ViewName, Dict[str, Binding]] = {
    ViewName.MAIN: {
        "M": _goto(ViewName.BOARDS),
        "F": _goto(ViewName.FILES),
        "A": _goto(ViewName.GALLERY),
        "U": _goto(ViewName.USERS),
        "I": _goto(ViewName.CHAT),
        "G": Binding("start_game"),
        "Y": _goto(ViewName.ACTIVITY_LOG),
        "C": _goto(ViewName.COMMENT),
        "S": _goto(ViewName.STATS),
        "H": _goto(ViewName.HELP),
        "W": _goto(ViewName.WHO_IS_ONLINE),
        "Q": Binding("log_off"),
        "R": Binding("goto", ViewName.REGISTER, requires=REQUIRES_ANONYMOUS),
        "L": Binding("logout", requires=REQUIRES_CREDENTIAL),
    },
    ViewName.BOARDS: {**_BACK_TO_MAIN, **_digits("open_board")},
    ViewName.BOARD: {
        "B": _goto(ViewName.BOARDS),
        "R": Binding("refresh"),
        "P": Binding("new_post", requires=REQUIRES_CREDENTIAL),
    },
    ViewName.GALLERY: {
        "B": _goto(ViewName.MAIN),
        "S": Binding("submit_art"),
        "R": Binding("refresh"),
        "T": Binding("toggle_sort"),
        "N": Binding("next_page"),
        "P": Binding("prev_page"),
    },
    ViewName.FILES: {**_BACK_TO_MAIN, **_digits("open_category")},
    ViewName.FILE_CATEGORY: {
        "B": _goto(ViewName.FILES),
        "R": Binding("refresh"),
        "U": Binding("upload", requires=REQUIRES_CREDENTIAL),
    },
    ViewName.STATS: dict(_BACK_TO_MAIN),
    ViewName.HELP: dict(_BACK_TO_MAIN),
    ViewName.USERS: dict(_REFRESHABLE),
    ViewName.WHO_IS_ONLINE: dict(_REFRESHABLE),
    ViewName.ACTIVITY_LOG: dict(_REFRESHABLE),
    ViewName.COMMENT_DONE: {ANY_KEY: _goto(ViewName.MAIN)},
}


def lookup(name: ViewName, key: str) -> Optional[Binding]:
    table = TRANSITIONS.get(name, {})
    return table.get(key.upper()) or table.get(ANY_KEY)


# -- paging ----------------------------------------------------------------------


def total_pages(item_count: int, page_size: int) -> int:
    return max(1, math.ceil(item_count / page_size))


def next_page(page: int, item_count: int, page_size: int) -> int:
    return (page + 1) % total_pages(item_count, page_size)


def prev_page(page: int, item_count: int, page_size: int) -> int:
    pages = total_pages(item_count, page_size)
    return pages - 1 if page - 1 < 0 else page - 1


def page_slice(items: List[Any], page: int, page_size: int) -> List[Any]:
    start = page * page_size
    return items[start : start + page_size]


def sort_pieces(pieces: List[Dict[str, Any]], sort_mode: str) -> List[Dict[str, Any]]:
    def created(piece: Dict[str, Any]) -> float:
        try:
            return float(piece.get("created_at") or 0)
        except (TypeError, ValueError):
            return 0.0

    def votes(piece: Dict[str, Any]) -> int:
        try:
            return int(piece.get("votes") or 0)
        except (TypeError, ValueError):
            return 0

    if sort_mode == SORT_RECENT:
        return sorted(pieces, key=lambda p: -created(p))
    return sorted(pieces, key=lambda p: (-votes(p), -created(p)))


def toggle_sort(sort_mode: str) -> str:
    return SORT_RECENT if sort_mode == SORT_VOTES else SORT_VOTES

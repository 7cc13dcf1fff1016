"""Client configuration: defaults, settings file, command-line flags."""

from __future__ import annotations

import argparse
import json
import logging
import urllib.parse
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from bbs_client import client_store

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = client_store.BASE_DIR / "settings.json"
DEFAULT_LOG_FILE = client_store.BASE_DIR / "client.log"
DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    state_path: Path = client_store.STATE_PATH
    log_path: Path = DEFAULT_LOG_FILE
    download_dir: Path = field(default_factory=Path.cwd)
    heartbeat_interval: float = 30.0
    pace_delay: float = 1.5
    short_pace_delay: float = 1.0
    reply_wait: float = 3.0
    reply_chance: float = 0.5
    page_size: int = 3

    @property
    def api_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/api"

    @property
    def ws_url(self) -> str:
        return derive_ws_url(self.base_url)


_PATH_FIELDS = {"state_path", "log_path", "download_dir"}
_FLOAT_FIELDS = {"heartbeat_interval", "pace_delay", "short_pace_delay", "reply_wait", "reply_chance"}


def derive_ws_url(base_url: str) -> str:
    parts = urllib.parse.urlsplit(base_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urllib.parse.urlunsplit((scheme, parts.netloc, "/", "", ""))


def load_settings(path: Path | str = DEFAULT_SETTINGS_FILE) -> Dict[str, Any]:
    """Load persisted client settings from disk if present."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            return {}
        return data
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        return {}


def _coerce(name: str, value: Any) -> Any:
    if name in _PATH_FIELDS:
        return Path(str(value)).expanduser()
    if name in _FLOAT_FIELDS:
        return float(value)
    if name == "page_size":
        return max(1, int(value))
    return str(value)


def apply_overrides(config: ClientConfig, overrides: Dict[str, Any]) -> ClientConfig:
    known = {f.name for f in fields(ClientConfig)}
    changes: Dict[str, Any] = {}
    for name, value in overrides.items():
        if name not in known or value is None:
            continue
        try:
            changes[name] = _coerce(name, value)
        except (TypeError, ValueError):
            logger.warning("ignoring invalid setting %s=%r", name, value)
    return replace(config, **changes)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bbs-client", description="Terminal client for the BBS service")
    parser.add_argument("--base-url", help="service root, e.g. http://localhost:3000")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS_FILE), help="JSON settings file")
    parser.add_argument("--state-file", dest="state_path", help="where the session id and credential are kept")
    parser.add_argument("--log-file", dest="log_path", help="log destination")
    parser.add_argument("--download-dir", dest="download_dir", help="directory for downloaded files")
    parser.add_argument("--pace-delay", dest="pace_delay", type=float, help="seconds to hold transitional messages")
    parser.add_argument("--verbose", action="store_true", help="log at DEBUG level")
    return parser


def load_config(argv: Optional[Sequence[str]] = None) -> tuple[ClientConfig, argparse.Namespace]:
    args = build_parser().parse_args(argv)
    config = apply_overrides(ClientConfig(), load_settings(args.settings))
    flags = {
        "base_url": args.base_url,
        "state_path": args.state_path,
        "log_path": args.log_path,
        "download_dir": args.download_dir,
        "pace_delay": args.pace_delay,
    }
    return apply_overrides(config, flags), args

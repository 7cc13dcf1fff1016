"""Persist the browser-style session id and stored credential for the client."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

BASE_DIR = Path.home() / ".bbs_client"
STATE_PATH = BASE_DIR / "state.json"


@dataclass
class SessionRecord:
    session_id: str
    credential: Optional[str] = None


def _atomic_write_json(path: Path, payload: Dict[str, object]) -> None:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    content = json.dumps(payload, indent=2, sort_keys=True)

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


def _read_state(path: Path) -> Dict[str, object]:
    try:
        data = json.loads(path.expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def _write_record(record: SessionRecord, path: Path) -> None:
    payload: Dict[str, object] = {"session_id": record.session_id}
    if record.credential:
        payload["credential"] = record.credential
    _atomic_write_json(path, payload)


def load_session(path: Path = STATE_PATH) -> Optional[SessionRecord]:
    data = _read_state(path)
    session_id = data.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        return None
    credential = data.get("credential")
    if not isinstance(credential, str) or not credential:
        credential = None
    return SessionRecord(session_id=session_id, credential=credential)


def load_or_create_session(path: Path = STATE_PATH) -> SessionRecord:
    record = load_session(path)
    if record is not None:
        return record
    record = SessionRecord(session_id=str(uuid.uuid4()))
    _write_record(record, path)
    return record


def save_credential(record: SessionRecord, credential: str, path: Path = STATE_PATH) -> None:
    record.credential = credential
    _write_record(record, path)


def clear_credential(record: SessionRecord, path: Path = STATE_PATH) -> None:
    record.credential = None
    _write_record(record, path)

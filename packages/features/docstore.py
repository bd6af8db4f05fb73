from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[2]

# One writer at a time for every read-modify-write cycle in this process.
_STORE_LOCK = threading.RLock()


def data_dir() -> Path:
    raw = (os.getenv("PORTAL_DATA_DIR") or "").strip()
    return Path(raw) if raw else ROOT_DIR / "data"


def _path(name: str) -> Path:
    return data_dir() / f"{name}.json"


def _ensure_file(path: Path, default: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.write_text(default, encoding="utf-8")


def load_collection(name: str) -> List[Dict[str, Any]]:
    path = _path(name)
    try:
        _ensure_file(path, "[]")
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw) if raw.strip() else []
        return [x for x in data if isinstance(x, dict)] if isinstance(data, list) else []
    except (OSError, ValueError):
        logger.warning("Collection %s is unreadable, treating as empty", name)
        return []


def save_collection(name: str, items: List[Dict[str, Any]]) -> None:
    path = _path(name)
    _ensure_file(path, "[]")
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def load_document(name: str) -> Optional[Dict[str, Any]]:
    path = _path(name)
    try:
        if not path.exists():
            return None
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw) if raw.strip() else None
        return data if isinstance(data, dict) else None
    except (OSError, ValueError):
        logger.warning("Document %s is unreadable, treating as missing", name)
        return None


def save_document(name: str, doc: Dict[str, Any]) -> None:
    path = _path(name)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".json.tmp")
    tmp.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(path)


def delete_document(name: str) -> None:
    path = _path(name)
    if path.exists():
        path.unlink()


@contextmanager
def locked() -> Iterator[None]:
    with _STORE_LOCK:
        yield


def find_one(items: List[Dict[str, Any]], **match: Any) -> Optional[Dict[str, Any]]:
    for it in items:
        if all(it.get(k) == v for k, v in match.items()):
            return it
    return None


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


def parse_iso(dt: str) -> Optional[datetime]:
    try:
        dt = (dt or "").strip()
        if not dt:
            return None
        if dt.endswith("Z"):
            dt = dt[:-1]
        return datetime.fromisoformat(dt)
    except (TypeError, ValueError):
        return None


def to_number(value: Any, default: float = 0.0) -> float:
    try:
        if value is None or value == "":
            return default
        return float(value)
    except (TypeError, ValueError):
        return default

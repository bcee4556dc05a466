"""Persistence for validated export payloads.

Payloads are stored as JSON files under ``DATA_DIR`` with a small index
keyed by export id.  Only payloads that passed validation reach this module.
"""

from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


DATA_ROOT = Path(os.getenv("DATA_DIR", "data")).resolve()
EXPORTS_DIR = DATA_ROOT / "exports"
EXPORT_INDEX_PATH = DATA_ROOT / "exports_index.json"

_LOCK = threading.Lock()


def _ensure_dirs() -> None:
    EXPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def save_export(export_id: str, payload: Dict[str, Any], metadata: Dict[str, Any]) -> None:
    """Persist the payload and its index metadata."""

    _ensure_dirs()
    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(EXPORT_INDEX_PATH, {})
        index[export_id] = metadata
        _write_json(EXPORT_INDEX_PATH, index)

    _write_json(EXPORTS_DIR / f"{export_id}.json", payload)


def load_export(export_id: str) -> Optional[Dict[str, Any]]:
    path = EXPORTS_DIR / f"{export_id}.json"
    return _read_json(path, None)


def delete_export(export_id: str) -> bool:
    removed = False
    with _LOCK:
        index: Dict[str, Dict[str, Any]] = _read_json(EXPORT_INDEX_PATH, {})
        if export_id in index:
            index.pop(export_id, None)
            _write_json(EXPORT_INDEX_PATH, index)
            removed = True
    path = EXPORTS_DIR / f"{export_id}.json"
    if path.exists():
        path.unlink()
    return removed


def list_exports_for_respondent(respondent_id: str) -> List[Dict[str, Any]]:
    index: Dict[str, Dict[str, Any]] = _read_json(EXPORT_INDEX_PATH, {})
    out: List[Dict[str, Any]] = []
    for eid, meta in index.items():
        if meta.get("respondentId") == respondent_id:
            item = {"id": eid}
            item.update({k: v for k, v in meta.items() if k != "id"})
            out.append(item)
    out.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
    return out

"""Render schema score tables as JSON/CSV for the admin export."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Union
import csv
import io

from .types import RankingEntry, SchemaScore

_FIELDS: tuple[str, ...] = (
    "rank",
    "schemaId",
    "variableId",
    "domain",
    "label",
    "n",
    "mean",
    "index",
    "displayIndex",
    "lowConfidence",
)

Row = Union[RankingEntry, SchemaScore, Dict[str, Any]]


def _normalize_row(row: Row) -> Dict[str, Any]:
    if isinstance(row, (RankingEntry, SchemaScore)):
        row = row.to_dict()
    out: Dict[str, Any] = {}
    for key in _FIELDS:
        val = row.get(key)
        if key in {"rank", "n", "displayIndex"}:
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = 0
        elif key in {"mean", "index"}:
            try:
                out[key] = float(val)
            except (TypeError, ValueError):
                out[key] = 0.0
        elif key == "lowConfidence":
            out[key] = bool(val)
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(rows: Iterable[Row]) -> Dict[str, Any]:
    """Return a JSON-safe payload of score rows."""

    normalized: List[Dict[str, Any]] = [_normalize_row(r) for r in rows]
    return {"scores": normalized}


def to_csv(rows: Iterable[Row]) -> str:
    """Render score rows as CSV with a fixed header."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS)
    writer.writeheader()
    for row in rows:
        writer.writerow(_normalize_row(row))
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]

"""Versioned, checksummed export of a finished 108-item response set.

Wire shape (the contract with the Studio app)::

    {
      "schemaVersion": "1.0.0",
      "mappingVersion": "lasbi-v1.3.0",
      "respondent": {"id", "initials", "dobYear"},
      "assessment": {
        "id", "completedAt",
        "instrument": {"name", "form", "scale": {"min", "max"},
                       "items": [{"id", "canonicalId", "value", "index"}, ...]}
      },
      "provenance": {"sourceApp", "sourceAppVersion", "exportedAt", "checksumSha256"}
    }

The checksum is SHA-256 over the key-sorted compact JSON of the payload with
``provenance.checksumSha256`` left out.
"""
from __future__ import annotations

import copy
import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from . import config
from . import registry as reg
from .errors import ExportValidationError, IncompletenessError, VersionMismatchError
from .normalize import normalize, normalize_mapping
from .registry import CANONICAL_ID_RE, OPAQUE_ID_RE, Registry, canonical_sort_key
from .types import NormalizedResponse, RawResponse, ValidationIssue

log = logging.getLogger(__name__)

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")
CHECKSUM_RE = re.compile(r"^[a-f0-9]{64}$")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

_RESPONDENT_FIELDS = ("id", "initials", "dobYear")
_ITEM_FIELDS = ("id", "canonicalId", "value", "index")

TimestampLike = Union[datetime, str, None]


# ---- canonical form + checksum ----

def canonical_json(obj: Any) -> str:
    """Key-sorted (recursively), compact JSON; arrays keep element order."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _without_checksum(payload: Mapping[str, Any]) -> Dict[str, Any]:
    body = copy.deepcopy(dict(payload))
    prov = body.get("provenance")
    if isinstance(prov, dict):
        prov.pop("checksumSha256", None)
    return body


def compute_checksum(payload: Mapping[str, Any]) -> str:
    canon = canonical_json(_without_checksum(payload))
    return hashlib.sha256(canon.encode("utf-8")).hexdigest()


def verify_checksum(payload: Mapping[str, Any]) -> bool:
    prov = payload.get("provenance") if isinstance(payload, Mapping) else None
    claimed = prov.get("checksumSha256") if isinstance(prov, Mapping) else None
    return isinstance(claimed, str) and claimed == compute_checksum(payload)


# ---- helpers ----

def format_timestamp(value: TimestampLike = None) -> str:
    """UTC ISO-8601 at whole-second precision, e.g. 2025-09-10T14:26:12Z."""
    if value is None:
        dt = datetime.now(timezone.utc)
    elif isinstance(value, datetime):
        dt = value
    else:
        dt = parse_timestamp(value, strict=False)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str, strict: bool = True) -> datetime:
    """Parse an export timestamp; ``strict`` demands the exact wire format."""
    if strict and not TIMESTAMP_RE.match(value):
        raise ValueError(f"timestamp {value!r} is not YYYY-MM-DDTHH:MM:SSZ")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def pseudonymous_id(value: str, prefix: str = "") -> str:
    return f"{prefix}{hashlib.md5(value.encode('utf-8')).hexdigest()[:8]}"


def initials_from_name(name: Optional[str]) -> Optional[str]:
    if not name or not name.strip():
        return None
    return "".join(part[0] for part in name.split() if part)[:3].upper()


def export_filename(respondent_id: str, assessment_id: str, completed_at: TimestampLike) -> str:
    """Studio-compatible download name, pseudonymous and filesystem-safe."""
    stamp = format_timestamp(completed_at).replace(":", "-")
    name = (
        f"{pseudonymous_id(respondent_id, 'client-')}_"
        f"{pseudonymous_id(assessment_id, 'assessment-')}_{stamp}_v{config.SCHEMA_VERSION}.json"
    )
    name = re.sub(r"[^A-Za-z0-9_\-.]", "", name)
    return name if len(name) <= 120 else name[:116] + ".json"


# ---- build ----

def _normalized(
    responses: Union[Mapping[Any, Any], Iterable[Any]],
    registry: Registry,
) -> List[NormalizedResponse]:
    if isinstance(responses, Mapping):
        return normalize_mapping(responses, registry=registry)
    rows = list(responses)
    if rows and all(isinstance(r, NormalizedResponse) for r in rows):
        return rows
    return normalize(rows, registry=registry)


def build_export(
    responses: Union[Mapping[Any, Any], Iterable[Any]],
    *,
    assessment_id: str,
    respondent_id: str,
    completed_at: TimestampLike,
    exported_at: TimestampLike = None,
    initials: Optional[str] = None,
    dob_year: Optional[int] = None,
    mapping_version: Optional[str] = None,
    registry: Optional[Registry] = None,
) -> Dict[str, Any]:
    """Build the export payload for exactly 108 resolved, in-range responses.

    Accepts a response map, raw responses, or already-normalized responses.
    Items are written in numeric canonical order with their raw (not
    reverse-scored) values, so the consumer scores from the same inputs.
    """
    registry = registry or reg.load()
    if mapping_version is not None and mapping_version != registry.mapping_version:
        raise VersionMismatchError(mapping_version, registry.mapping_version)

    rows = _normalized(responses, registry)
    if len(rows) != config.ITEM_COUNT:
        raise IncompletenessError(
            f"export needs {config.ITEM_COUNT} responses, got {len(rows)}", total=len(rows)
        )
    by_canonical: Dict[str, NormalizedResponse] = {}
    for r in rows:
        if r.canonical_id in by_canonical:
            raise IncompletenessError(f"duplicate response for item {r.canonical_id}", total=len(rows))
        by_canonical[r.canonical_id] = r

    items = []
    for cid in sorted(by_canonical, key=canonical_sort_key):
        desc = registry.by_canonical_id(cid)
        items.append(
            {
                "id": desc.item_id,
                "canonicalId": cid,
                "value": by_canonical[cid].raw_value,
                "index": desc.position,
            }
        )

    payload: Dict[str, Any] = {
        "schemaVersion": config.SCHEMA_VERSION,
        "mappingVersion": registry.mapping_version,
        "respondent": {
            "id": pseudonymous_id(respondent_id),
            "initials": initials,
            "dobYear": dob_year,
        },
        "assessment": {
            "id": pseudonymous_id(assessment_id),
            "completedAt": format_timestamp(completed_at),
            "instrument": {
                "name": config.INSTRUMENT_NAME,
                "form": config.INSTRUMENT_FORM,
                "scale": {"min": config.SCALE_MIN, "max": config.SCALE_MAX},
                "items": items,
            },
        },
        "provenance": {
            "sourceApp": config.SOURCE_APP,
            "sourceAppVersion": config.SOURCE_APP_VERSION,
            "exportedAt": format_timestamp(exported_at),
        },
    }
    payload["provenance"]["checksumSha256"] = compute_checksum(payload)
    log.info(
        "built export %s (%d items, sha256 %s...)",
        registry.mapping_version,
        len(items),
        payload["provenance"]["checksumSha256"][:16],
    )
    return payload


# ---- validate ----

class _Issues:
    def __init__(self) -> None:
        self.items: List[ValidationIssue] = []

    def add(self, field: str, problem: str) -> None:
        self.items.append(ValidationIssue(field=field, problem=problem))


def _check_versions(payload: Mapping[str, Any], registry: Registry, issues: _Issues) -> None:
    sv = payload.get("schemaVersion")
    if not isinstance(sv, str) or not re.match(config.SCHEMA_VERSION_PATTERN, sv):
        issues.add("schemaVersion", f"must look like 1.0.0, received {sv!r}")
    elif sv not in config.ACCEPTED_SCHEMA_VERSIONS:
        issues.add("schemaVersion", f"unsupported version {sv!r} (accepted: {', '.join(config.ACCEPTED_SCHEMA_VERSIONS)})")

    mv = payload.get("mappingVersion")
    if not isinstance(mv, str) or not re.match(config.MAPPING_VERSION_PATTERN, mv):
        issues.add("mappingVersion", f"must look like lasbi-v1.3.0, received {mv!r}")
    elif mv != registry.mapping_version:
        issues.add("mappingVersion", f"stale or unknown version {mv!r} (current {registry.mapping_version!r})")


def _check_respondent(payload: Mapping[str, Any], issues: _Issues) -> None:
    resp = payload.get("respondent")
    if not isinstance(resp, Mapping):
        issues.add("respondent", "is required")
        return
    rid = resp.get("id")
    if not isinstance(rid, str) or not rid:
        issues.add("respondent.id", "is required")
    for key in resp:
        if key not in _RESPONDENT_FIELDS:
            issues.add(f"respondent.{key}", "is not allowed")
    dob = resp.get("dobYear")
    if dob is not None and (isinstance(dob, bool) or not isinstance(dob, int)):
        issues.add("respondent.dobYear", "must be an integer year or null")


def _check_items(instrument: Mapping[str, Any], registry: Registry, issues: _Issues) -> None:
    items = instrument.get("items")
    if not isinstance(items, list):
        issues.add("assessment.instrument.items", "must be a list")
        return
    if len(items) != config.ITEM_COUNT:
        issues.add("assessment.instrument.items", f"must contain exactly {config.ITEM_COUNT} items, received {len(items)}")

    seen_ids: Dict[str, int] = {}
    seen_canon: Dict[str, int] = {}
    for i, item in enumerate(items):
        where = f"assessment.instrument.items[{i}]"
        if not isinstance(item, Mapping):
            issues.add(where, "must be an object")
            continue
        for key in item:
            if key not in _ITEM_FIELDS:
                issues.add(f"{where}.{key}", "is not allowed")

        iid = item.get("id")
        cid = item.get("canonicalId")
        if not isinstance(iid, str) or not OPAQUE_ID_RE.match(iid):
            issues.add(f"{where}.id", f"must be an item id like 'cmf...', received {iid!r}")
            iid = None
        elif iid in seen_ids:
            issues.add(f"{where}.id", f"duplicate of items[{seen_ids[iid]}]")
        else:
            seen_ids[iid] = i
        if not isinstance(cid, str) or not CANONICAL_ID_RE.match(cid):
            issues.add(f"{where}.canonicalId", f"must match d.s.q, received {cid!r}")
            cid = None
        elif cid in seen_canon:
            issues.add(f"{where}.canonicalId", f"duplicate of items[{seen_canon[cid]}]")
        else:
            seen_canon[cid] = i

        if iid and cid:
            desc = registry.by_item_id(iid)
            if desc is None:
                issues.add(f"{where}.id", f"{iid!r} is not in mapping {registry.mapping_version}")
            elif desc.canonical_id != cid:
                issues.add(f"{where}.canonicalId", f"{iid!r} is {desc.canonical_id}, not {cid}")

        val = item.get("value")
        if isinstance(val, bool) or not isinstance(val, int):
            issues.add(f"{where}.value", f"must be an integer, received {type(val).__name__}")
        elif not config.SCALE_MIN <= val <= config.SCALE_MAX:
            issues.add(f"{where}.value", f"{val} outside {config.SCALE_MIN}..{config.SCALE_MAX}")

        idx = item.get("index")
        if idx is not None and (isinstance(idx, bool) or not isinstance(idx, int) or not 1 <= idx <= config.ITEM_COUNT):
            issues.add(f"{where}.index", f"must be an integer in 1..{config.ITEM_COUNT}, received {idx!r}")


def _check_assessment(payload: Mapping[str, Any], registry: Registry, issues: _Issues) -> None:
    assessment = payload.get("assessment")
    if not isinstance(assessment, Mapping):
        issues.add("assessment", "is required")
        return
    if "scores" in assessment:
        issues.add("assessment.scores", "derived data is not allowed in an export")
    if not isinstance(assessment.get("id"), str) or not assessment.get("id"):
        issues.add("assessment.id", "is required")
    instrument = assessment.get("instrument")
    if not isinstance(instrument, Mapping):
        issues.add("assessment.instrument", "is required")
        return
    if instrument.get("name") != config.INSTRUMENT_NAME:
        issues.add("assessment.instrument.name", f"must be {config.INSTRUMENT_NAME!r}, received {instrument.get('name')!r}")
    scale = instrument.get("scale")
    if not isinstance(scale, Mapping):
        issues.add("assessment.instrument.scale", "is required")
    elif scale.get("min") != config.SCALE_MIN or scale.get("max") != config.SCALE_MAX:
        issues.add(
            "assessment.instrument.scale",
            f"must be {{min:{config.SCALE_MIN},max:{config.SCALE_MAX}}}, received {dict(scale)}",
        )
    _check_items(instrument, registry, issues)


def _check_timestamp(value: Any, field: str, issues: _Issues) -> Optional[datetime]:
    if value is None:
        issues.add(field, "is required")
        return None
    if not isinstance(value, str):
        issues.add(field, "must be an ISO-8601 string")
        return None
    if "." in value:
        issues.add(field, "must not carry sub-second precision (use 2025-09-10T14:26:12Z)")
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        issues.add(field, f"must be YYYY-MM-DDTHH:MM:SSZ, received {value!r}")
        return None


def _check_provenance(payload: Mapping[str, Any], issues: _Issues) -> None:
    assessment = payload.get("assessment") if isinstance(payload.get("assessment"), Mapping) else {}
    prov = payload.get("provenance")
    if not isinstance(prov, Mapping):
        issues.add("provenance", "is required")
        return
    for key in ("sourceApp", "sourceAppVersion"):
        if not prov.get(key):
            issues.add(f"provenance.{key}", "is required")

    completed = _check_timestamp(assessment.get("completedAt"), "assessment.completedAt", issues)
    exported = _check_timestamp(prov.get("exportedAt"), "provenance.exportedAt", issues)
    if completed and exported and completed > exported:
        issues.add("assessment.completedAt", "must be <= provenance.exportedAt")

    claimed = prov.get("checksumSha256")
    if not isinstance(claimed, str) or not claimed:
        issues.add("provenance.checksumSha256", "is required")
    elif not CHECKSUM_RE.match(claimed):
        issues.add("provenance.checksumSha256", "must be 64 lowercase hex characters")
    else:
        try:
            actual = compute_checksum(payload)
        except UnicodeEncodeError:
            # lone surrogates survive json.loads but cannot be hashed as UTF-8
            issues.add("payload", "contains invalid unicode")
            return
        if claimed != actual:
            issues.add("provenance.checksumSha256", "does not match the payload contents")


def _strings(obj: Any) -> Iterable[str]:
    if isinstance(obj, str):
        yield obj
    elif isinstance(obj, Mapping):
        for v in obj.values():
            yield from _strings(v)
    elif isinstance(obj, list):
        for v in obj:
            yield from _strings(v)


def validate_export(
    payload: Any,
    max_errors: Optional[int] = None,
    registry: Optional[Registry] = None,
) -> List[ValidationIssue]:
    """Collect every problem with an export payload (empty list means valid).

    Does not stop at the first problem; the list is capped at
    ``max_errors`` (EXPORT_MAX_ERRORS by default).
    """
    cap = config.EXPORT_MAX_ERRORS if max_errors is None else max_errors
    if not isinstance(payload, Mapping):
        return [ValidationIssue("payload", "must be a JSON object")]
    registry = registry or reg.load()
    issues = _Issues()
    _check_versions(payload, registry, issues)
    _check_respondent(payload, issues)
    _check_assessment(payload, registry, issues)
    _check_provenance(payload, issues)
    if any(_EMAIL_RE.search(s) for s in _strings(payload)):
        issues.add("payload", "looks like it contains an e-mail address")
    if issues.items:
        log.debug("export validation found %d issues", len(issues.items))
    return issues.items[:cap]


def require_valid_export(payload: Any, registry: Optional[Registry] = None) -> None:
    problems = validate_export(payload, registry=registry)
    if problems:
        raise ExportValidationError(problems)


def responses_from_export(payload: Mapping[str, Any]) -> List[RawResponse]:
    """Raw responses carried by an export, for rescoring on the consumer side."""
    items = payload.get("assessment", {}).get("instrument", {}).get("items", [])
    return [
        RawResponse(value=it.get("value"), item_id=it.get("id"), canonical_id=it.get("canonicalId"))
        for it in items
    ]


__all__ = [
    "canonical_json",
    "compute_checksum",
    "verify_checksum",
    "format_timestamp",
    "parse_timestamp",
    "pseudonymous_id",
    "initials_from_name",
    "export_filename",
    "build_export",
    "validate_export",
    "require_valid_export",
    "responses_from_export",
]

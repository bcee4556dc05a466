from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, List, Mapping, Optional

from . import config
from . import registry as reg
from .errors import OutOfRangeError, UnmappableKeyError
from .identity import key_for_response, lookup_key
from .registry import Registry
from .types import NormalizedResponse, RawResponse

log = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[+-]?[0-9]+$")


def coerce_value(raw: Any, index: Optional[int] = None) -> int:
    """Return the Likert value as an int in SCALE_MIN..SCALE_MAX."""
    if isinstance(raw, Mapping) and "value" in raw:
        raw = raw["value"]
    val: Optional[int] = None
    if isinstance(raw, bool):
        val = None
    elif isinstance(raw, int):
        val = raw
    elif isinstance(raw, float) and math.isfinite(raw) and raw.is_integer():
        val = int(raw)
    elif isinstance(raw, str) and _INT_RE.match(raw.strip()):
        val = int(raw.strip())
    if val is None or not config.SCALE_MIN <= val <= config.SCALE_MAX:
        raise OutOfRangeError(raw, index=index, low=config.SCALE_MIN, high=config.SCALE_MAX)
    return val


def reverse_value(value: int) -> int:
    """Mirror a value on the 1..6 scale (1<->6, 2<->5, 3<->4)."""
    return (config.SCALE_MIN + config.SCALE_MAX) - value


def responses_from_mapping(responses: Mapping[Any, Any]) -> List[RawResponse]:
    """Adapt a ``{key: value | {"value": v}}`` map into raw responses.

    Keys may be opaque ids, canonical ids, legacy codes or positions; they are
    classified later, during normalization, so failures carry their index.
    """
    out: List[RawResponse] = []
    for key, val in responses.items():
        if isinstance(val, Mapping) and "value" in val:
            val = val["value"]
        out.append(RawResponse(value=val, key=key))
    return out


def _as_raw(entry: Any) -> RawResponse:
    if isinstance(entry, RawResponse):
        return entry
    if isinstance(entry, Mapping):
        return RawResponse(
            value=entry.get("value"),
            item_id=entry.get("itemId") or entry.get("item_id"),
            canonical_id=entry.get("canonicalId") or entry.get("canonical_id"),
            # "index" in UI answers is display order only, never an identity
            position=entry.get("position"),
            key=entry.get("key") if entry.get("key") is not None else entry.get("id"),
        )
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        return RawResponse(value=entry[1], key=entry[0])
    raise UnmappableKeyError(entry, reason="unrecognised response shape")


def normalize(
    responses: Iterable[Any],
    registry: Optional[Registry] = None,
) -> List[NormalizedResponse]:
    """Resolve, range-check and reverse-score raw responses.

    Fails fast on the first unmappable key or out-of-range value, reporting
    its 0-based index.  Weights are carried forward unchanged.
    """
    registry = registry or reg.load()
    out: List[NormalizedResponse] = []
    for i, entry in enumerate(responses):
        try:
            raw = _as_raw(entry)
            item = lookup_key(key_for_response(raw), registry)
        except UnmappableKeyError as exc:
            raise UnmappableKeyError(exc.key, index=i, reason=exc.reason) from exc
        value = coerce_value(raw.value, index=i)
        effective = reverse_value(value) if item.reverse else value
        out.append(
            NormalizedResponse(
                canonical_id=item.canonical_id,
                schema_id=item.schema_id,
                raw_value=value,
                value=effective,
                weight=item.weight,
            )
        )
    log.debug("normalized %d responses against %s", len(out), registry.mapping_version)
    return out


def normalize_mapping(
    responses: Mapping[Any, Any],
    registry: Optional[Registry] = None,
) -> List[NormalizedResponse]:
    return normalize(responses_from_mapping(responses), registry=registry)


__all__ = [
    "coerce_value",
    "reverse_value",
    "responses_from_mapping",
    "normalize",
    "normalize_mapping",
]

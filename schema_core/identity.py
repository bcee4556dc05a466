"""Turn any accepted item key into a canonical "d.s.q" id.

Accepted keys, in resolution order:
  - opaque item ids ("cmf..."), matched against the registry
  - canonical ids ("d.s.q")
  - legacy question codes ("d.s.R<q>", e.g. "1.1.R1")
  - legacy 1-based positions (1..108) in canonical order

Anything else is an UnmappableKeyError; keys are never guessed or dropped.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from . import registry as reg
from .errors import UnmappableKeyError
from .registry import CANONICAL_ID_RE, OPAQUE_ID_RE, Registry
from .types import ItemDescriptor, RawResponse

LEGACY_QUESTION_RE = re.compile(r"^([1-5])\.([1-5])\.R(\d+)$", re.I)
POSITION_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class OpaqueKey:
    item_id: str


@dataclass(frozen=True)
class CanonicalKey:
    canonical_id: str


@dataclass(frozen=True)
class LegacyQuestionKey:
    code: str
    canonical_id: str


@dataclass(frozen=True)
class PositionKey:
    position: int


ItemKey = Union[OpaqueKey, CanonicalKey, LegacyQuestionKey, PositionKey]


def parse_key(raw: object) -> ItemKey:
    """Classify a raw key without consulting the registry."""
    if isinstance(raw, (OpaqueKey, CanonicalKey, LegacyQuestionKey, PositionKey)):
        return raw
    if isinstance(raw, bool):
        raise UnmappableKeyError(raw, reason="booleans are not item keys")
    if isinstance(raw, int):
        return PositionKey(raw)
    if not isinstance(raw, str):
        raise UnmappableKeyError(raw, reason=f"unsupported key type {type(raw).__name__}")
    s = raw.strip()
    if OPAQUE_ID_RE.match(s):
        return OpaqueKey(s)
    if CANONICAL_ID_RE.match(s):
        return CanonicalKey(s)
    m = LEGACY_QUESTION_RE.match(s)
    if m:
        d, sub, q = m.groups()
        return LegacyQuestionKey(code=s, canonical_id=f"{d}.{sub}.{int(q)}")
    if POSITION_RE.match(s):
        return PositionKey(int(s))
    raise UnmappableKeyError(raw, reason="not an item id, canonical id, legacy code or position")


def lookup_key(key: ItemKey, registry: Optional[Registry] = None) -> ItemDescriptor:
    """Resolve a parsed key to its item descriptor."""
    registry = registry or reg.load()
    item: Optional[ItemDescriptor]
    if isinstance(key, OpaqueKey):
        item = registry.by_item_id(key.item_id)
        raw: object = key.item_id
    elif isinstance(key, CanonicalKey):
        item = registry.by_canonical_id(key.canonical_id)
        raw = key.canonical_id
    elif isinstance(key, LegacyQuestionKey):
        item = registry.by_canonical_id(key.canonical_id)
        raw = key.code
    else:
        item = registry.by_position(key.position)
        raw = key.position
        if item is None:
            raise UnmappableKeyError(raw, reason=f"position outside 1..{len(registry)}")
    if item is None:
        raise UnmappableKeyError(raw, reason=f"not in mapping {registry.mapping_version}")
    return item


def resolve(raw: object, registry: Optional[Registry] = None) -> str:
    """Return the canonical id for any accepted key."""
    return lookup_key(parse_key(raw), registry).canonical_id


def _populated(raw: object) -> bool:
    return raw is not None and raw != ""


def key_for_response(resp: RawResponse) -> ItemKey:
    """Pick the identity field of a raw response by priority.

    The first populated field wins and must parse; a malformed item id or
    canonical id is an error, never a reason to fall back to the position.
    """
    if _populated(resp.item_id):
        return parse_key(resp.item_id)
    if _populated(resp.canonical_id):
        key = parse_key(resp.canonical_id)
        if not isinstance(key, CanonicalKey):
            raise UnmappableKeyError(resp.canonical_id, reason="canonicalId is not a d.s.q id")
        return key
    if _populated(resp.position):
        return parse_key(resp.position)
    if _populated(resp.key):
        return parse_key(resp.key)
    raise UnmappableKeyError(None, reason="response carries no identity field")


__all__ = [
    "ItemKey",
    "OpaqueKey",
    "CanonicalKey",
    "LegacyQuestionKey",
    "PositionKey",
    "parse_key",
    "lookup_key",
    "resolve",
    "key_for_response",
]

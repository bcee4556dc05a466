"""Canonical item registry: 18 schemas x 6 items = 108 items.

The table is read once from ``data/item_map.json``, validated, and cached
for the life of the process.  Every other module asks the registry which
schema an item belongs to; nothing downstream infers meaning from UI order.
"""
from __future__ import annotations

import json
import logging
import math
import re
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from . import config
from .errors import MappingIntegrityError
from .types import Domain, ItemDescriptor, SchemaId, SchemaInfo

log = logging.getLogger(__name__)

OPAQUE_ID_RE = re.compile(r"^cmf[a-z0-9]{19,}$")
CANONICAL_ID_RE = re.compile(r"^[1-5]\.[1-5]\.[1-6]$")
VARIABLE_ID_RE = re.compile(r"^[1-5]\.[1-5]$")


def canonical_sort_key(canonical_id: str) -> Tuple[int, ...]:
    """Numeric per-segment key, so "2.4.10" sorts after "2.4.2"."""
    return tuple(int(part) for part in canonical_id.split("."))


class Registry:
    def __init__(
        self,
        mapping_version: str,
        schemas: Mapping[SchemaId, SchemaInfo],
        items: Iterable[ItemDescriptor],
    ) -> None:
        self.mapping_version = mapping_version
        self.schemas: Dict[SchemaId, SchemaInfo] = dict(schemas)
        self.items: Tuple[ItemDescriptor, ...] = tuple(
            sorted(items, key=lambda it: canonical_sort_key(it.canonical_id))
        )
        self._by_item_id = {it.item_id: it for it in self.items}
        self._by_canonical = {it.canonical_id: it for it in self.items}
        self._by_schema: Dict[SchemaId, List[ItemDescriptor]] = {}
        for it in self.items:
            self._by_schema.setdefault(it.schema_id, []).append(it)

    def __len__(self) -> int:
        return len(self.items)

    def lookup(self, key: Union[str, int]) -> Optional[ItemDescriptor]:
        """Find an item by opaque id, canonical id or 1-based position."""
        if isinstance(key, bool):
            return None
        if isinstance(key, int):
            return self.by_position(key)
        if not isinstance(key, str):
            return None
        return self._by_item_id.get(key) or self._by_canonical.get(key)

    def by_item_id(self, item_id: str) -> Optional[ItemDescriptor]:
        return self._by_item_id.get(item_id)

    def by_canonical_id(self, canonical_id: str) -> Optional[ItemDescriptor]:
        return self._by_canonical.get(canonical_id)

    def by_position(self, position: int) -> Optional[ItemDescriptor]:
        if 1 <= position <= len(self.items):
            return self.items[position - 1]
        return None

    def canonical_order(self) -> List[str]:
        return [it.canonical_id for it in self.items]

    def schema(self, schema_id: SchemaId) -> SchemaInfo:
        return self.schemas[schema_id]

    def items_for(self, schema_id: SchemaId) -> List[ItemDescriptor]:
        return list(self._by_schema.get(schema_id, []))

    def schema_order(self) -> List[SchemaId]:
        """Schema ids in canonical "d.s" order."""
        ordered = sorted(self.schemas.values(), key=lambda s: canonical_sort_key(s.variable_id))
        return [s.schema_id for s in ordered]


def _fail(msg: str) -> None:
    raise MappingIntegrityError(f"[LASBI] {msg}")


def _parse_schemas(rows: Any) -> Dict[str, SchemaInfo]:
    if not isinstance(rows, list):
        _fail("'schemas' must be a list")
    by_variable: Dict[str, SchemaInfo] = {}
    seen_ids: set[SchemaId] = set()
    for row in rows:
        if not isinstance(row, Mapping):
            _fail(f"schema row must be an object, got {row!r}")
        vid = str(row.get("variableId", ""))
        if not VARIABLE_ID_RE.match(vid):
            _fail(f"bad variableId {vid!r}")
        try:
            sid = SchemaId(row.get("schemaId"))
        except ValueError:
            _fail(f"unknown schemaId {row.get('schemaId')!r} for {vid}")
        label = row.get("label")
        if not isinstance(label, str) or not label.strip():
            _fail(f"schema {vid} has no label")
        if vid in by_variable:
            _fail(f"duplicate variableId {vid!r}")
        if sid in seen_ids:
            _fail(f"duplicate schemaId {sid.value!r}")
        seen_ids.add(sid)
        domain = Domain(int(vid.split(".")[0]))
        by_variable[vid] = SchemaInfo(schema_id=sid, variable_id=vid, domain=domain, label=label)

    if len(by_variable) != config.SCHEMA_COUNT:
        _fail(f"expected {config.SCHEMA_COUNT} schemas, found {len(by_variable)}")

    for domain_num, count in config.DOMAIN_SCHEMA_COUNTS.items():
        subs = sorted(int(v.split(".")[1]) for v in by_variable if int(v.split(".")[0]) == domain_num)
        if subs != list(range(1, count + 1)):
            _fail(f"domain {domain_num} schemas {subs} (expected 1..{count})")
    return by_variable


def _parse_items(rows: Any, schemas: Dict[str, SchemaInfo]) -> List[ItemDescriptor]:
    if not isinstance(rows, list):
        _fail("'items' must be a list")
    seen_item: set[str] = set()
    seen_canon: set[str] = set()
    parsed: List[Tuple[str, str, SchemaInfo, int, bool, float]] = []
    for row in rows:
        if not isinstance(row, Mapping):
            _fail(f"item row must be an object, got {row!r}")
        item_id = str(row.get("itemId", ""))
        if not OPAQUE_ID_RE.match(item_id):
            _fail(f"bad itemId {item_id!r}")
        vid = str(row.get("variableId", ""))
        schema = schemas.get(vid)
        if schema is None:
            _fail(f"unknown variableId {vid!r} for item {item_id}")
        q = row.get("questionNumber")
        if isinstance(q, bool) or not isinstance(q, int) or not 1 <= q <= config.ITEMS_PER_SCHEMA:
            _fail(f"bad questionNumber {q!r} for {vid}")
        reverse = row.get("reverse", False)
        if not isinstance(reverse, bool):
            _fail(f"reverse flag for {item_id} must be a boolean")
        weight = row.get("weight", 1)
        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not math.isfinite(weight) or weight <= 0:
            _fail(f"weight for {item_id} must be a positive number")
        canonical_id = f"{vid}.{q}"
        if item_id in seen_item:
            _fail(f"duplicate itemId {item_id!r}")
        if canonical_id in seen_canon:
            _fail(f"duplicate canonicalId {canonical_id!r}")
        seen_item.add(item_id)
        seen_canon.add(canonical_id)
        parsed.append((canonical_id, item_id, schema, q, reverse, float(weight)))

    per_schema: Dict[str, int] = {vid: 0 for vid in schemas}
    for canonical_id, _item_id, schema, _q, _rev, _w in parsed:
        per_schema[schema.variable_id] += 1
    for vid, n in sorted(per_schema.items(), key=lambda kv: canonical_sort_key(kv[0])):
        if n != config.ITEMS_PER_SCHEMA:
            _fail(f"schema {vid} has {n} items (expected {config.ITEMS_PER_SCHEMA})")

    expected = {f"{vid}.{q}" for vid in schemas for q in range(1, config.ITEMS_PER_SCHEMA + 1)}
    if seen_canon != expected or len(expected) != config.ITEM_COUNT:
        _fail(f"expected {config.ITEM_COUNT} contiguous canonical ids, got {len(seen_canon)}")

    parsed.sort(key=lambda row: canonical_sort_key(row[0]))
    return [
        ItemDescriptor(
            canonical_id=canonical_id,
            item_id=item_id,
            schema=schema,
            question=q,
            position=pos,
            reverse=reverse,
            weight=weight,
        )
        for pos, (canonical_id, item_id, schema, q, reverse, weight) in enumerate(parsed, start=1)
    ]


def build_registry(raw: Mapping[str, Any], expected_version: Optional[str] = None) -> Registry:
    """Validate a raw mapping document and return a registry.

    Raises MappingIntegrityError on any inconsistency; a partial table is
    never returned.
    """
    if not isinstance(raw, Mapping):
        _fail("mapping document must be an object")
    version = raw.get("mappingVersion")
    if not isinstance(version, str) or not re.match(config.MAPPING_VERSION_PATTERN, version):
        _fail(f"bad mappingVersion {version!r}")
    if expected_version is not None and version != expected_version:
        _fail(f"mapping data is {version!r} but deployment expects {expected_version!r}")
    schemas = _parse_schemas(raw.get("schemas"))
    items = _parse_items(raw.get("items"), schemas)
    return Registry(
        mapping_version=version,
        schemas={s.schema_id: s for s in schemas.values()},
        items=items,
    )


DATA_DIR = Path(__file__).with_name("data")


def _read_packaged_map() -> Dict[str, Any]:
    data = (DATA_DIR / "item_map.json").read_text(encoding="utf-8")
    return json.loads(data)


_REGISTRY_CACHE: Optional[Registry] = None
_LOCK = threading.Lock()


def load() -> Registry:
    """Return the process-wide registry, building it on first use."""
    global _REGISTRY_CACHE
    if _REGISTRY_CACHE is not None:
        return _REGISTRY_CACHE
    with _LOCK:
        if _REGISTRY_CACHE is None:
            reg = build_registry(_read_packaged_map(), expected_version=config.MAPPING_VERSION)
            log.info("loaded item registry %s (%d items)", reg.mapping_version, len(reg))
            _REGISTRY_CACHE = reg
    return _REGISTRY_CACHE


def lookup(key: Union[str, int]) -> Optional[ItemDescriptor]:
    return load().lookup(key)


def reset_cache() -> None:
    global _REGISTRY_CACHE
    with _LOCK:
        _REGISTRY_CACHE = None


__all__ = [
    "OPAQUE_ID_RE",
    "CANONICAL_ID_RE",
    "Registry",
    "build_registry",
    "canonical_sort_key",
    "load",
    "lookup",
    "reset_cache",
]

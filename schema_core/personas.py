"""Schema -> public persona name and domain.

The table in ``data/personas.json`` is the one authoritative copy.  The
Studio app renders reports from the same schema ids, so the table is
versioned (``tableVersion``) and pinned by a golden-file test; legacy
persona display names are derived from it as aliases, never kept as a
second hand-written table.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from . import registry as reg
from .errors import MappingIntegrityError
from .registry import Registry
from .types import DOMAIN_LABELS, Domain, Persona, SchemaId

log = logging.getLogger(__name__)


class PersonaTable:
    def __init__(self, version: str, personas: Mapping[SchemaId, Persona], aliases: Mapping[str, SchemaId]) -> None:
        self.version = version
        self.personas: Dict[SchemaId, Persona] = dict(personas)
        self.aliases: Dict[str, SchemaId] = dict(aliases)

    def get(self, schema_id: SchemaId) -> Persona:
        return self.personas[schema_id]

    def to_dict(self) -> Dict[str, Any]:
        """Stable dump used for the golden-file contract test."""
        return {
            "tableVersion": self.version,
            "personas": [self.personas[sid].to_dict() for sid in sorted(self.personas, key=lambda s: s.value)],
            "aliases": {name: sid.value for name, sid in sorted(self.aliases.items())},
        }


def _fail(msg: str) -> None:
    raise MappingIntegrityError(f"[personas] {msg}")


def build_table(raw: Mapping[str, Any], registry: Registry) -> PersonaTable:
    """Validate the persona document against the item registry."""
    version = raw.get("tableVersion")
    if not isinstance(version, str) or not version:
        _fail("missing tableVersion")
    if raw.get("mappingVersion") != registry.mapping_version:
        _fail(f"table built for {raw.get('mappingVersion')!r}, registry is {registry.mapping_version!r}")

    domains = raw.get("domains") or {}
    for dom in Domain:
        if domains.get(str(dom.value)) != DOMAIN_LABELS[dom]:
            _fail(f"domain {dom.value} label {domains.get(str(dom.value))!r} != {DOMAIN_LABELS[dom]!r}")

    personas: Dict[SchemaId, Persona] = {}
    aliases: Dict[str, SchemaId] = {}
    public_names: Dict[str, SchemaId] = {}
    for row in raw.get("personas") or []:
        try:
            sid = SchemaId(row.get("schemaId"))
        except ValueError:
            _fail(f"unknown schemaId {row.get('schemaId')!r}")
        if sid in personas:
            _fail(f"duplicate persona for {sid.value}")
        if sid not in registry.schemas:
            _fail(f"{sid.value} is not in the item registry")
        info = registry.schema(sid)
        public = row.get("publicName")
        if not isinstance(public, str) or not public.strip():
            _fail(f"{sid.value} has no publicName")
        if public in public_names:
            _fail(f"publicName {public!r} used by {public_names[public].value} and {sid.value}")
        public_names[public] = sid
        personas[sid] = Persona(
            schema_id=sid,
            public_name=public,
            domain=info.domain,
            clinical_name=str(row.get("clinicalName") or f"{info.label} Schema"),
            schema_label=info.label,
        )
        for alias in row.get("legacyAliases") or []:
            if alias in aliases and aliases[alias] != sid:
                _fail(f"legacy alias {alias!r} points at {aliases[alias].value} and {sid.value}")
            aliases[alias] = sid

    missing = [sid.value for sid in registry.schema_order() if sid not in personas]
    if missing:
        _fail(f"no persona for {', '.join(missing)}")
    return PersonaTable(version=version, personas=personas, aliases=aliases)


_TABLE_CACHE: Optional[PersonaTable] = None
_LOCK = threading.Lock()


def load_table() -> PersonaTable:
    global _TABLE_CACHE
    if _TABLE_CACHE is not None:
        return _TABLE_CACHE
    with _LOCK:
        if _TABLE_CACHE is None:
            text = (reg.DATA_DIR / "personas.json").read_text(encoding="utf-8")
            table = build_table(json.loads(text), reg.load())
            log.info("loaded persona table %s (%d personas)", table.version, len(table.personas))
            _TABLE_CACHE = table
    return _TABLE_CACHE


def to_persona(schema_id: Union[SchemaId, str]) -> Persona:
    """Total lookup: every schema id has a persona (KeyError/ValueError otherwise)."""
    return load_table().get(SchemaId(schema_id))


def resolve_alias(name: str) -> SchemaId:
    """Map a schema id, public persona name or legacy persona name to a schema id."""
    table = load_table()
    try:
        return SchemaId(name)
    except ValueError:
        pass
    if name in table.aliases:
        return table.aliases[name]
    for persona in table.personas.values():
        if persona.public_name == name:
            return persona.schema_id
    raise KeyError(name)


def personas_for(schema_ids: List[SchemaId]) -> Dict[SchemaId, Persona]:
    table = load_table()
    return {sid: table.get(sid) for sid in schema_ids}


__all__ = ["PersonaTable", "build_table", "load_table", "to_persona", "resolve_alias", "personas_for"]

from __future__ import annotations

import json
from pathlib import Path

import pytest

from schema_core import registry as reg
from schema_core.errors import MappingIntegrityError
from schema_core.personas import build_table, load_table, personas_for, resolve_alias, to_persona
from schema_core.types import Domain, SchemaId

GOLDEN = Path(__file__).parent / "golden" / "persona_table.json"


def _raw_table() -> dict:
    text = (reg.DATA_DIR / "personas.json").read_text(encoding="utf-8")
    return json.loads(text)


def test_persona_table_matches_golden_contract():
    # changes here must be mirrored in the Studio app before the golden file is updated
    expected = json.loads(GOLDEN.read_text(encoding="utf-8"))
    assert load_table().to_dict() == expected


def test_every_schema_has_a_persona():
    for sid in SchemaId:
        persona = to_persona(sid)
        assert persona.schema_id is sid
        assert persona.public_name
    assert len({to_persona(sid).public_name for sid in SchemaId}) == 18


def test_persona_carries_domain_and_labels():
    p = to_persona("abandonment_instability")
    assert p.public_name == "The Relationship Champion"
    assert p.domain is Domain.DISCONNECTION_REJECTION
    assert p.clinical_name == "Abandonment/Instability Schema"
    assert p.to_dict()["domain"] == "Disconnection & Rejection"


def test_unknown_schema_is_a_programming_error():
    with pytest.raises(ValueError):
        to_persona("not_a_schema")


def test_legacy_names_are_aliases_of_the_canonical_table():
    assert resolve_alias("The Clinger") is SchemaId.ABANDONMENT_INSTABILITY
    assert resolve_alias("The Suppressed Voice") is SchemaId.INSUFFICIENT_SELF_CONTROL_DISCIPLINE
    assert resolve_alias("The Unfiltered Reactor") is SchemaId.INSUFFICIENT_SELF_CONTROL_DISCIPLINE
    assert resolve_alias("The Resilient Achiever") is SchemaId.FAILURE
    assert resolve_alias("punitiveness") is SchemaId.PUNITIVENESS
    with pytest.raises(KeyError):
        resolve_alias("The Nobody")


def test_personas_for_selection():
    picked = personas_for([SchemaId.FAILURE, SchemaId.SUBJUGATION])
    assert set(picked) == {SchemaId.FAILURE, SchemaId.SUBJUGATION}
    assert picked[SchemaId.SUBJUGATION].public_name == "The Assertive Advocate"


def test_missing_persona_is_fatal(registry):
    raw = _raw_table()
    raw["personas"] = raw["personas"][:-1]
    with pytest.raises(MappingIntegrityError, match="no persona for punitiveness"):
        build_table(raw, registry)


def test_conflicting_alias_is_fatal(registry):
    raw = _raw_table()
    raw["personas"][1]["legacyAliases"] = ["The Clinger"]
    with pytest.raises(MappingIntegrityError, match="The Clinger"):
        build_table(raw, registry)


def test_duplicate_public_name_is_fatal(registry):
    raw = _raw_table()
    raw["personas"][1]["publicName"] = raw["personas"][0]["publicName"]
    with pytest.raises(MappingIntegrityError, match="publicName"):
        build_table(raw, registry)


def test_table_pinned_to_mapping_version(registry):
    raw = _raw_table()
    raw["mappingVersion"] = "lasbi-v1.2.0"
    with pytest.raises(MappingIntegrityError, match="lasbi-v1.2.0"):
        build_table(raw, registry)


def test_domain_labels_must_agree(registry):
    raw = _raw_table()
    raw["domains"]["3"] = "Limits"
    with pytest.raises(MappingIntegrityError, match="domain 3"):
        build_table(raw, registry)

from __future__ import annotations

import dataclasses

import schema_core.audit_registry as audit_registry
from schema_core import config

from tests.conftest import build_custom_registry


def test_packaged_mapping_has_no_warnings(registry):
    summary = audit_registry.audit_items(registry.items)
    assert summary["warnings"] == []
    assert summary["totals"] == {"items": 108, "schemas": 18, "reversed": 0, "weighted": 0}
    assert summary["coverage"]["Impaired Limits"]["schemas"] == {
        "entitlement_grandiosity": 6,
        "insufficient_self_control_discipline": 6,
    }


def test_reversed_and_weighted_items_are_listed():
    custom = build_custom_registry(reverse={"1.1.1", "5.4.6"}, weights={"2.2.2": 1.5})
    summary = audit_registry.audit_items(custom.items)
    assert summary["reversed"] == ["1.1.1", "5.4.6"]
    assert summary["weighted"] == {"2.2.2": 1.5}
    assert summary["warnings"] == []


def test_short_schema_is_flagged(registry):
    items = [it for it in registry.items if it.canonical_id != "2.4.6"]
    summary = audit_registry.audit_items(items)
    joined = "\n".join(summary["warnings"])
    assert "failure has 5 items" in joined
    assert "107 items in total" in joined


def test_domain_count_drift_is_flagged(monkeypatch, registry):
    monkeypatch.setattr(config, "DOMAIN_SCHEMA_COUNTS", {**config.DOMAIN_SCHEMA_COUNTS, 3: 3})
    summary = audit_registry.audit_items(registry.items)
    assert any("Impaired Limits has 2 schemas (expected 3)" in w for w in summary["warnings"])


def test_weight_hook_items_are_still_counted(registry):
    items = [dataclasses.replace(it, weight=2.0) if it.position == 1 else it for it in registry.items]
    summary = audit_registry.audit_items(items)
    assert summary["totals"]["weighted"] == 1


def test_main_exit_codes(monkeypatch, capsys, tmp_path):
    outfile = tmp_path / "audit.json"
    real_write = audit_registry.write_summary
    monkeypatch.setattr(audit_registry, "write_summary", lambda s: real_write(s, path=outfile))

    assert audit_registry.main([]) == 0
    out = capsys.readouterr().out
    assert "lasbi-v1.3.0" in out
    assert "No warnings." in out
    assert outfile.exists()

    monkeypatch.setattr(
        audit_registry,
        "audit_registry",
        lambda: {"mappingVersion": None, "coverage": {}, "warnings": ["[LASBI] broken"], "totals": {}},
    )
    assert audit_registry.main([]) == 2
    assert "[LASBI] broken" in capsys.readouterr().out

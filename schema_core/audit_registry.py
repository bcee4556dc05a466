from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from . import config
from . import registry as reg
from .errors import MappingIntegrityError
from .personas import load_table
from .types import DOMAIN_LABELS, Domain, ItemDescriptor


def _blank_domain() -> dict[str, object]:
    return {"schemas": {}, "items": 0}


def audit_items(items: Iterable[ItemDescriptor]) -> dict[str, object]:
    """Per-domain and per-schema item counts plus reversed/weighted items."""
    coverage: dict[str, dict[str, object]] = {DOMAIN_LABELS[d]: _blank_domain() for d in Domain}
    totals = {"items": 0, "schemas": 0, "reversed": 0, "weighted": 0}
    reversed_ids: list[str] = []
    weighted: dict[str, float] = {}

    for item in items:
        domain_data = coverage.setdefault(item.schema.domain.label, _blank_domain())
        per_schema: dict[str, int] = domain_data["schemas"]  # type: ignore[assignment]
        per_schema[item.schema_id.value] = per_schema.get(item.schema_id.value, 0) + 1
        domain_data["items"] += 1  # type: ignore[operator]
        totals["items"] += 1
        if item.reverse:
            reversed_ids.append(item.canonical_id)
            totals["reversed"] += 1
        if item.weight != 1.0:
            weighted[item.canonical_id] = item.weight
            totals["weighted"] += 1

    warnings: list[str] = []
    for dom in Domain:
        data = coverage[dom.label]
        per_schema = data["schemas"]  # type: ignore[assignment]
        expected = config.DOMAIN_SCHEMA_COUNTS.get(dom.value, 0)
        if len(per_schema) != expected:
            warnings.append(f"{dom.label} has {len(per_schema)} schemas (expected {expected})")
        for sid, n in sorted(per_schema.items()):
            if n != config.ITEMS_PER_SCHEMA:
                warnings.append(f"{sid} has {n} items (expected {config.ITEMS_PER_SCHEMA})")
        totals["schemas"] += len(per_schema)

    if totals["items"] != config.ITEM_COUNT:
        warnings.append(f"{totals['items']} items in total (expected {config.ITEM_COUNT})")

    return {
        "coverage": coverage,
        "reversed": reversed_ids,
        "weighted": weighted,
        "warnings": warnings,
        "totals": totals,
    }


def audit_registry() -> dict[str, object]:
    """Audit the packaged mapping; load failures become warnings."""
    try:
        registry = reg.load()
    except MappingIntegrityError as exc:
        return {"mappingVersion": None, "coverage": {}, "reversed": [], "weighted": {},
                "warnings": [str(exc)], "totals": {}}
    summary = audit_items(registry.items)
    summary["mappingVersion"] = registry.mapping_version
    try:
        summary["personaTableVersion"] = load_table().version
    except MappingIntegrityError as exc:
        summary["personaTableVersion"] = None
        summary["warnings"].append(str(exc))  # type: ignore[union-attr]
    return summary


def print_report(summary: dict[str, object]) -> None:
    coverage: dict[str, dict[str, object]] = summary["coverage"]  # type: ignore[assignment]
    print(f"=== Mapping Coverage ({summary.get('mappingVersion')}) ===")
    for domain, data in coverage.items():
        print(f"\nDomain: {domain} ({data['items']} items)")
        for sid, n in data["schemas"].items():  # type: ignore[union-attr]
            print(f"  {sid:<40} {n:3d}")

    reversed_ids: list[str] = summary.get("reversed") or []  # type: ignore[assignment]
    if reversed_ids:
        print("\nReversed items:", ", ".join(reversed_ids))

    warnings: list[str] = summary["warnings"]  # type: ignore[assignment]
    if warnings:
        print("\nWarnings:")
        for msg in warnings:
            print(f" - {msg}")
    else:
        print("\nNo warnings.")

    print("\nTotals:", summary.get("totals"))


def write_summary(summary: dict[str, object], path: Path = Path("/tmp/lasbi_mapping_audit.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    print(text)
    return text


def main(_argv: list[str] | None = None) -> int:
    summary = audit_registry()
    print_report(summary)
    write_summary(summary)
    return 2 if summary["warnings"] else 0


if __name__ == "__main__":
    raise SystemExit(main())

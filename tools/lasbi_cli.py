# tools/lasbi_cli.py
from __future__ import annotations
import argparse, json, logging, sys
from pathlib import Path
from typing import Any, List, Optional

from schema_core.audit_registry import main as audit_main
from schema_core.engine import result_to_dict, score_assessment
from schema_core.errors import ScoringError
from schema_core.export import build_export, export_filename, initials_from_name, validate_export
from schema_core.score_export import to_csv


def _read_json(src: str) -> Any:
    if src == "-":
        return json.load(sys.stdin)
    return json.loads(Path(src).read_text(encoding="utf-8"))


def _responses(doc: Any) -> Any:
    # accept a bare response map/list or {"responses": ...}
    if isinstance(doc, dict) and "responses" in doc:
        return doc["responses"]
    return doc


def cmd_score(a: argparse.Namespace) -> int:
    result = score_assessment(
        _responses(_read_json(a.responses)),
        mapping_version=a.mapping_version,
        require_completeness=not a.partial,
        threshold=a.threshold,
    )
    if a.csv:
        sys.stdout.write(to_csv(result.ranking))
    else:
        print(json.dumps(result_to_dict(result), indent=2))
    return 0


def cmd_export(a: argparse.Namespace) -> int:
    responses = _responses(_read_json(a.responses))
    try:
        payload = build_export(
            responses,
            assessment_id=a.assessment_id,
            respondent_id=a.respondent_id,
            completed_at=a.completed_at,
            initials=a.initials or initials_from_name(a.name),
            mapping_version=a.mapping_version,
        )
    except ValueError as exc:
        # unparseable --completed-at
        print(f"invalid metadata: {exc}", file=sys.stderr)
        return 1
    issues = validate_export(payload)
    if issues:
        for i in issues:
            print(f"{i.field}: {i.problem}", file=sys.stderr)
        return 1
    out = Path(a.out) if a.out else Path(export_filename(a.respondent_id, a.assessment_id, a.completed_at))
    out.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    print(f"Export: {out}")
    return 0


def cmd_validate(a: argparse.Namespace) -> int:
    issues = validate_export(_read_json(a.payload), max_errors=a.max_errors)
    if not issues:
        print("ok")
        return 0
    for i in issues:
        print(f"{i.field}: {i.problem}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="lasbi", description="LASBI scoring and export")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("score", help="score a response set")
    sp.add_argument("responses", help="JSON file with responses, '-' for stdin")
    sp.add_argument("--mapping-version")
    sp.add_argument("--partial", action="store_true", help="score an incomplete set")
    sp.add_argument("--threshold", type=float)
    sp.add_argument("--csv", action="store_true", help="print the ranking as CSV")
    sp.set_defaults(func=cmd_score)

    sp = sub.add_parser("export", help="build a checksummed export payload")
    sp.add_argument("responses")
    sp.add_argument("--assessment-id", required=True)
    sp.add_argument("--respondent-id", required=True)
    sp.add_argument("--completed-at", required=True)
    sp.add_argument("--initials")
    sp.add_argument("--name", help="respondent name; only its initials are exported")
    sp.add_argument("--mapping-version")
    sp.add_argument("--out")
    sp.set_defaults(func=cmd_export)

    sp = sub.add_parser("validate", help="validate an export payload")
    sp.add_argument("payload")
    sp.add_argument("--max-errors", type=int)
    sp.set_defaults(func=cmd_validate)

    sp = sub.add_parser("audit", help="mapping health report (exit 2 on warnings)")
    sp.set_defaults(func=lambda _a: audit_main([]))
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    a = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if a.verbose else logging.WARNING)
    try:
        return a.func(a)
    except ScoringError as exc:
        print(f"assessment incomplete or corrupted: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

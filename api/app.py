from __future__ import annotations
from fastapi import FastAPI, HTTPException, Body, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uuid, os, typing as t

# ---- Engine imports ----
from schema_core import config
from schema_core.config import load_config
from schema_core import registry
from schema_core.audit_registry import audit_registry
from schema_core.engine import result_to_dict, score_assessment
from schema_core.errors import ScoringError
from schema_core.export import (
    build_export,
    export_filename,
    responses_from_export,
    validate_export,
)
from schema_core.personas import load_table, resolve_alias, to_persona
from schema_core.score_export import to_json as scores_to_json, to_csv as scores_to_csv
from .storage import (
    delete_export,
    list_exports_for_respondent,
    load_export,
    save_export,
    utcnow_iso,
)

# a broken mapping or persona table stops startup here
REGISTRY = registry.load()
PERSONAS = load_table()

app = FastAPI(title="LASBI Scoring API")


@app.get("/")
def root():
    return {"status": "ok", "service": "lasbi-scoring-api"}


ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
Responses = t.Union[t.Dict[str, t.Any], t.List[t.Any]]


class ScoreReq(BaseModel):
    responses: Responses
    mappingVersion: str | None = None
    requireCompleteness: bool = True
    applyWeights: bool = False
    threshold: float | None = None


class ExportReq(BaseModel):
    responses: Responses
    assessmentId: str
    respondentId: str
    completedAt: str
    initials: str | None = None
    dobYear: int | None = None
    mappingVersion: str | None = None


class ValidateReq(BaseModel):
    payload: t.Any


# ---- Helpers ----
def _unprocessable(exc: ScoringError) -> HTTPException:
    return HTTPException(
        422,
        {
            "error": "assessment incomplete or corrupted",
            "kind": type(exc).__name__,
            "detail": str(exc),
        },
    )


def _require_exports() -> None:
    if not config.EXPORT_ENABLED:
        raise HTTPException(404, "export disabled")


def _stored_or_404(export_id: str) -> dict[str, t.Any]:
    payload = load_export(export_id)
    if not payload:
        raise HTTPException(404, "export not found")
    return payload


def _rescore(payload: dict[str, t.Any]):
    try:
        return score_assessment(
            responses_from_export(payload),
            mapping_version=payload.get("mappingVersion"),
        )
    except ScoringError as exc:
        raise _unprocessable(exc)


# ---- Health ----
@app.get("/health")
def health():
    return {
        "mappingVersion": REGISTRY.mapping_version,
        "personaTableVersion": PERSONAS.version,
        "schemaVersion": config.SCHEMA_VERSION,
        "items": len(REGISTRY),
        "schemas": len(REGISTRY.schemas),
        "exportEnabled": config.EXPORT_ENABLED,
        "config": load_config(),
    }


@app.get("/health/mapping")
def health_mapping():
    summary = audit_registry()
    return {"ok": not summary["warnings"], **summary}


# ---- Scoring ----
@app.post("/assessments/score")
def score(req: ScoreReq):
    try:
        result = score_assessment(
            req.responses,
            mapping_version=req.mappingVersion,
            require_completeness=req.requireCompleteness,
            apply_weights=req.applyWeights,
            threshold=req.threshold,
        )
    except ScoringError as exc:
        raise _unprocessable(exc)
    return result_to_dict(result)


# ---- Export ----
@app.post("/assessments/export")
def create_export(req: ExportReq):
    _require_exports()
    try:
        payload = build_export(
            req.responses,
            assessment_id=req.assessmentId,
            respondent_id=req.respondentId,
            completed_at=req.completedAt,
            initials=req.initials,
            dob_year=req.dobYear,
            mapping_version=req.mappingVersion,
        )
    except ScoringError as exc:
        raise _unprocessable(exc)
    except ValueError as exc:
        # unparseable completedAt
        raise HTTPException(422, {"error": "invalid metadata", "detail": str(exc)})

    issues = validate_export(payload)
    if issues:
        raise HTTPException(
            400,
            {"error": "export failed validation", "issues": [i.to_dict() for i in issues]},
        )

    export_id = str(uuid.uuid4())
    filename = export_filename(req.respondentId, req.assessmentId, req.completedAt)
    save_export(
        export_id,
        payload,
        {
            "respondentId": req.respondentId,
            "assessmentId": req.assessmentId,
            "createdAt": utcnow_iso(),
            "filename": filename,
            "mappingVersion": payload["mappingVersion"],
            "checksumSha256": payload["provenance"]["checksumSha256"],
        },
    )
    return {"exportId": export_id, "filename": filename, "payload": payload}


@app.post("/exports/validate")
def validate(req: ValidateReq = Body(...)):
    issues = validate_export(req.payload)
    return {"ok": not issues, "issues": [i.to_dict() for i in issues]}


@app.get("/exports/{export_id}")
def get_export(export_id: str):
    _require_exports()
    return _stored_or_404(export_id)


@app.delete("/exports/{export_id}")
def delete_export_endpoint(export_id: str):
    _require_exports()
    ok = delete_export(export_id)
    if not ok:
        raise HTTPException(404, "export not found")
    return {"ok": True}


@app.get("/exports/{export_id}/scores.json")
def get_scores_json(export_id: str):
    _require_exports()
    result = _rescore(_stored_or_404(export_id))
    return {"export_id": export_id, "mappingVersion": result.mapping_version, **scores_to_json(result.ranking)}


@app.get("/exports/{export_id}/scores.csv")
def get_scores_csv(export_id: str):
    _require_exports()
    result = _rescore(_stored_or_404(export_id))
    body = scores_to_csv(result.ranking)
    filename = f"{export_id}_scores.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )


@app.get("/respondents/{respondent_id}/exports")
def list_exports(respondent_id: str):
    return {"exports": list_exports_for_respondent(respondent_id)}


# ---- Personas ----
@app.get("/personas/{name}")
def get_persona(name: str):
    try:
        sid = resolve_alias(name)
    except KeyError:
        raise HTTPException(404, f"unknown schema or persona {name!r}")
    return {"tableVersion": PERSONAS.version, **to_persona(sid).to_dict()}

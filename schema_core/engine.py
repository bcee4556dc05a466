# schema_core/engine.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from . import config
from . import registry as reg
from .aggregate import aggregate
from .errors import VersionMismatchError
from .normalize import normalize, normalize_mapping
from .personas import personas_for
from .ranking import rank, select_top3
from .registry import Registry
from .types import AssessmentResult, RankingEntry

log = logging.getLogger(__name__)

Responses = Union[Mapping[Any, Any], Iterable[Any]]


def check_version(
    mapping_version: Optional[str],
    registry: Registry,
    allow_bypass: Optional[bool] = None,
) -> None:
    """Reject a caller built against another mapping release.

    ``None`` means the caller did not pin a version.  With bypass enabled a
    mismatch is logged and scoring proceeds against the current table.
    """
    if mapping_version is None or mapping_version == registry.mapping_version:
        return
    bypass = config.ALLOW_VERSION_BYPASS if allow_bypass is None else allow_bypass
    if bypass:
        log.warning(
            "mapping version %s != %s; scoring anyway (bypass enabled)",
            mapping_version,
            registry.mapping_version,
        )
        return
    raise VersionMismatchError(mapping_version, registry.mapping_version)


def score_assessment(
    responses: Responses,
    mapping_version: Optional[str] = None,
    allow_version_bypass: Optional[bool] = None,
    require_completeness: bool = True,
    apply_weights: bool = False,
    threshold: Optional[float] = None,
    registry: Optional[Registry] = None,
) -> AssessmentResult:
    """Score a response set end to end.

    The version gate runs before anything is normalized, so a mismatched
    caller never gets a partial result.  Every per-request failure surfaces
    as a ScoringError subclass.
    """
    registry = registry or reg.load()
    check_version(mapping_version, registry, allow_version_bypass)

    if isinstance(responses, Mapping):
        normalized = normalize_mapping(responses, registry=registry)
    else:
        normalized = normalize(responses, registry=registry)

    scores = aggregate(
        normalized,
        apply_weights=apply_weights,
        require_completeness=require_completeness,
        registry=registry,
    )
    ranking = rank(scores)
    top3 = select_top3(ranking, threshold=threshold)
    complete = len(scores) == config.SCHEMA_COUNT and all(
        s.n == config.ITEMS_PER_SCHEMA for s in scores
    )
    log.debug(
        "scored %d responses: complete=%s primary=%s",
        len(normalized),
        complete,
        top3.primary.schema_id.value if top3.primary else None,
    )
    return AssessmentResult(
        mapping_version=registry.mapping_version,
        complete=complete,
        scores=scores,
        ranking=ranking,
        top3=top3,
        personas=personas_for([e.schema_id for e in top3.entries()]),
    )


def _pick(entry: Optional[RankingEntry], result: AssessmentResult) -> Optional[Dict[str, Any]]:
    if entry is None:
        return None
    out = entry.to_dict()
    persona = result.personas.get(entry.schema_id)
    out["persona"] = persona.to_dict() if persona else None
    return out


def result_to_dict(result: AssessmentResult) -> Dict[str, Any]:
    """JSON-safe view for the API and CLI."""
    return {
        "mappingVersion": result.mapping_version,
        "complete": result.complete,
        "scores": [s.to_dict() for s in result.scores],
        "ranking": [e.to_dict() for e in result.ranking],
        "top3": {
            "primary": _pick(result.top3.primary, result),
            "secondary": _pick(result.top3.secondary, result),
            "tertiary": _pick(result.top3.tertiary, result),
        },
    }


__all__ = ["check_version", "score_assessment", "result_to_dict"]

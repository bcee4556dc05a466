from __future__ import annotations

import logging
import math
import sys
from typing import Dict, Iterable, List, Optional

from . import config
from . import registry as reg
from .errors import IncompletenessError
from .registry import Registry
from .types import NormalizedResponse, SchemaId, SchemaScore

log = logging.getLogger(__name__)


def to_index(mean: float) -> float:
    """Linear rescale of a 1..6 mean onto 0..100 (1 -> 0, 6 -> 100)."""
    span = config.SCALE_MAX - config.SCALE_MIN
    return (mean - config.SCALE_MIN) * 100.0 / span


def round_half_up(x: float) -> int:
    """Whole-number rounding with halves going up, as the Studio side rounds."""
    return int(math.floor(x + 0.5))


def round2(x: float) -> float:
    return math.floor((x + sys.float_info.epsilon) * 100 + 0.5) / 100


def _check_complete(counts: Dict[SchemaId, int], total: int, registry: Registry) -> None:
    shortfalls: Dict[str, int] = {}
    for sid in registry.schema_order():
        n = counts.get(sid, 0)
        if n != config.ITEMS_PER_SCHEMA:
            shortfalls[sid.value] = config.ITEMS_PER_SCHEMA - n
    if shortfalls:
        parts = []
        for sid_value, missing in shortfalls.items():
            info = registry.schema(SchemaId(sid_value))
            have = config.ITEMS_PER_SCHEMA - missing
            parts.append(f"{info.label} ({info.variable_id}) has {have} items (expected {config.ITEMS_PER_SCHEMA})")
        raise IncompletenessError("; ".join(parts), shortfalls=shortfalls, total=total)
    if total != config.ITEM_COUNT:
        raise IncompletenessError(
            f"expected {config.ITEM_COUNT} responses, got {total}", total=total
        )


def aggregate(
    normalized: Iterable[NormalizedResponse],
    apply_weights: bool = False,
    require_completeness: bool = True,
    round_results: bool = False,
    registry: Optional[Registry] = None,
) -> List[SchemaScore]:
    """Group responses by schema and compute mean and 0..100 index.

    Results come back in canonical schema order.  Means and indexes are left
    unrounded unless ``round_results`` is set, so comparisons downstream run
    at full precision.

    With ``require_completeness`` every schema must have exactly 6 responses
    and the total must be 108, otherwise IncompletenessError is raised.
    Without it, whatever is present is scored and ``n`` tells the caller how
    partial each schema is.
    """
    registry = registry or reg.load()
    rows = list(normalized)

    sums: Dict[SchemaId, float] = {}
    wsums: Dict[SchemaId, float] = {}
    counts: Dict[SchemaId, int] = {}
    for r in rows:
        w = r.weight if apply_weights else 1.0
        sums[r.schema_id] = sums.get(r.schema_id, 0.0) + r.value * w
        wsums[r.schema_id] = wsums.get(r.schema_id, 0.0) + w
        counts[r.schema_id] = counts.get(r.schema_id, 0) + 1

    if require_completeness:
        _check_complete(counts, len(rows), registry)

    out: List[SchemaScore] = []
    for sid in registry.schema_order():
        if sid not in counts:
            continue
        info = registry.schema(sid)
        mean = sums[sid] / (wsums[sid] or 1.0)
        idx = to_index(mean)
        out.append(
            SchemaScore(
                schema_id=sid,
                variable_id=info.variable_id,
                domain=info.domain,
                label=info.label,
                n=counts[sid],
                mean=round2(mean) if round_results else mean,
                index=round2(idx) if round_results else idx,
            )
        )
    log.debug("aggregated %d responses into %d schema scores", len(rows), len(out))
    return out


def assert_golden_completeness(scores: List[SchemaScore]) -> None:
    """QA guard: 18 scores, each backed by 6 items."""
    if len(scores) != config.SCHEMA_COUNT:
        raise IncompletenessError(
            f"expected {config.SCHEMA_COUNT} schema scores, got {len(scores)}"
        )
    short = {s.schema_id.value: config.ITEMS_PER_SCHEMA - s.n for s in scores if s.n != config.ITEMS_PER_SCHEMA}
    if short:
        names = ", ".join(f"{sid} n={config.ITEMS_PER_SCHEMA - miss}" for sid, miss in short.items())
        raise IncompletenessError(f"partial schema scores: {names}", shortfalls=short)


__all__ = ["to_index", "round_half_up", "round2", "aggregate", "assert_golden_completeness"]

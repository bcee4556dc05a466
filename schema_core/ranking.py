from __future__ import annotations

import dataclasses
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .aggregate import round_half_up
from .types import RankingEntry, SchemaScore, Top3

# Display precedence for schemas whose rounded index ties.  Order matters:
# the Studio app ranks with the same list, so edits must land in both.
TIE_BREAKER_ORDER: Tuple[str, ...] = (
    "Negativity/Pessimism",
    "Emotional Inhibition",
    "Unrelenting Standards/Hypercriticalness",
    "Abandonment/Instability",
    "Mistrust/Abuse",
    "Emotional Deprivation",
    "Defectiveness/Shame",
    "Social Isolation/Alienation",
    "Insufficient Self-Control/Discipline",
    "Entitlement/Grandiosity",
    "Dependence/Incompetence",
    "Vulnerability to Harm/Illness",
    "Enmeshment/Undeveloped Self",
    "Failure",
    "Subjugation",
    "Self-Sacrifice",
    "Approval-Seeking/Recognition-Seeking",
    "Punitiveness",
)

_PRIORITY: Dict[str, int] = {label: i for i, label in enumerate(TIE_BREAKER_ORDER)}


def _sort_key(score: SchemaScore) -> Tuple[int, int, str]:
    # unlisted labels go after every listed one, then by schema id
    return (
        -round_half_up(score.index),
        _PRIORITY.get(score.label, len(TIE_BREAKER_ORDER)),
        score.schema_id.value,
    )


def rank(scores: Iterable[SchemaScore]) -> List[RankingEntry]:
    """Order schemas by descending rounded index.

    Ties on the rounded index are settled by TIE_BREAKER_ORDER and, for labels
    missing from it, by the schema id.  Input order never affects the result.
    """
    ordered = sorted(scores, key=_sort_key)
    return [
        RankingEntry(score=s, rank=i, display_index=round_half_up(s.index))
        for i, s in enumerate(ordered, start=1)
    ]


def select_top3(entries: Sequence[RankingEntry], threshold: Optional[float] = None) -> Top3:
    """Primary, secondary and tertiary picks.

    Picks whose display index falls below ``threshold`` are flagged
    low-confidence, not dropped; the caller decides how to present them.
    """
    cutoff = config.ACTIVATION_THRESHOLD if threshold is None else float(threshold)
    picks = [
        dataclasses.replace(e, low_confidence=e.display_index < cutoff)
        for e in list(entries)[:3]
    ]
    picks += [None] * (3 - len(picks))
    return Top3(primary=picks[0], secondary=picks[1], tertiary=picks[2])


__all__ = ["TIE_BREAKER_ORDER", "rank", "select_top3"]

from __future__ import annotations

import random

from schema_core.aggregate import aggregate
from schema_core.normalize import normalize_mapping
from schema_core.ranking import TIE_BREAKER_ORDER, rank, select_top3
from schema_core.types import Domain, SchemaId, SchemaScore

from tests.conftest import build_responses


def _score(sid: SchemaId, label: str, index: float) -> SchemaScore:
    return SchemaScore(
        schema_id=sid,
        variable_id="1.1",
        domain=Domain.DISCONNECTION_REJECTION,
        label=label,
        n=6,
        mean=1 + index / 20,
        index=index,
    )


def test_single_high_schema_ranks_first_rest_follow_priority_list():
    scores = aggregate(normalize_mapping(build_responses(value=4, overrides={"2.4": 6})))
    ranking = rank(scores)

    assert ranking[0].schema_id is SchemaId.FAILURE
    assert ranking[0].index == 100
    assert ranking[0].rank == 1
    assert all(e.index == 60 for e in ranking[1:])
    assert [e.score.label for e in ranking[1:]] == [l for l in TIE_BREAKER_ORDER if l != "Failure"]
    assert [e.rank for e in ranking] == list(range(1, 19))


def test_input_order_never_changes_ranking():
    scores = aggregate(normalize_mapping(build_responses(overrides={"5.2": 5, "1.1": 5, "3.1": 2})))
    expected = [e.schema_id for e in rank(scores)]
    rng = random.Random(42)
    for _ in range(10):
        shuffled = list(scores)
        rng.shuffle(shuffled)
        assert [e.schema_id for e in rank(shuffled)] == expected
    # both at 80: Emotional Inhibition precedes Abandonment/Instability
    assert expected[:2] == [SchemaId.EMOTIONAL_INHIBITION, SchemaId.ABANDONMENT_INSTABILITY]
    assert expected[-1] is SchemaId.ENTITLEMENT_GRANDIOSITY


def test_ties_use_rounded_index():
    a = _score(SchemaId.PUNITIVENESS, "Punitiveness", 70.4)
    b = _score(SchemaId.NEGATIVITY_PESSIMISM, "Negativity/Pessimism", 69.6)
    ranked = rank([a, b])
    # both display as 70, so the priority list decides
    assert [e.schema_id for e in ranked] == [SchemaId.NEGATIVITY_PESSIMISM, SchemaId.PUNITIVENESS]
    assert [e.display_index for e in ranked] == [70, 70]


def test_half_rounds_up_before_comparison():
    a = _score(SchemaId.PUNITIVENESS, "Punitiveness", 70.5)
    b = _score(SchemaId.NEGATIVITY_PESSIMISM, "Negativity/Pessimism", 70.4)
    assert [e.display_index for e in rank([b, a])] == [71, 70]


def test_unlisted_labels_fall_back_to_schema_id():
    listed = _score(SchemaId.PUNITIVENESS, "Punitiveness", 50)
    x = _score(SchemaId.FAILURE, "Renamed B", 50)
    y = _score(SchemaId.ABANDONMENT_INSTABILITY, "Renamed A", 50)
    assert [e.schema_id for e in rank([x, y, listed])] == [
        SchemaId.PUNITIVENESS,
        SchemaId.ABANDONMENT_INSTABILITY,
        SchemaId.FAILURE,
    ]


def test_top3_flags_low_confidence_instead_of_dropping():
    scores = aggregate(normalize_mapping(build_responses(value=3, overrides={"2.4": 6, "1.1": 5})))
    top = select_top3(rank(scores))
    assert top.primary.schema_id is SchemaId.FAILURE
    assert top.primary.low_confidence is False
    assert top.secondary.schema_id is SchemaId.ABANDONMENT_INSTABILITY
    assert top.secondary.low_confidence is False
    # index 40 < 60
    assert top.tertiary.low_confidence is True
    assert len(top.entries()) == 3


def test_threshold_is_configurable(monkeypatch):
    from schema_core import config

    scores = aggregate(normalize_mapping(build_responses(value=4)))
    assert all(not e.low_confidence for e in select_top3(rank(scores)).entries())
    assert all(e.low_confidence for e in select_top3(rank(scores), threshold=61).entries())

    monkeypatch.setattr(config, "ACTIVATION_THRESHOLD", 75.0)
    assert all(e.low_confidence for e in select_top3(rank(scores)).entries())


def test_top3_with_fewer_than_three_schemas():
    top = select_top3(rank([_score(SchemaId.FAILURE, "Failure", 90)]))
    assert top.primary.schema_id is SchemaId.FAILURE
    assert top.secondary is None and top.tertiary is None
    assert top.entries() == [top.primary]

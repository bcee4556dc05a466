from __future__ import annotations

import pytest

from schema_core.aggregate import (
    aggregate,
    assert_golden_completeness,
    round2,
    round_half_up,
    to_index,
)
from schema_core.errors import IncompletenessError
from schema_core.normalize import normalize_mapping
from schema_core.types import SchemaId

from tests.conftest import build_custom_registry, build_responses


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_any_permutation_of_full_set_scores_18_schemas(seed):
    scores = aggregate(normalize_mapping(build_responses(shuffle_seed=seed)))
    assert len(scores) == 18
    assert all(s.n == 6 for s in scores)
    assert_golden_completeness(scores)


def test_results_come_back_in_canonical_schema_order():
    scores = aggregate(normalize_mapping(build_responses(shuffle_seed=7)))
    assert [s.variable_id for s in scores][:6] == ["1.1", "1.2", "1.3", "1.4", "1.5", "2.1"]
    assert scores[-1].schema_id is SchemaId.PUNITIVENESS


def test_index_is_linear():
    assert to_index(1) == 0
    assert to_index(6) == 100
    assert to_index(3.5) == 50
    assert to_index(4) == 60
    means = [1 + i * 0.25 for i in range(21)]
    indexes = [to_index(m) for m in means]
    assert indexes == sorted(indexes)
    assert len(set(indexes)) == len(indexes)


def test_index_is_not_rounded_by_default():
    overrides = {"1.1.1": 5}  # mean 25/6
    scores = aggregate(normalize_mapping(build_responses(overrides=overrides)))
    first = scores[0]
    assert first.mean == pytest.approx(25 / 6)
    assert first.index == pytest.approx((25 / 6 - 1) * 20)
    assert first.index != round2(first.index)

    rounded = aggregate(normalize_mapping(build_responses(overrides=overrides)), round_results=True)
    assert rounded[0].index == 63.33
    assert rounded[0].mean == 4.17


def test_107_items_names_the_short_schema():
    with pytest.raises(IncompletenessError) as exc:
        aggregate(normalize_mapping(build_responses(drop=["2.3.4"])))
    assert "Enmeshment/Undeveloped Self (2.3)" in str(exc.value)
    assert exc.value.shortfalls == {"enmeshment_undeveloped_self": 1}
    assert exc.value.total == 107


def test_partial_scoring_reports_n():
    rows = normalize_mapping(build_responses(drop=["2.3.4", "2.3.5"]))
    scores = aggregate(rows, require_completeness=False)
    by_id = {s.schema_id: s for s in scores}
    assert by_id[SchemaId.ENMESHMENT_UNDEVELOPED_SELF].n == 4
    assert by_id[SchemaId.FAILURE].n == 6
    with pytest.raises(IncompletenessError, match="n=4"):
        assert_golden_completeness(scores)


def test_partial_scoring_skips_absent_schemas():
    rows = normalize_mapping({"1.1.1": 6, "1.1.2": 4})
    scores = aggregate(rows, require_completeness=False)
    assert len(scores) == 1
    assert scores[0].n == 2
    assert scores[0].mean == 5
    assert scores[0].index == 80


def test_duplicate_answers_fail_strict_mode():
    rows = normalize_mapping(build_responses())
    rows.append(rows[0])
    with pytest.raises(IncompletenessError, match="has 7 items"):
        aggregate(rows)


def test_weights_only_apply_when_requested():
    custom = build_custom_registry(weights={"1.1.1": 3.0})
    rows = normalize_mapping(build_responses(overrides={"1.1.1": 6, "1.1": 2}), registry=custom)
    plain = aggregate(rows, registry=custom)[0]
    weighted = aggregate(rows, apply_weights=True, registry=custom)[0]
    assert plain.mean == pytest.approx((6 + 5 * 2) / 6)
    assert weighted.mean == pytest.approx((6 * 3 + 5 * 2) / 8)


def test_js_compatible_rounding():
    assert round_half_up(59.5) == 60
    assert round_half_up(60.5) == 61
    assert round_half_up(-0.5) == 0
    assert round2(1.005) == 1.01
    assert round2(63.333333) == 63.33

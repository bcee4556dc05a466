from __future__ import annotations

import copy
import random

import pytest

from schema_core import registry as reg
from schema_core.registry import Registry, build_registry


def build_responses(
    *,
    value: int = 4,
    overrides: dict[str, int] | None = None,
    key: str = "canonical",
    drop: list[str] | None = None,
    shuffle_seed: int | None = None,
) -> dict[object, int]:
    """Create a deterministic 108-item response map for tests.

    ``overrides`` maps canonical id or variable id ("1.1") to a value;
    ``key`` picks the key format: canonical, opaque, legacy or position.
    """

    registry = reg.load()
    overrides = overrides or {}
    dropped = set(drop or [])
    items = [it for it in registry.items if it.canonical_id not in dropped]
    if shuffle_seed is not None:
        items = list(items)
        random.Random(shuffle_seed).shuffle(items)

    out: dict[object, int] = {}
    for it in items:
        v = overrides.get(it.canonical_id, overrides.get(it.variable_id, value))
        if key == "opaque":
            k: object = it.item_id
        elif key == "legacy":
            k = f"{it.variable_id}.R{it.question}"
        elif key == "position":
            k = it.position
        else:
            k = it.canonical_id
        out[k] = v
    return out


def raw_item_map() -> dict:
    """A mutable copy of the packaged mapping document."""

    return copy.deepcopy(reg._read_packaged_map())


def build_custom_registry(
    *,
    reverse: set[str] | None = None,
    weights: dict[str, float] | None = None,
) -> Registry:
    """Packaged mapping with reverse flags / weights set on canonical ids."""

    raw = raw_item_map()
    reverse = reverse or set()
    weights = weights or {}
    for row in raw["items"]:
        cid = f"{row['variableId']}.{row['questionNumber']}"
        if cid in reverse:
            row["reverse"] = True
        if cid in weights:
            row["weight"] = weights[cid]
    return build_registry(raw)


@pytest.fixture
def responses() -> dict[object, int]:
    return build_responses()


@pytest.fixture
def registry() -> Registry:
    return reg.load()

# tests/test_result.py

from __future__ import annotations

import pytest

from tasky.core.errors import ExecutionFailed
from tasky.core.result import Failure, Success


def test_success_maps_and_unwraps() -> None:
    res = Success(2).map(lambda v: v * 10)
    assert res.is_success() and not res.is_failure()
    assert res.unwrap() == 20
    assert res.get_or_else(0) == 20
    assert res.map_error(lambda e: "ignored") is res


def test_flat_map_chains_into_failure() -> None:
    res = Success(1).flat_map(lambda v: Failure(ExecutionFailed(f"bad {v}")))
    assert res.is_failure()
    assert str(res.unwrap_error()) == "bad 1"


def test_failure_short_circuits() -> None:
    err = ExecutionFailed("boom")
    res = Failure(err)

    assert res.map(lambda v: v + 1) is res
    assert res.flat_map(lambda v: Success(v)) is res
    assert res.get_or_else("fallback") == "fallback"
    assert res.map_error(str).unwrap_error() == "boom"

    with pytest.raises(ValueError):
        res.unwrap()


def test_success_has_no_error() -> None:
    with pytest.raises(ValueError):
        Success("x").unwrap_error()

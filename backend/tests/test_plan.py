from __future__ import annotations

import pytest

from weldtrack import services
from weldtrack.domain import AppState, PlanItem
from weldtrack.errors import NotFoundError, ValidationError


def test_add_plan_item_creates_unlocked_item(state: AppState) -> None:
    result = services.add_plan_item(state, "xt44", 50)

    item = result.entity
    assert result.changed == ["plan"]
    assert item.article == "XT44"
    assert item.planned == 50
    assert item.completed == 0
    assert item.is_locked is False


def test_add_plan_item_merges_planned_quantity(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 50).state
    item_id = state.plan[0].id
    result = services.add_plan_item(state, "XT44", 25)

    assert len(result.state.plan) == 1
    assert result.state.plan[0].id == item_id
    assert result.state.plan[0].planned == 75


@pytest.mark.parametrize("planned", [0, -5])
def test_add_plan_item_rejects_non_positive_quantity(state: AppState, planned: float) -> None:
    with pytest.raises(ValidationError):
        services.add_plan_item(state, "XT44", planned)


def test_update_plan_item_overwrites_planned(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 50).state
    result = services.update_plan_item(state, state.plan[0].id, 10)
    assert result.state.plan[0].planned == 10


def test_update_plan_item_unknown_id(state: AppState) -> None:
    with pytest.raises(NotFoundError):
        services.update_plan_item(state, "missing", 10)


def test_update_plan_item_recomputes_lock(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 50).state
    services.apply_completion_delta(state.plan, "XT44", 30)
    item_id = state.plan[0].id

    locked = services.update_plan_item(state, item_id, 30).state
    assert locked.plan[0].is_locked is True

    unlocked = services.update_plan_item(locked, item_id, 31).state
    assert unlocked.plan[0].is_locked is False


def test_add_plan_item_to_locked_item_unlocks_it(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 10).state
    services.apply_completion_delta(state.plan, "XT44", 10)
    assert state.plan[0].is_locked is True

    result = services.add_plan_item(state, "XT44", 5)
    assert result.state.plan[0].is_locked is False


def test_delete_plan_item_is_idempotent(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 10).state
    item_id = state.plan[0].id
    result = services.delete_plan_item(state, item_id)
    assert result.state.plan == []

    again = services.delete_plan_item(result.state, item_id)
    assert again.changed == []
    assert again.state is result.state


def test_apply_completion_delta_clamps_at_zero(state: AppState) -> None:
    state = services.add_plan_item(state, "XT44", 10).state
    services.apply_completion_delta(state.plan, "XT44", 4)
    item = services.apply_completion_delta(state.plan, "XT44", -9)

    assert item.completed == 0
    assert item.is_locked is False


def test_apply_completion_delta_without_plan_item_is_noop(state: AppState) -> None:
    assert services.apply_completion_delta(state.plan, "XT44", 4) is None
    assert state.plan == []


@pytest.mark.parametrize(
    "planned, completed, expected",
    [
        (50, 50, True),
        (50, 60, True),
        (50, 49, False),
        (0, 0, False),
        (0, 10, False),
    ],
)
def test_lock_is_derived_when_loading(planned: float, completed: float, expected: bool) -> None:
    item = PlanItem.model_validate(
        {"article": "XT44", "planned": planned, "completed": completed, "isLocked": not expected}
    )
    assert item.is_locked is expected

import itertools

import pytest

from app.core.errors import InvalidTransition
from app.models.appointment import AppointmentStatus
from app.services.lifecycle import (
    RELAXED_TRANSITIONS,
    STRICT_TRANSITIONS,
    can_transition,
    ensure_transition,
)

ALL_PAIRS = list(itertools.product(AppointmentStatus, repeat=2))


@pytest.mark.parametrize("current, target", ALL_PAIRS)
def test_strict_table_decides_every_pair(current, target):
    allowed = target in STRICT_TRANSITIONS[current]
    assert can_transition(current.value, target.value, strict=True) is allowed
    if allowed:
        ensure_transition(current.value, target.value, strict=True)
    else:
        with pytest.raises(InvalidTransition):
            ensure_transition(current.value, target.value, appointment_id=7, strict=True)


@pytest.mark.parametrize("current, target", ALL_PAIRS)
def test_relaxed_table_decides_every_pair(current, target):
    allowed = target in RELAXED_TRANSITIONS[current]
    assert can_transition(current.value, target.value, strict=False) is allowed


def test_happy_path_is_allowed():
    path = ["scheduled", "confirmed", "checked-in", "in-exam", "completed"]
    for current, target in zip(path, path[1:]):
        assert can_transition(current, target, strict=True)


def test_strict_forbids_skipping_steps():
    assert not can_transition("scheduled", "completed", strict=True)
    assert not can_transition("confirmed", "in-exam", strict=True)


def test_relaxed_allows_start_and_complete_jumps():
    assert can_transition("scheduled", "in-exam", strict=False)
    assert can_transition("confirmed", "completed", strict=False)
    assert not can_transition("in-exam", "scheduled", strict=False)


def test_every_open_state_can_be_cancelled():
    for current in ("scheduled", "confirmed", "checked-in", "in-exam"):
        assert can_transition(current, "cancelled", strict=True)


@pytest.mark.parametrize("terminal", ["completed", "cancelled", "no-show"])
def test_terminal_states_have_no_exits(terminal):
    with pytest.raises(InvalidTransition) as exc_info:
        ensure_transition(terminal, "scheduled", appointment_id=3, strict=True)
    assert f"already {terminal}" in exc_info.value.message
    assert exc_info.value.appointment_id == 3


def test_default_table_follows_settings(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "strict_lifecycle", False)
    assert can_transition("scheduled", "completed")
    monkeypatch.setattr(settings, "strict_lifecycle", True)
    assert not can_transition("scheduled", "completed")

import pytest

from src.automation.dtos import ExecutionStatus
from src.automation.state_machine import (
    RETRY_FROM,
    RUN_NOW_FROM,
    SWEEP_FROM,
    TERMINAL_STATUSES,
    can_transition,
    is_terminal,
)


@pytest.mark.parametrize(
    "current,target",
    [
        (ExecutionStatus.PENDING, ExecutionStatus.PROCESSING),
        (ExecutionStatus.PENDING, ExecutionStatus.SKIPPED),
        (ExecutionStatus.PROCESSING, ExecutionStatus.COMPLETED),
        (ExecutionStatus.PROCESSING, ExecutionStatus.FAILED),
        (ExecutionStatus.FAILED, ExecutionStatus.PROCESSING),
    ],
)
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        (ExecutionStatus.PENDING, ExecutionStatus.COMPLETED),
        (ExecutionStatus.PROCESSING, ExecutionStatus.PENDING),
        (ExecutionStatus.FAILED, ExecutionStatus.SKIPPED),
        (ExecutionStatus.COMPLETED, ExecutionStatus.PROCESSING),
        (ExecutionStatus.SKIPPED, ExecutionStatus.PENDING),
    ],
)
def test_forbidden_transitions(current, target):
    assert not can_transition(current, target)


def test_completed_and_skipped_are_terminal():
    assert TERMINAL_STATUSES == {ExecutionStatus.COMPLETED, ExecutionStatus.SKIPPED}
    assert is_terminal(ExecutionStatus.SKIPPED)
    assert not is_terminal(ExecutionStatus.FAILED)


def test_claim_sources_are_valid_transitions():
    for source in (*RUN_NOW_FROM, *RETRY_FROM, *SWEEP_FROM):
        assert can_transition(source, ExecutionStatus.PROCESSING)

from src.automation.dtos import ExecutionStatus

# Allowed execution record transitions. COMPLETED and SKIPPED are terminal,
# FAILED can only go back to PROCESSING through an operator command.
TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.PROCESSING, ExecutionStatus.SKIPPED}),
    ExecutionStatus.PROCESSING: frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}),
    ExecutionStatus.FAILED: frozenset({ExecutionStatus.PROCESSING}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.SKIPPED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)

# Sources for the operator commands that claim a record
RUN_NOW_FROM = (ExecutionStatus.PENDING, ExecutionStatus.FAILED)
RETRY_FROM = (ExecutionStatus.FAILED,)
SWEEP_FROM = (ExecutionStatus.PENDING,)
# An RSVP change only advances a record that has not run yet
RSVP_ADVANCE_FROM = (ExecutionStatus.PENDING,)


def can_transition(current: ExecutionStatus, target: ExecutionStatus) -> bool:
    return target in TRANSITIONS[current]


def is_terminal(status: ExecutionStatus) -> bool:
    return status in TERMINAL_STATUSES

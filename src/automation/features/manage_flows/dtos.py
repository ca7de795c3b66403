from dataclasses import dataclass

from src.automation.dtos import ActionKind, FlowValidationError, TriggerKind
from src.automation.triggers import requires_delay_hours


@dataclass(frozen=True)
class FlowChanges:
    """Partial flow update. Only the fields listed in ``fields_set`` are applied."""

    fields_set: frozenset[str]
    name: str | None = None
    trigger: TriggerKind | None = None
    action: ActionKind | None = None
    delay_hours: int | None = None
    custom_message: str | None = None

    def has(self, field_name: str) -> bool:
        return field_name in self.fields_set


def validate_flow_config(trigger: TriggerKind, delay_hours: int | None) -> None:
    """Flexible triggers need a positive ``delay_hours``."""
    if delay_hours is not None and delay_hours <= 0:
        raise FlowValidationError("delay_hours must be a positive number of hours")
    if requires_delay_hours(trigger) and delay_hours is None:
        raise FlowValidationError(f"Trigger {trigger.value} requires delay_hours")

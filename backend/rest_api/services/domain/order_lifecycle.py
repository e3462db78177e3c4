"""
Order status state machine.

    pending → preparing → ready → served → completed
        └──────────┴──────────┴───────┴──→ cancelled

``completed`` and ``cancelled`` are terminal. Moving to the current status
is always allowed and changes nothing.
"""

from __future__ import annotations

from shared.config.constants import (
    ORDER_STATUS_DESCRIPTIONS,
    ORDER_TRANSITIONS,
)
from shared.utils.exceptions import InvalidTransitionError, ValidationError


class StatusTransitionValidator:
    """Pure transition checks; no storage, no side effects."""

    def __init__(self, transitions: dict[str, list[str]] | None = None):
        self._transitions = transitions or ORDER_TRANSITIONS

    @property
    def statuses(self) -> list[str]:
        return list(self._transitions)

    def allowed_next(self, current: str) -> list[str]:
        """Statuses reachable in one step (empty for terminal states)."""
        return list(self._transitions.get(current, []))

    def is_valid_transition(self, current: str, target: str) -> bool:
        if current not in self._transitions or target not in self._transitions:
            return False
        return target == current or target in self._transitions[current]

    def is_terminal(self, status: str) -> bool:
        return status in self._transitions and not self._transitions[status]

    def validate(self, current: str, target: str, **log_context) -> None:
        """
        Raise unless ``current → target`` is allowed.

        Raises:
            ValidationError: Unknown target status
            InvalidTransitionError: Edge not in the graph (lists allowed next statuses)
        """
        if target not in self._transitions:
            raise ValidationError(
                f"Invalid status '{target}'. Must be one of: {', '.join(self._transitions)}",
                **log_context,
            )
        if not self.is_valid_transition(current, target):
            raise InvalidTransitionError(current, target, self.allowed_next(current), **log_context)

    def describe(self, status: str) -> str:
        return ORDER_STATUS_DESCRIPTIONS.get(status, status)


# Shared default instance
status_validator = StatusTransitionValidator()

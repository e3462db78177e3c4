"""
Tests for the order status state machine.
"""

import pytest
from hypothesis import given, strategies as st

from rest_api.services.domain.order_lifecycle import StatusTransitionValidator, status_validator
from shared.config.constants import ORDER_TRANSITIONS, OrderStatus
from shared.utils.exceptions import InvalidTransitionError, ValidationError

statuses = st.sampled_from(OrderStatus.ALL)


class TestTransitionGraph:
    def test_forward_path(self):
        path = ["pending", "preparing", "ready", "served", "completed"]
        for current, target in zip(path, path[1:]):
            assert status_validator.is_valid_transition(current, target)

    def test_terminal_states(self):
        assert status_validator.is_terminal("completed")
        assert status_validator.is_terminal("cancelled")
        assert not status_validator.is_terminal("served")
        assert status_validator.allowed_next("completed") == []

    def test_pending_to_ready_is_rejected_with_allowed_list(self):
        with pytest.raises(InvalidTransitionError) as exc:
            status_validator.validate("pending", "ready", order_id=1)

        assert exc.value.status_code == 400
        assert exc.value.allowed == ["preparing", "cancelled"]
        assert exc.value.detail == (
            "Invalid status transition from pending to ready. "
            "Allowed transitions: preparing, cancelled"
        )

    def test_terminal_state_error_names_no_transitions(self):
        with pytest.raises(InvalidTransitionError) as exc:
            status_validator.validate("completed", "cancelled")
        assert "none (terminal state)" in exc.value.detail

    def test_unknown_target_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc:
            status_validator.validate("pending", "delivered")
        assert "Invalid status 'delivered'" in exc.value.detail

    def test_custom_graph(self):
        validator = StatusTransitionValidator({"open": ["closed"], "closed": []})
        assert validator.statuses == ["open", "closed"]
        assert validator.is_valid_transition("open", "closed")
        assert not validator.is_valid_transition("closed", "open")

    def test_describe(self):
        assert status_validator.describe("ready") == "Order is ready for pickup/serving"


class TestTransitionProperties:
    @given(current=statuses)
    def test_same_status_always_allowed(self, current):
        assert status_validator.is_valid_transition(current, current)

    @given(current=statuses, target=statuses)
    def test_validity_matches_graph(self, current, target):
        expected = target == current or target in ORDER_TRANSITIONS[current]
        assert status_validator.is_valid_transition(current, target) is expected

    @given(current=statuses, target=statuses)
    def test_terminal_states_never_leave(self, current, target):
        if status_validator.is_terminal(current) and target != current:
            assert not status_validator.is_valid_transition(current, target)

    @given(current=statuses)
    def test_non_terminal_states_can_cancel(self, current):
        if not status_validator.is_terminal(current):
            assert status_validator.is_valid_transition(current, OrderStatus.CANCELLED)

    @given(current=statuses, target=statuses)
    def test_validate_raises_exactly_for_invalid_edges(self, current, target):
        if status_validator.is_valid_transition(current, target):
            status_validator.validate(current, target)
        else:
            with pytest.raises(InvalidTransitionError):
                status_validator.validate(current, target)

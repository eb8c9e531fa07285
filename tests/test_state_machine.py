"""Tests for payroll record state machine."""

import pytest

from salarysync.services.state_machine import (
    ApprovalAction,
    InvalidTransitionError,
    PayrollStateMachine,
    PayrollStatus,
)


class TestStateMachine:
    """Tests for PayrollStateMachine."""

    def test_valid_transitions(self):
        assert PayrollStateMachine.can_transition(PayrollStatus.DRAFT, PayrollStatus.PENDING)
        assert PayrollStateMachine.can_transition(PayrollStatus.PENDING, PayrollStatus.APPROVED)
        assert PayrollStateMachine.can_transition(PayrollStatus.PENDING, PayrollStatus.REJECTED)
        assert PayrollStateMachine.can_transition(PayrollStatus.APPROVED, PayrollStatus.FINALIZED)
        assert PayrollStateMachine.can_transition(PayrollStatus.FINALIZED, PayrollStatus.PAID)
        assert PayrollStateMachine.can_transition(PayrollStatus.PAID, PayrollStatus.CANCELLED)

    def test_invalid_transitions(self):
        assert not PayrollStateMachine.can_transition(PayrollStatus.DRAFT, PayrollStatus.APPROVED)
        assert not PayrollStateMachine.can_transition(PayrollStatus.APPROVED, PayrollStatus.REJECTED)
        assert not PayrollStateMachine.can_transition(PayrollStatus.FINALIZED, PayrollStatus.DRAFT)
        assert not PayrollStateMachine.can_transition(PayrollStatus.REJECTED, PayrollStatus.PENDING)

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition(PayrollStatus.DRAFT, PayrollStatus.PAID)

        assert exc_info.value.from_status == "draft"
        assert exc_info.value.to_status == "paid"
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_terminal_states(self):
        assert PayrollStateMachine.is_terminal(PayrollStatus.REJECTED)
        assert PayrollStateMachine.is_terminal(PayrollStatus.CANCELLED)
        assert not PayrollStateMachine.is_terminal(PayrollStatus.PAID)

    def test_results_immutable(self):
        assert PayrollStateMachine.are_results_immutable(PayrollStatus.FINALIZED)
        assert PayrollStateMachine.are_results_immutable(PayrollStatus.PAID)
        assert not PayrollStateMachine.are_results_immutable(PayrollStatus.APPROVED)

    def test_next_statuses(self):
        assert PayrollStateMachine.get_next_statuses(PayrollStatus.APPROVED) == [
            PayrollStatus.FINALIZED
        ]

    def test_string_statuses_are_accepted(self):
        assert PayrollStateMachine.can_transition("draft", "pending")
        assert PayrollStateMachine.target_for("mark_paid") == PayrollStatus.PAID


class TestValidateAction:
    def test_full_happy_path(self):
        status = PayrollStatus.DRAFT
        status = PayrollStateMachine.validate_action(status, ApprovalAction.SUBMIT, actor="clerk")
        status = PayrollStateMachine.validate_action(
            status, ApprovalAction.APPROVE, actor="manager", submitted_by="clerk"
        )
        status = PayrollStateMachine.validate_action(status, ApprovalAction.FINALIZE, actor="manager")
        status = PayrollStateMachine.validate_action(status, ApprovalAction.MARK_PAID)

        assert status == PayrollStatus.PAID

    def test_submit_requires_calculation(self):
        with pytest.raises(InvalidTransitionError, match="no calculation"):
            PayrollStateMachine.validate_action(
                "draft", ApprovalAction.SUBMIT, has_calculation=False
            )

    def test_approver_must_differ_from_submitter(self):
        with pytest.raises(InvalidTransitionError, match="differ"):
            PayrollStateMachine.validate_action(
                "pending", ApprovalAction.APPROVE, actor="clerk", submitted_by="clerk"
            )

    def test_approve_requires_actor(self):
        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.validate_action("pending", ApprovalAction.APPROVE, actor=None)

    def test_submit_requires_actor(self):
        with pytest.raises(InvalidTransitionError, match="submitter identity"):
            PayrollStateMachine.validate_action("draft", ApprovalAction.SUBMIT, actor=None)

    def test_approve_requires_recorded_submitter(self):
        with pytest.raises(InvalidTransitionError, match="no recorded submitter"):
            PayrollStateMachine.validate_action(
                "pending", ApprovalAction.APPROVE, actor="manager", submitted_by=None
            )

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reject_requires_reason(self, reason):
        with pytest.raises(InvalidTransitionError, match="reason"):
            PayrollStateMachine.validate_action("pending", ApprovalAction.REJECT, reason=reason)

    def test_reject_after_approval(self):
        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.validate_action(
                "approved", ApprovalAction.REJECT, reason="wrong hours"
            )

    def test_paid_record_cannot_be_cancelled_directly(self):
        with pytest.raises(InvalidTransitionError, match="reversal"):
            PayrollStateMachine.validate_action("paid", ApprovalAction.CANCEL)

    def test_reverse_paid_record(self):
        target = PayrollStateMachine.validate_action(
            "paid", ApprovalAction.REVERSE, reason="paid twice"
        )

        assert target == PayrollStatus.CANCELLED

    def test_reverse_only_applies_to_paid(self):
        with pytest.raises(InvalidTransitionError, match="only paid"):
            PayrollStateMachine.validate_action("draft", ApprovalAction.REVERSE, reason="typo")

    def test_finalized_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransitionError):
            PayrollStateMachine.validate_action("finalized", ApprovalAction.CANCEL)

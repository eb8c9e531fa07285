"""Payroll record state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from salarysync.errors import PayrollError


class PayrollStatus(str, Enum):
    """Payroll record status values."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FINALIZED = "finalized"
    PAID = "paid"
    CANCELLED = "cancelled"


class ApprovalAction(str, Enum):
    """Actions a user can apply to payroll records."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    FINALIZE = "finalize"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"
    REVERSE = "reverse"


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollStateMachine:
    """State machine for payroll record status transitions.

    Allowed transitions:
    - draft → pending (submit)
    - draft → cancelled
    - pending → approved (approver must differ from submitter)
    - pending → rejected (reason required)
    - pending → cancelled
    - approved → finalized
    - finalized → paid
    - paid → cancelled (reversal only)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollStatus.DRAFT: [PayrollStatus.PENDING, PayrollStatus.CANCELLED],
        PayrollStatus.PENDING: [
            PayrollStatus.APPROVED,
            PayrollStatus.REJECTED,
            PayrollStatus.CANCELLED,
        ],
        PayrollStatus.APPROVED: [PayrollStatus.FINALIZED],
        PayrollStatus.FINALIZED: [PayrollStatus.PAID],
        PayrollStatus.PAID: [PayrollStatus.CANCELLED],
        PayrollStatus.REJECTED: [],  # Terminal state
        PayrollStatus.CANCELLED: [],  # Terminal state
    }

    ACTION_TARGETS: dict[str, PayrollStatus] = {
        ApprovalAction.SUBMIT: PayrollStatus.PENDING,
        ApprovalAction.APPROVE: PayrollStatus.APPROVED,
        ApprovalAction.REJECT: PayrollStatus.REJECTED,
        ApprovalAction.FINALIZE: PayrollStatus.FINALIZED,
        ApprovalAction.MARK_PAID: PayrollStatus.PAID,
        ApprovalAction.CANCEL: PayrollStatus.CANCELLED,
        ApprovalAction.REVERSE: PayrollStatus.CANCELLED,
    }

    # Statuses where the calculation is locked
    RESULTS_IMMUTABLE = {
        PayrollStatus.FINALIZED,
        PayrollStatus.PAID,
    }

    # Statuses that no longer occupy the employee's pay period
    RELEASED = {
        PayrollStatus.REJECTED,
        PayrollStatus.CANCELLED,
    }

    # Statuses a batch re-run may replace
    REPLACEABLE = {PayrollStatus.DRAFT}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def are_results_immutable(cls, status: str) -> bool:
        return status in cls.RESULTS_IMMUTABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def target_for(cls, action: str) -> PayrollStatus:
        return cls.ACTION_TARGETS[ApprovalAction(action)]

    @classmethod
    def validate_action(
        cls,
        current_status: str,
        action: str,
        *,
        actor: str | None = None,
        submitted_by: str | None = None,
        has_calculation: bool = True,
        reason: str | None = None,
    ) -> PayrollStatus:
        """Validate an action against a record, returning the target status.

        Raises InvalidTransitionError when the action is not allowed from
        ``current_status`` or one of its preconditions fails.
        """
        action = ApprovalAction(action)
        current = PayrollStatus(current_status)
        target = cls.ACTION_TARGETS[action]

        if not cls.can_transition(current, target):
            raise InvalidTransitionError(current, target)

        if current == PayrollStatus.PAID and action != ApprovalAction.REVERSE:
            raise InvalidTransitionError(
                current, target, "paid records can only be cancelled by a reversal"
            )
        if action == ApprovalAction.REVERSE and current != PayrollStatus.PAID:
            raise InvalidTransitionError(current, target, "only paid records can be reversed")

        if action == ApprovalAction.SUBMIT:
            if not has_calculation:
                raise InvalidTransitionError(current, target, "record has no calculation result")
            if not actor:
                raise InvalidTransitionError(current, target, "submitter identity is required")

        if action == ApprovalAction.APPROVE:
            if not actor:
                raise InvalidTransitionError(current, target, "approver identity is required")
            if not submitted_by:
                raise InvalidTransitionError(current, target, "record has no recorded submitter")
            if actor == submitted_by:
                raise InvalidTransitionError(
                    current, target, "approver must differ from the submitter"
                )

        if action in (ApprovalAction.REJECT, ApprovalAction.REVERSE):
            if not reason or not reason.strip():
                raise InvalidTransitionError(current, target, "a reason is required")

        return target

"""Approval workflow - applies state machine actions to payroll records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salarysync.errors import PayrollError, PersistenceConflictError, RecordNotFoundError
from salarysync.events import (
    DomainEvent,
    EventEmitter,
    EventMetadata,
    PayrollRecordFinalized,
    PayrollRecordPaid,
    PayrollRecordReversed,
)
from salarysync.models import PayrollApprovalHistory, PayrollRecord, PayrollReversal
from salarysync.services.state_machine import ApprovalAction, PayrollStateMachine

logger = logging.getLogger(__name__)


@dataclass
class RecordOutcome:
    """Result of applying an action to one record."""

    payroll_record_id: UUID
    success: bool
    previous_status: str | None = None
    new_status: str | None = None
    error: str | None = None
    error_code: str | None = None


@dataclass
class ApprovalResult:
    """Per-record report of a bulk action."""

    action: ApprovalAction
    outcomes: list[RecordOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def http_status(self) -> int:
        if self.failed == 0:
            return 200
        if self.succeeded:
            return 207
        return 422

    @property
    def message(self) -> str:
        msg = f"{self.action.value}: {self.succeeded} record(s) updated"
        if self.failed:
            msg += f", {self.failed} failed"
        return msg


class ApprovalService:
    """Bulk workflow actions with per-record atomicity.

    Each record is validated and transitioned in its own transaction, so an
    invalid transition on one record leaves the others unaffected and never
    leaves a record half-updated. Events are emitted only after the record's
    transaction has committed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: EventEmitter | None = None,
    ):
        self.session_factory = session_factory
        self.emitter = emitter

    async def apply_action(
        self,
        company_id: UUID,
        payroll_record_ids: list[UUID],
        action: ApprovalAction | str,
        *,
        actor: str | None = None,
        comments: str | None = None,
        reason: str | None = None,
        payment_reference: str | None = None,
    ) -> ApprovalResult:
        """Apply ``action`` to every record, collecting per-record outcomes."""
        action = ApprovalAction(action)
        result = ApprovalResult(action=action)

        for record_id in dict.fromkeys(payroll_record_ids):
            try:
                outcome, events = await self._apply_one(
                    company_id,
                    record_id,
                    action,
                    actor=actor,
                    comments=comments,
                    reason=reason,
                    payment_reference=payment_reference,
                )
            except PayrollError as exc:
                result.outcomes.append(
                    RecordOutcome(
                        payroll_record_id=record_id,
                        success=False,
                        error=str(exc),
                        error_code=exc.code,
                    )
                )
                continue
            except Exception:
                logger.exception(
                    "Unexpected failure applying %s to record %s", action.value, record_id
                )
                result.outcomes.append(
                    RecordOutcome(
                        payroll_record_id=record_id,
                        success=False,
                        error="Unexpected error while applying the action",
                        error_code="INTERNAL_ERROR",
                    )
                )
                continue

            result.outcomes.append(outcome)
            if self.emitter is not None:
                for event in events:
                    self.emitter.emit(event)

        logger.info(
            "Applied %s for company %s: %d succeeded, %d failed",
            action.value,
            company_id,
            result.succeeded,
            result.failed,
        )
        return result

    async def _apply_one(
        self,
        company_id: UUID,
        record_id: UUID,
        action: ApprovalAction,
        *,
        actor: str | None,
        comments: str | None,
        reason: str | None,
        payment_reference: str | None,
    ) -> tuple[RecordOutcome, list[DomainEvent]]:
        try:
            return await self._transition(
                company_id,
                record_id,
                action,
                actor=actor,
                comments=comments,
                reason=reason,
                payment_reference=payment_reference,
            )
        except IntegrityError as exc:
            raise PersistenceConflictError(
                f"Payroll record {record_id} was changed concurrently"
            ) from exc

    async def _transition(
        self,
        company_id: UUID,
        record_id: UUID,
        action: ApprovalAction,
        *,
        actor: str | None,
        comments: str | None,
        reason: str | None,
        payment_reference: str | None,
    ) -> tuple[RecordOutcome, list[DomainEvent]]:
        async with self.session_factory() as session, session.begin():
            record = await session.scalar(
                select(PayrollRecord)
                .where(
                    PayrollRecord.payroll_record_id == record_id,
                    PayrollRecord.company_id == company_id,
                )
                .with_for_update()
            )
            if record is None:
                raise RecordNotFoundError(record_id)

            previous = record.status
            target = PayrollStateMachine.validate_action(
                previous,
                action,
                actor=actor,
                submitted_by=record.submitted_by,
                has_calculation=bool(record.calculation_json),
                reason=reason,
            )

            now = datetime.now(timezone.utc)
            record.status = target.value
            record.version += 1
            if comments:
                record.comments = comments

            if action == ApprovalAction.SUBMIT:
                record.submitted_by = actor
                record.submitted_at = now
            elif action == ApprovalAction.APPROVE:
                record.approved_by = actor
                record.approved_at = now
            elif action == ApprovalAction.REJECT:
                record.rejected_by = actor
                record.rejected_at = now
                record.rejection_reason = reason.strip()
            elif action == ApprovalAction.FINALIZE:
                record.finalized_by = actor
                record.finalized_at = now
            elif action == ApprovalAction.MARK_PAID:
                record.paid_at = now
                record.payment_reference = payment_reference
            elif action in (ApprovalAction.CANCEL, ApprovalAction.REVERSE):
                record.cancelled_by = actor
                record.cancelled_at = now

            session.add(
                PayrollApprovalHistory(
                    payroll_record_id=record.payroll_record_id,
                    company_id=company_id,
                    action=action.value,
                    previous_status=previous,
                    new_status=target.value,
                    actor=actor,
                    comments=comments or reason,
                    acted_at=now,
                )
            )

            reversal = None
            if action == ApprovalAction.REVERSE:
                reversal = PayrollReversal(
                    payroll_record_id=record.payroll_record_id,
                    company_id=company_id,
                    reason=reason.strip(),
                    reversed_by=actor,
                    reversed_at=now,
                    gross_pay=-record.gross_pay,
                    net_pay=-record.net_pay,
                    total_deductions=-record.total_deductions,
                    total_employer_cost=-record.total_employer_cost,
                )
                session.add(reversal)

            await session.flush()
            events = self._build_events(company_id, record, action, actor, reversal)

        logger.debug("Record %s moved %s -> %s", record_id, previous, target.value)
        outcome = RecordOutcome(
            payroll_record_id=record_id,
            success=True,
            previous_status=previous,
            new_status=target.value,
        )
        return outcome, events

    @staticmethod
    def _build_events(
        company_id: UUID,
        record: PayrollRecord,
        action: ApprovalAction,
        actor: str | None,
        reversal: PayrollReversal | None,
    ) -> list[DomainEvent]:
        metadata = EventMetadata.create(
            company_id=company_id,
            correlation_id=record.payroll_record_id,
            actor_id=actor,
        )
        if action == ApprovalAction.FINALIZE:
            return [
                PayrollRecordFinalized(
                    metadata=metadata,
                    payroll_record_id=record.payroll_record_id,
                    employee_id=record.employee_id,
                    period_start=record.period_start,
                    period_end=record.period_end,
                    gross_pay=record.gross_pay,
                    net_pay=record.net_pay,
                    total_employer_cost=record.total_employer_cost,
                )
            ]
        if action == ApprovalAction.MARK_PAID:
            return [
                PayrollRecordPaid(
                    metadata=metadata,
                    payroll_record_id=record.payroll_record_id,
                    employee_id=record.employee_id,
                    net_pay=record.net_pay,
                    payment_reference=record.payment_reference,
                )
            ]
        if action == ApprovalAction.REVERSE and reversal is not None:
            return [
                PayrollRecordReversed(
                    metadata=metadata,
                    payroll_record_id=record.payroll_record_id,
                    payroll_reversal_id=reversal.payroll_reversal_id,
                    employee_id=record.employee_id,
                    reason=reversal.reason,
                    gross_pay=reversal.gross_pay,
                    net_pay=reversal.net_pay,
                )
            ]
        return []

    async def get_record(self, company_id: UUID, record_id: UUID) -> PayrollRecord:
        async with self.session_factory() as session:
            record = await session.scalar(
                select(PayrollRecord).where(
                    PayrollRecord.payroll_record_id == record_id,
                    PayrollRecord.company_id == company_id,
                )
            )
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    async def list_records(
        self,
        company_id: UUID,
        *,
        status: str | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        employee_id: UUID | None = None,
    ) -> list[PayrollRecord]:
        query = select(PayrollRecord).where(PayrollRecord.company_id == company_id)
        if status is not None:
            query = query.where(PayrollRecord.status == status)
        if period_start is not None:
            query = query.where(PayrollRecord.period_end >= period_start)
        if period_end is not None:
            query = query.where(PayrollRecord.period_start <= period_end)
        if employee_id is not None:
            query = query.where(PayrollRecord.employee_id == employee_id)
        async with self.session_factory() as session:
            result = await session.execute(
                query.order_by(PayrollRecord.period_start.desc(), PayrollRecord.created_at)
            )
            return list(result.scalars().all())

    async def get_history(
        self, company_id: UUID, record_id: UUID
    ) -> list[PayrollApprovalHistory]:
        await self.get_record(company_id, record_id)
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayrollApprovalHistory)
                .where(
                    PayrollApprovalHistory.payroll_record_id == record_id,
                    PayrollApprovalHistory.company_id == company_id,
                )
                .order_by(PayrollApprovalHistory.acted_at)
            )
            return list(result.scalars().all())

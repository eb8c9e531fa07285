"""Domain event types for payroll operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata

Payslip and report generation subscribe to the finalized and paid events.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    BATCH = "batch"
    APPROVAL = "approval"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    company_id: UUID
    correlation_id: UUID  # Links related events
    actor_id: str | None  # User that triggered, None for system
    source_service: str
    version: int = 1  # Schema version for evolution

    @classmethod
    def create(
        cls,
        company_id: UUID,
        correlation_id: UUID | None = None,
        actor_id: str | None = None,
        source_service: str = "salarysync",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            company_id=company_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Batch Events
# =============================================================================


@dataclass(frozen=True)
class PayrollBatchCompleted(DomainEvent):
    """A non-dry-run batch persisted its successful results."""

    batch_id: UUID
    period_start: date
    period_end: date
    total_processed: int
    total_errors: int
    total_skipped: int
    total_gross_pay: Decimal
    total_net_pay: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.BATCH


# =============================================================================
# Approval Events
# =============================================================================


@dataclass(frozen=True)
class PayrollRecordFinalized(DomainEvent):
    """A payroll record was locked and is ready for payslip generation."""

    payroll_record_id: UUID
    employee_id: UUID
    period_start: date
    period_end: date
    gross_pay: Decimal
    net_pay: Decimal
    total_employer_cost: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class PayrollRecordPaid(DomainEvent):
    """Payment of a finalized payroll record was confirmed."""

    payroll_record_id: UUID
    employee_id: UUID
    net_pay: Decimal
    payment_reference: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


@dataclass(frozen=True)
class PayrollRecordReversed(DomainEvent):
    """A paid payroll record was voided by an appended reversal."""

    payroll_record_id: UUID
    payroll_reversal_id: UUID
    employee_id: UUID
    reason: str
    gross_pay: Decimal
    net_pay: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.APPROVAL


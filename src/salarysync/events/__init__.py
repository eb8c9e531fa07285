"""Domain events for payroll operations."""

from salarysync.events.emitter import EventEmitter
from salarysync.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    PayrollBatchCompleted,
    PayrollRecordFinalized,
    PayrollRecordPaid,
    PayrollRecordReversed,
)

__all__ = [
    "DomainEvent",
    "EventCategory",
    "EventEmitter",
    "EventMetadata",
    "PayrollBatchCompleted",
    "PayrollRecordFinalized",
    "PayrollRecordPaid",
    "PayrollRecordReversed",
]

"""Pytest fixtures for payroll engine tests."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from salarysync.calculators.engine import PayrollCalculator
from salarysync.config import Settings
from salarysync.events import EventEmitter

from factories import make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def calculator() -> PayrollCalculator:
    """Calculator with fixed configuration, independent of the environment."""
    return PayrollCalculator(
        overtime_multiplier=Decimal("1.5"),
        proration_method="calendar",
        engine_version="test-1.0.0",
    )


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()

"""
Shared pytest fixtures: rule/calendar/fee factories, sample units and an
in-memory store standing in for PostgreSQL or PostgREST.
"""

from datetime import date
from decimal import Decimal

import pytest

from pricing_engine import UnitNotFoundError
from pricing_models import (
    AdjustmentKind,
    AdminFee,
    AvailabilityEntry,
    BookableUnit,
    FeeScope,
    FeeType,
    PricingRule,
    Room,
    RuleKind,
    UnitType,
)
from pricing_store import PricingStore


@pytest.fixture
def make_rule():
    """Factory for PricingRule with sensible defaults (unit-wide, active)."""
    counter = {'n': 0}

    def _make(kind='discount', adjustment='percentage', value=-10, **kwargs):
        counter['n'] += 1
        kwargs.setdefault('id', f"rule-{counter['n']}")
        kwargs.setdefault('accommodation_id', 'acc-1')
        if 'days_of_week' in kwargs:
            kwargs['days_of_week'] = frozenset(kwargs['days_of_week'])
        return PricingRule(
            kind=RuleKind(kind),
            adjustment=AdjustmentKind(adjustment),
            value=Decimal(str(value)),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_entry():
    def _make(day, is_available=True, price_override=None, **kwargs):
        return AvailabilityEntry(
            day=day,
            is_available=is_available,
            price_override=Decimal(str(price_override)) if price_override is not None else None,
            **kwargs,
        )

    return _make


@pytest.fixture
def accommodation():
    return BookableUnit(
        id='acc-1',
        unit_type=UnitType.ACCOMMODATION,
        base_price=Decimal('200'),
        cleaning_fee=Decimal('0'),
    )


@pytest.fixture
def vehicle():
    return BookableUnit(
        id='veh-1',
        unit_type=UnitType.VEHICLE,
        base_price=Decimal('50'),
        cleaning_fee=Decimal('10'),
        insurance_included=False,
    )


@pytest.fixture
def rooms():
    return [
        Room(id='room-a', accommodation_id='acc-1', price_per_night=Decimal('120')),
        Room(id='room-b', accommodation_id='acc-1', price_per_night=Decimal('90')),
        Room(id='room-c', accommodation_id='acc-1', price_per_night=Decimal('40'), is_active=False),
    ]


@pytest.fixture
def platform_fees():
    return [
        AdminFee(name='Service Fee', fee_type=FeeType.PERCENTAGE, amount=Decimal('10')),
        AdminFee(name='Taxes', fee_type=FeeType.PERCENTAGE, amount=Decimal('5')),
    ]


@pytest.fixture
def stay_dates():
    # Monday 2025-06-02 .. Thursday 2025-06-05: three nights
    return date(2025, 6, 2), date(2025, 6, 5)


class InMemoryStore(PricingStore):
    """Store double keyed by (unit_type, unit_id); records calls."""

    def __init__(self, units=(), calendars=None, rules=None, fees=(), rooms=None):
        self.units = {(u.unit_type, u.id): u for u in units}
        self.calendars = calendars or {}
        self.rules = rules or {}
        self.fees = list(fees)
        self.rooms = rooms or {}
        self.calls = []
        self.closed = False

    def close(self):
        self.closed = True

    def fetch_unit(self, unit_type, unit_id):
        self.calls.append(('unit', unit_type, unit_id))
        try:
            return self.units[(unit_type, unit_id)]
        except KeyError:
            raise UnitNotFoundError(f"{unit_type.value} {unit_id} not found")

    def fetch_rooms(self, accommodation_id):
        return list(self.rooms.get(accommodation_id, []))

    def fetch_calendar(self, unit_type, unit_id, start, end):
        self.calls.append(('calendar', unit_type, unit_id, start, end))
        return [
            e for e in self.calendars.get((unit_type, unit_id), [])
            if start <= e.day <= end
        ]

    def fetch_pricing_rules(self, unit_type, unit_id):
        return list(self.rules.get((unit_type, unit_id), []))

    def fetch_admin_fees(self, unit_type):
        scope = FeeScope.VEHICLE if unit_type is UnitType.VEHICLE else FeeScope.ACCOMMODATION
        return [f for f in self.fees if f.applies_to in (FeeScope.BOTH, scope)]


@pytest.fixture
def in_memory_store():
    return InMemoryStore

"""
Rental Pricing Data Model
=========================
Read-only snapshots of the three store collections the engine consumes
(availability_calendar, supplier_pricing_rules, admin_fees), the bookable
units they attach to, and the engine's output records.

Rows arrive as plain dicts (psycopg2 cursor rows zipped with column names,
or PostgREST JSON). `from_row` parsers normalise them into frozen
dataclasses with Decimal money and `datetime.date` days.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class InvalidRowError(ValueError):
    """A store row could not be parsed into a model."""
    pass


# =====================================================
# ENUMS
# =====================================================

class UnitType(str, Enum):
    ACCOMMODATION = 'accommodation'
    VEHICLE = 'vehicle'
    ROOM = 'room'


class RuleKind(str, Enum):
    """Discounts lower the running price, markups raise it."""
    DISCOUNT = 'discount'
    SEASONAL = 'seasonal'
    WEEKEND = 'weekend'

    @property
    def direction(self) -> int:
        return -1 if self is RuleKind.DISCOUNT else 1


class AdjustmentKind(str, Enum):
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class FeeType(str, Enum):
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class FeeScope(str, Enum):
    ACCOMMODATION = 'accommodation'
    VEHICLE = 'vehicle'
    BOTH = 'both'


class CalculationType(str, Enum):
    BOOKING = 'booking'
    LISTING = 'listing'


# =====================================================
# PARSING HELPERS
# =====================================================

def _enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise InvalidRowError(f"Invalid {field_name}: {value!r}")


def parse_day(value) -> Optional[date]:
    """Accept a date, a datetime, or an ISO 8601 string (time part ignored)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidRowError(f"Invalid date: {value!r}")


def parse_money(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value is None or value == '':
        return default
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidRowError(f"Invalid amount: {value!r}")


def _optional_int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRowError(f"Invalid integer: {value!r}")


def _optional_id(value) -> Optional[str]:
    return str(value) if value is not None and value != '' else None


# =====================================================
# STORE ROWS
# =====================================================

@dataclass(frozen=True)
class AvailabilityEntry:
    """One calendar day for one unit. Absence of an entry means available."""
    day: date
    is_available: bool = True
    price_override: Optional[Decimal] = None
    minimum_stay: Optional[int] = None
    maximum_stay: Optional[int] = None
    unit_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AvailabilityEntry':
        day = parse_day(row.get('date'))
        if day is None:
            raise InvalidRowError("Calendar row without date")
        unit_id = (
            row.get('unit_id') or row.get('room_id')
            or row.get('accommodation_id') or row.get('vehicle_id')
        )
        return cls(
            day=day,
            is_available=bool(row.get('is_available', True)),
            price_override=parse_money(row.get('price_override')),
            minimum_stay=_optional_int(row.get('minimum_stay')),
            maximum_stay=_optional_int(row.get('maximum_stay')),
            unit_id=_optional_id(unit_id),
        )


@dataclass(frozen=True)
class PricingRule:
    """
    Supplier-authored adjustment, tagged by (kind, adjustment).
    `value` keeps the stored sign; composition uses its magnitude and
    lets `kind.direction` decide whether it lowers or raises the price.
    """
    id: str
    kind: RuleKind
    adjustment: AdjustmentKind
    value: Decimal
    accommodation_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    room_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    days_of_week: FrozenSet[int] = frozenset()
    min_nights: Optional[int] = None
    max_nights: Optional[int] = None
    priority: int = 0
    is_active: bool = True

    @property
    def magnitude(self) -> Decimal:
        return abs(self.value)

    @property
    def is_room_scoped(self) -> bool:
        return self.room_id is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'PricingRule':
        # PostgREST rows are flat, the wire schema nests the scope ids
        scope = row.get('scope_ids') or row
        days = row.get('days_of_week') or []
        try:
            days_of_week = frozenset(int(d) for d in days)
        except (TypeError, ValueError):
            raise InvalidRowError(f"Invalid days_of_week: {days!r}")
        if any(d < 0 or d > 6 for d in days_of_week):
            raise InvalidRowError(f"days_of_week out of range: {sorted(days_of_week)}")

        return cls(
            id=str(row.get('id', '')),
            kind=_enum(RuleKind, row.get('rule_type'), 'rule_type'),
            adjustment=_enum(AdjustmentKind, row.get('adjustment_type'), 'adjustment_type'),
            value=parse_money(row.get('adjustment_value'), Decimal('0')),
            accommodation_id=_optional_id(scope.get('accommodation_id')),
            vehicle_id=_optional_id(scope.get('vehicle_id')),
            room_id=_optional_id(scope.get('room_id')),
            start_date=parse_day(row.get('start_date')),
            end_date=parse_day(row.get('end_date')),
            days_of_week=days_of_week,
            min_nights=_optional_int(row.get('min_nights')),
            max_nights=_optional_int(row.get('max_nights')),
            priority=_optional_int(row.get('priority')) or 0,
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class AdminFee:
    name: str
    fee_type: FeeType
    amount: Decimal
    applies_to: FeeScope = FeeScope.BOTH
    calculation_type: CalculationType = CalculationType.BOOKING
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AdminFee':
        return cls(
            name=str(row.get('name', '')),
            fee_type=_enum(FeeType, row.get('fee_type'), 'fee_type'),
            amount=parse_money(row.get('amount'), Decimal('0')),
            applies_to=_enum(FeeScope, row.get('applies_to', 'both'), 'applies_to'),
            calculation_type=_enum(
                CalculationType, row.get('calculation_type', 'booking'), 'calculation_type'
            ),
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class Room:
    id: str
    accommodation_id: str
    price_per_night: Decimal
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Room':
        return cls(
            id=str(row['id']),
            accommodation_id=str(row.get('accommodation_id', '')),
            price_per_night=parse_money(row.get('price_per_night'), Decimal('0')),
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class BookableUnit:
    """
    An accommodation or vehicle as seen by the pricing engine.
    `base_price` is price_per_night for accommodations, price_per_day for vehicles.
    """
    id: str
    unit_type: UnitType
    base_price: Decimal
    cleaning_fee: Decimal = Decimal('0')
    min_stay: int = 1
    max_stay: Optional[int] = None
    insurance_included: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any], unit_type: UnitType) -> 'BookableUnit':
        if unit_type is UnitType.VEHICLE:
            base = row.get('price_per_day')
            insurance_included = bool(row.get('insurance_included', False))
        else:
            base = row.get('price_per_night')
            insurance_included = True
        return cls(
            id=str(row['id']),
            unit_type=unit_type,
            base_price=parse_money(base, Decimal('0')),
            cleaning_fee=parse_money(row.get('cleaning_fee'), Decimal('0')),
            min_stay=_optional_int(row.get('min_stay')) or 1,
            max_stay=_optional_int(row.get('max_stay')),
            insurance_included=insurance_included,
        )


# =====================================================
# ENGINE OUTPUT
# =====================================================

@dataclass(frozen=True)
class RuleApplication:
    """Result of composing rules over one base price."""
    original_price: Decimal
    adjusted_price: Decimal
    discount_percentage: int
    has_discount: bool
    rules_applied: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RangeRulePrice:
    total_price: Decimal
    original_total: Decimal
    average_nightly_price: Decimal
    total_discount: Decimal
    has_discount: bool


@dataclass(frozen=True)
class ListingPrice:
    display_price: Decimal
    original_price: Decimal
    discount_percentage: int
    has_discount: bool
    show_from_label: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            'displayPrice': float(self.display_price),
            'originalPrice': float(self.original_price),
            'discountPercentage': self.discount_percentage,
            'hasDiscount': self.has_discount,
            'showFromLabel': self.show_from_label,
        }


@dataclass(frozen=True)
class PriceBreakdown:
    """
    Itemised price for a concrete stay.
    total = subtotal + cleaning_fee + insurance_fee + service_fee + taxes
    """
    nights: int
    base_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    discount_percentage: int
    has_discount: bool
    cleaning_fee: Decimal
    service_fee: Decimal
    taxes: Decimal
    total: Decimal
    insurance_fee: Decimal = Decimal('0')
    pricing_source: str = 'calendar'

    @property
    def adjusted_price(self) -> Decimal:
        return self.subtotal

    def as_dict(self) -> Dict[str, Any]:
        return {
            'nights': self.nights,
            'basePrice': float(self.base_price),
            'adjustedPrice': float(self.subtotal),
            'discountAmount': float(self.discount_amount),
            'discountPercentage': self.discount_percentage,
            'hasDiscount': self.has_discount,
            'cleaningFee': float(self.cleaning_fee),
            'insuranceFee': float(self.insurance_fee),
            'serviceFee': float(self.service_fee),
            'taxes': float(self.taxes),
            'total': float(self.total),
            'pricingSource': self.pricing_source,
        }


@dataclass(frozen=True)
class StayQuote:
    bookable: bool
    reasons: Tuple[str, ...] = ()
    breakdown: Optional[PriceBreakdown] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            'bookable': self.bookable,
            'reasons': list(self.reasons),
            'breakdown': self.breakdown.as_dict() if self.breakdown else None,
        }

"""
Rental Pricing & Availability Engine
====================================
Core calculation logic with:
  - Calendar resolution (default-available days, per-night price overrides)
  - Rule selection (validity window, night-count bounds, check-in weekday)
  - Sequential, compounding rule composition (room rules before unit rules)
  - Platform fee computation (service fee + taxes from admin_fees)
  - Stay pricing (calendar total reconciled with rule total by min())
  - Browse-time display price for listing cards

This is the SINGLE SOURCE OF TRUTH for rental price computation.
Every function here is pure: inputs are read-only snapshots fetched by the
caller, nothing is fetched or written, and the same snapshot always yields
the same result.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union
import logging
import math

from pricing_models import (
    AdjustmentKind,
    AdminFee,
    AvailabilityEntry,
    BookableUnit,
    CalculationType,
    FeeScope,
    FeeType,
    InvalidRowError,
    ListingPrice,
    PriceBreakdown,
    PricingRule,
    RangeRulePrice,
    Room,
    RuleApplication,
    RuleKind,
    StayQuote,
    UnitType,
)

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
WHOLE = Decimal('1')
HUNDRED = Decimal('100')
ZERO = Decimal('0')

Day = Union[date, datetime]


# =====================================================
# EXCEPTIONS
# =====================================================

class PricingEngineError(Exception):
    """Base exception for pricing engine errors"""
    pass

class InvalidDateRangeError(PricingEngineError):
    pass

class NegativePriceError(PricingEngineError):
    pass

class InvalidConfigurationError(PricingEngineError):
    pass

class UnitNotFoundError(PricingEngineError):
    pass


# =====================================================
# POLICIES
# =====================================================

class AvailabilityPolicy(Enum):
    # A day is bookable unless an explicit calendar entry says otherwise,
    # including when the unit has no calendar at all.
    AVAILABLE_UNLESS_BLOCKED = 'available_unless_blocked'


class RoomSelectionPolicy(Enum):
    # Selected rooms are charged price_per_night x nights, no calendar or rules.
    FLAT_NIGHTLY_RATE = 'flat_nightly_rate'


class ReconciliationPolicy(Enum):
    # Calendar total and rule total are computed apart; the traveler pays the lower.
    LOWER_OF_CALENDAR_AND_RULES = 'lower_of_calendar_and_rules'


AVAILABILITY_POLICY = AvailabilityPolicy.AVAILABLE_UNLESS_BLOCKED
ROOM_SELECTION_POLICY = RoomSelectionPolicy.FLAT_NIGHTLY_RATE
RECONCILIATION_POLICY = ReconciliationPolicy.LOWER_OF_CALENDAR_AND_RULES

SERVICE_FEE_NAME = 'Service Fee'
TAX_FEE_NAME = 'Taxes'
VEHICLE_INSURANCE_RATE = Decimal('15')

# Stay eligibility reasons
DATES_UNAVAILABLE = 'dates_unavailable'
MIN_STAY_NOT_MET = 'min_stay_not_met'
MAX_STAY_EXCEEDED = 'max_stay_exceeded'
ROOMS_NOT_SELECTED = 'rooms_not_selected'
UNKNOWN_ROOMS = 'unknown_rooms'


# =====================================================
# ROW LOADERS
# =====================================================

def _load(model, rows: Iterable[Dict]) -> list:
    try:
        return [model.from_row(row) for row in rows or []]
    except (InvalidRowError, KeyError) as e:
        raise InvalidConfigurationError(f"Malformed {model.__name__} row: {e}") from e


def load_calendar(rows: Iterable[Dict]) -> List[AvailabilityEntry]:
    return _load(AvailabilityEntry, rows)


def load_rules(rows: Iterable[Dict]) -> List[PricingRule]:
    return _load(PricingRule, rows)


def load_fees(rows: Iterable[Dict]) -> List[AdminFee]:
    return _load(AdminFee, rows)


def load_rooms(rows: Iterable[Dict]) -> List[Room]:
    return _load(Room, rows)


# =====================================================
# DATE / MONEY HELPERS
# =====================================================

def _as_day(value: Day) -> date:
    return value.date() if isinstance(value, datetime) else value


def count_nights(check_in: Day, check_out: Day) -> int:
    """ceil((check_out - check_in) / 1 day); raises on an empty or inverted range."""
    if check_out <= check_in:
        raise InvalidDateRangeError(
            f"check_out ({check_out}) must be after check_in ({check_in})"
        )
    return math.ceil((check_out - check_in) / timedelta(days=1))


def iter_nights(check_in: Day, check_out: Day) -> Iterator[date]:
    """Occupied nights of [check_in, check_out); the departure day is excluded."""
    first = _as_day(check_in)
    for offset in range(count_nights(check_in, check_out)):
        yield first + timedelta(days=offset)


def sunday_based_weekday(day: Day) -> int:
    """0=Sunday .. 6=Saturday, the convention used by days_of_week."""
    return (day.weekday() + 1) % 7


def _money(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _require_non_negative(amount, label: str) -> Decimal:
    amount = _money(amount)
    if amount < 0:
        raise NegativePriceError(f"{label} must not be negative (got {amount})")
    return amount


def _round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, ROUND_HALF_UP)


def _round_whole(amount: Decimal) -> Decimal:
    return amount.quantize(WHOLE, ROUND_HALF_UP)


# =====================================================
# CALENDAR RESOLVER
# =====================================================

class CalendarResolver:
    """
    Answers availability and per-night price questions over a sparse
    calendar of exceptions for one unit.
    """

    def __init__(
        self,
        entries: Iterable[AvailabilityEntry] = (),
        policy: AvailabilityPolicy = AVAILABILITY_POLICY
    ):
        self.policy = policy
        self._by_day: Dict[date, AvailabilityEntry] = {}
        for entry in entries or ():
            # At most one entry per day; the first one wins
            self._by_day.setdefault(entry.day, entry)

    def __len__(self) -> int:
        return len(self._by_day)

    def entry_for(self, day: Day) -> Optional[AvailabilityEntry]:
        return self._by_day.get(_as_day(day))

    def is_available(self, day: Day) -> bool:
        if not self._by_day:
            return True
        entry = self.entry_for(day)
        return entry.is_available if entry is not None else True

    def price_for_date(self, day: Day, base_price) -> Decimal:
        entry = self.entry_for(day)
        if entry is not None and entry.price_override is not None:
            return entry.price_override
        return _money(base_price)

    def is_date_range_available(self, start: Day, end: Day) -> bool:
        return all(self.is_available(night) for night in iter_nights(start, end))

    def calculate_date_range_price(self, start: Day, end: Day, base_price) -> Decimal:
        base_price = _require_non_negative(base_price, 'Base price')
        total = ZERO
        for night in iter_nights(start, end):
            total += self.price_for_date(night, base_price)
        return total


def is_available(day: Day, calendar_entries: Iterable[AvailabilityEntry]) -> bool:
    return CalendarResolver(calendar_entries).is_available(day)


def price_for_date(day: Day, base_price, calendar_entries: Iterable[AvailabilityEntry]) -> Decimal:
    return CalendarResolver(calendar_entries).price_for_date(day, base_price)


def is_date_range_available(start: Day, end: Day, calendar_entries: Iterable[AvailabilityEntry]) -> bool:
    return CalendarResolver(calendar_entries).is_date_range_available(start, end)


def calculate_date_range_price(
    start: Day, end: Day, base_price, calendar_entries: Iterable[AvailabilityEntry]
) -> Decimal:
    return CalendarResolver(calendar_entries).calculate_date_range_price(start, end, base_price)


# =====================================================
# RULE SELECTOR
# =====================================================

class RuleSelector:
    """
    Filters supplier rules down to those applicable to a booking context.
    Each constraint is only checked when its part of the context is known,
    so a call without dates (listing cards) skips the date and weekday tests.
    """

    @staticmethod
    def select_applicable(
        rules: Iterable[PricingRule],
        check_in: Optional[Day] = None,
        check_out: Optional[Day] = None,
        night_count: Optional[int] = None
    ) -> List[PricingRule]:
        selected = []
        for rule in rules or ():
            if not rule.is_active:
                continue

            if rule.start_date and rule.end_date and check_in and check_out:
                # Booking must overlap the validity window
                if _as_day(check_in) > rule.end_date or _as_day(check_out) < rule.start_date:
                    continue

            if rule.min_nights and night_count is not None and night_count < rule.min_nights:
                continue

            if rule.max_nights and night_count is not None and night_count > rule.max_nights:
                continue

            if rule.days_of_week and check_in:
                if sunday_based_weekday(check_in) not in rule.days_of_week:
                    continue

            selected.append(rule)
        return selected

    @staticmethod
    def select_for_display(rules: Iterable[PricingRule]) -> List[PricingRule]:
        """Active discount rules, date and night constraints ignored."""
        return [
            rule for rule in rules or ()
            if rule.is_active and rule.kind is RuleKind.DISCOUNT
        ]

    # -------------------------------------------------
    # SCOPING
    # -------------------------------------------------

    @staticmethod
    def for_accommodation(rules: Iterable[PricingRule], accommodation_id: str) -> List[PricingRule]:
        """Unit-wide rules of an accommodation; room rules are excluded."""
        return [
            rule for rule in rules or ()
            if rule.is_active and rule.accommodation_id == accommodation_id and rule.room_id is None
        ]

    @staticmethod
    def for_room(
        rules: Iterable[PricingRule], room_id: Optional[str], accommodation_id: Optional[str]
    ) -> List[PricingRule]:
        """Rules of one room plus the unit-wide rules of its accommodation."""
        if room_id is None:
            return RuleSelector.for_accommodation(rules, accommodation_id) if accommodation_id else []
        return [
            rule for rule in rules or ()
            if rule.is_active and (
                rule.room_id == room_id
                or (accommodation_id is not None
                    and rule.accommodation_id == accommodation_id and rule.room_id is None)
            )
        ]

    @staticmethod
    def for_vehicle(rules: Iterable[PricingRule], vehicle_id: str) -> List[PricingRule]:
        return [rule for rule in rules or () if rule.is_active and rule.vehicle_id == vehicle_id]

    @classmethod
    def for_unit(cls, rules: Iterable[PricingRule], unit: BookableUnit) -> List[PricingRule]:
        if unit.unit_type is UnitType.VEHICLE:
            return cls.for_vehicle(rules, unit.id)
        return cls.for_accommodation(rules, unit.id)


# =====================================================
# RULE COMPOSER
# =====================================================

def _percentage_delta(running: Decimal, rule: PricingRule) -> Decimal:
    return running * rule.magnitude / HUNDRED


def _fixed_delta(running: Decimal, rule: PricingRule) -> Decimal:
    return rule.magnitude


def _percentage_share(original: Decimal, rule: PricingRule) -> Decimal:
    return rule.magnitude


def _fixed_share(original: Decimal, rule: PricingRule) -> Decimal:
    # Fixed discounts are reported as a share of the original price
    if original == 0:
        return ZERO
    return rule.magnitude / original * HUNDRED


class RuleComposer:
    """
    Applies rules one after another to a running price.
    Room rules go first, then higher priority first; the sort is stable so
    equal keys keep their input order.

    The reported discount percentage is the sum of each discount rule's own
    percentage, not (original - final) / original.
    """

    DELTAS = {
        AdjustmentKind.PERCENTAGE: _percentage_delta,
        AdjustmentKind.FIXED: _fixed_delta,
    }
    DISCOUNT_SHARES = {
        AdjustmentKind.PERCENTAGE: _percentage_share,
        AdjustmentKind.FIXED: _fixed_share,
    }

    @staticmethod
    def order(rules: Iterable[PricingRule]) -> List[PricingRule]:
        return sorted(rules, key=lambda rule: (0 if rule.is_room_scoped else 1, -rule.priority))

    @classmethod
    def apply_rules(cls, base_price, applicable_rules: Iterable[PricingRule]) -> RuleApplication:
        base_price = _require_non_negative(base_price, 'Base price')

        running = base_price
        discount_total = ZERO
        applied = []

        for rule in cls.order(applicable_rules or ()):
            delta = cls.DELTAS[rule.adjustment](running, rule)
            running += rule.kind.direction * delta
            if rule.kind is RuleKind.DISCOUNT:
                discount_total += cls.DISCOUNT_SHARES[rule.adjustment](base_price, rule)
            applied.append(rule.id)
            logger.debug(f"Rule applied: [{rule.id}] {rule.kind.value}/{rule.adjustment.value} -> {running}")

        # Floor only once, after the whole sequence
        running = max(ZERO, running)

        return RuleApplication(
            original_price=base_price,
            adjusted_price=_round_cents(running),
            discount_percentage=int(_round_whole(discount_total)),
            has_discount=discount_total > 0,
            rules_applied=tuple(applied),
        )


def apply_rules(base_price, applicable_rules: Iterable[PricingRule]) -> RuleApplication:
    return RuleComposer.apply_rules(base_price, applicable_rules)


# =====================================================
# DISPLAY PROJECTOR
# =====================================================

class DisplayProjector:
    """
    Date-agnostic "from $X" price for listing cards.
    Only discounts participate, so a card never shows a surcharge.
    """

    @staticmethod
    def display_price(
        base_price,
        rules: Iterable[PricingRule],
        has_rooms: bool = False,
        lowest_room_price=None
    ) -> ListingPrice:
        use_rooms = has_rooms and lowest_room_price is not None
        baseline = _require_non_negative(
            lowest_room_price if use_rooms else base_price, 'Display base price'
        )

        result = RuleComposer.apply_rules(baseline, RuleSelector.select_for_display(rules))

        return ListingPrice(
            display_price=result.adjusted_price,
            original_price=baseline,
            discount_percentage=result.discount_percentage,
            has_discount=result.has_discount,
            show_from_label=use_rooms,
        )

    @classmethod
    def for_unit(
        cls, unit: BookableUnit, rules: Iterable[PricingRule], rooms: Iterable[Room] = ()
    ) -> ListingPrice:
        lowest = lowest_room_price(rooms) if unit.unit_type is UnitType.ACCOMMODATION else None
        return cls.display_price(
            unit.base_price,
            RuleSelector.for_unit(rules, unit),
            has_rooms=lowest is not None,
            lowest_room_price=lowest,
        )


def lowest_room_price(rooms: Iterable[Room]) -> Optional[Decimal]:
    prices = [room.price_per_night for room in rooms or () if room.is_active]
    return min(prices) if prices else None


# =====================================================
# FEE CALCULATOR
# =====================================================

class FeeCalculator:
    """
    Platform service fee and taxes from admin_fees rows.
    Only active, booking-time rows for the unit's kind count; a missing
    row or a non-percentage row means a 0% rate.
    """

    def __init__(self, fees: Iterable[AdminFee] = (), unit_type: Optional[UnitType] = None):
        scopes = {FeeScope.BOTH}
        if unit_type is UnitType.VEHICLE:
            scopes.add(FeeScope.VEHICLE)
        elif unit_type is not None:
            scopes.add(FeeScope.ACCOMMODATION)
        else:
            scopes.update(FeeScope)

        self.fees = [
            fee for fee in fees or ()
            if fee.is_active
            and fee.calculation_type is CalculationType.BOOKING
            and fee.applies_to in scopes
        ]

    def rate_for(self, name: str) -> Decimal:
        fee = next((f for f in self.fees if f.name == name), None)
        if fee is None or fee.fee_type is not FeeType.PERCENTAGE:
            return ZERO
        return fee.amount / HUNDRED

    @property
    def service_fee_rate(self) -> Decimal:
        return self.rate_for(SERVICE_FEE_NAME)

    @property
    def tax_rate(self) -> Decimal:
        return self.rate_for(TAX_FEE_NAME)

    def calculate(self, subtotal, cleaning_fee=ZERO) -> Tuple[Decimal, Decimal, Decimal]:
        """Return (service_fee, taxes, total)."""
        subtotal = _money(subtotal)
        cleaning_fee = _money(cleaning_fee)

        service_fee = _round_whole(subtotal * self.service_fee_rate)
        taxes = _round_whole((subtotal + service_fee + cleaning_fee) * self.tax_rate)
        total = subtotal + cleaning_fee + service_fee + taxes

        return service_fee, taxes, total


# =====================================================
# RANGE PRICER
# =====================================================

def price_range_with_rules(
    base_price, rules: Iterable[PricingRule], check_in: Day, check_out: Day
) -> RangeRulePrice:
    """
    Rule-based total for a stay: each night re-selects rules for its own
    [night, night + 1) window; night-count bounds use the whole stay.
    """
    base_price = _require_non_negative(base_price, 'Base price')
    rules = list(rules or ())
    nights = count_nights(check_in, check_out)

    total = ZERO
    for night in iter_nights(check_in, check_out):
        applicable = RuleSelector.select_applicable(
            rules, night, night + timedelta(days=1), nights
        )
        total += RuleComposer.apply_rules(base_price, applicable).adjusted_price

    original_total = base_price * nights
    discount = original_total - total

    return RangeRulePrice(
        total_price=_round_cents(total),
        original_total=original_total,
        average_nightly_price=_round_cents(total / nights),
        total_discount=max(ZERO, discount),
        has_discount=discount > 0,
    )


class RangePricer:
    """
    Prices a concrete stay for one unit from a snapshot of its calendar,
    rules, rooms and the platform fees.
    """

    def __init__(
        self,
        unit: BookableUnit,
        calendar: Iterable[AvailabilityEntry] = (),
        rules: Iterable[PricingRule] = (),
        fees: Iterable[AdminFee] = (),
        rooms: Iterable[Room] = (),
        room_policy: RoomSelectionPolicy = ROOM_SELECTION_POLICY,
        reconciliation: ReconciliationPolicy = RECONCILIATION_POLICY
    ):
        self.unit = unit
        self.calendar = CalendarResolver(calendar)
        self.rules = list(rules or ())
        self.rooms = [room for room in rooms or () if room.is_active]
        self.fee_calculator = FeeCalculator(fees, unit.unit_type)
        self.room_policy = room_policy
        self.reconciliation = reconciliation

    @property
    def has_rooms(self) -> bool:
        return self.unit.unit_type is UnitType.ACCOMMODATION and bool(self.rooms)

    # -------------------------------------------------
    # ELIGIBILITY
    # -------------------------------------------------

    def check_stay(
        self, check_in: Day, check_out: Day, selected_rooms: Sequence[str] = ()
    ) -> List[str]:
        """Reasons the stay cannot be booked; empty when it can."""
        nights = count_nights(check_in, check_out)
        reasons = []

        if not self.calendar.is_date_range_available(check_in, check_out):
            reasons.append(DATES_UNAVAILABLE)

        # The check-in day's calendar entry overrides the unit's stay bounds
        min_stay = self.unit.min_stay or 1
        max_stay = self.unit.max_stay
        entry = self.calendar.entry_for(check_in)
        if entry is not None:
            min_stay = entry.minimum_stay or min_stay
            max_stay = entry.maximum_stay or max_stay

        if nights < min_stay:
            reasons.append(MIN_STAY_NOT_MET)
        if max_stay and nights > max_stay:
            reasons.append(MAX_STAY_EXCEEDED)
        if self.has_rooms and not selected_rooms:
            reasons.append(ROOMS_NOT_SELECTED)
        if self.has_rooms and self.unknown_rooms(selected_rooms):
            reasons.append(UNKNOWN_ROOMS)

        return reasons

    # -------------------------------------------------
    # PRICING
    # -------------------------------------------------

    def unknown_rooms(self, selected_rooms: Sequence[str]) -> List[str]:
        """Selected ids that do not match an active room of this unit."""
        active = {room.id for room in self.rooms}
        return [str(room_id) for room_id in selected_rooms or () if str(room_id) not in active]

    def _selected_rooms_total(self, selected_rooms: Sequence[str], nights: int) -> Decimal:
        unknown = self.unknown_rooms(selected_rooms)
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown or inactive rooms for unit {self.unit.id}: {', '.join(unknown)}"
            )
        by_id = {room.id: room for room in self.rooms}
        total = ZERO
        for room_id in selected_rooms:
            room = by_id[str(room_id)]
            total += _require_non_negative(room.price_per_night, 'Room price') * nights
        return total

    def price_stay(
        self, check_in: Day, check_out: Day, selected_rooms: Sequence[str] = ()
    ) -> PriceBreakdown:
        nights = count_nights(check_in, check_out)
        base_price = _require_non_negative(self.unit.base_price, 'Base price')
        cleaning_fee = _require_non_negative(self.unit.cleaning_fee, 'Cleaning fee')

        if self.has_rooms and selected_rooms:
            # ROOM_SELECTION_POLICY: flat nightly rate, calendar and rules bypassed
            subtotal = self._selected_rooms_total(selected_rooms, nights)
            original_total = subtotal
            source = 'rooms'
        else:
            original_total = base_price * nights
            subtotal = self.calendar.calculate_date_range_price(check_in, check_out, base_price)
            source = 'calendar'

            unit_rules = RuleSelector.for_unit(self.rules, self.unit)
            if unit_rules:
                ranged = price_range_with_rules(base_price, unit_rules, check_in, check_out)
                # Rule total only competes when it actually discounts
                if ranged.has_discount and ranged.total_price < subtotal:
                    subtotal = ranged.total_price
                    source = 'rules'
                logger.debug(
                    f"Unit {self.unit.id}: calendar vs rules reconciled "
                    f"({self.reconciliation.value}) -> {source}={subtotal}"
                )

        discount_amount = max(ZERO, original_total - subtotal)
        if discount_amount > 0 and original_total > 0:
            discount_percentage = int(_round_whole(discount_amount / original_total * HUNDRED))
        else:
            discount_percentage = 0

        insurance_fee = ZERO
        if self.unit.unit_type is UnitType.VEHICLE and not self.unit.insurance_included:
            insurance_fee = _round_whole(subtotal * VEHICLE_INSURANCE_RATE / HUNDRED)

        service_fee, taxes, total = self.fee_calculator.calculate(subtotal + insurance_fee, cleaning_fee)

        return PriceBreakdown(
            nights=nights,
            base_price=original_total,
            subtotal=subtotal,
            discount_amount=discount_amount,
            discount_percentage=discount_percentage,
            has_discount=discount_amount > 0,
            cleaning_fee=cleaning_fee,
            service_fee=service_fee,
            taxes=taxes,
            total=max(ZERO, total),
            insurance_fee=insurance_fee,
            pricing_source=source,
        )

    def quote(
        self, check_in: Day, check_out: Day, selected_rooms: Sequence[str] = ()
    ) -> StayQuote:
        """Eligibility first; no breakdown is produced for a blocked stay."""
        reasons = self.check_stay(check_in, check_out, selected_rooms)
        if reasons:
            return StayQuote(bookable=False, reasons=tuple(reasons))
        return StayQuote(
            bookable=True,
            breakdown=self.price_stay(check_in, check_out, selected_rooms),
        )

    def listing_price(self) -> ListingPrice:
        return DisplayProjector.for_unit(self.unit, self.rules, self.rooms)


def quote_stay(
    unit: BookableUnit,
    check_in: Day,
    check_out: Day,
    calendar: Iterable[AvailabilityEntry] = (),
    rules: Iterable[PricingRule] = (),
    fees: Iterable[AdminFee] = (),
    rooms: Iterable[Room] = (),
    selected_rooms: Sequence[str] = ()
) -> StayQuote:
    pricer = RangePricer(unit, calendar=calendar, rules=rules, fees=fees, rooms=rooms)
    return pricer.quote(check_in, check_out, selected_rooms)

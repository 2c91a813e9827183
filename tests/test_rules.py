"""Tests for RuleSelector (filtering, scoping) and RuleComposer (ordering, compounding)."""

from datetime import date
from decimal import Decimal

import pytest

from pricing_engine import NegativePriceError, RuleComposer, RuleSelector, apply_rules, sunday_based_weekday


# =====================================================
# SELECTION
# =====================================================

class TestSelectApplicable:

    def test_weekday_convention_is_sunday_zero(self):
        assert sunday_based_weekday(date(2025, 6, 1)) == 0  # Sunday
        assert sunday_based_weekday(date(2025, 6, 2)) == 1  # Monday
        assert sunday_based_weekday(date(2025, 6, 7)) == 6  # Saturday

    @pytest.mark.parametrize('check_in, check_out, expected', [
        (date(2025, 6, 2), date(2025, 6, 5), False),    # before the window
        (date(2025, 6, 8), date(2025, 6, 10), True),    # checkout touches start
        (date(2025, 6, 20), date(2025, 6, 22), True),   # checkin touches end
        (date(2025, 6, 21), date(2025, 6, 23), False),  # after the window
    ])
    def test_validity_window_overlap(self, make_rule, check_in, check_out, expected):
        rule = make_rule(start_date=date(2025, 6, 10), end_date=date(2025, 6, 20))
        selected = RuleSelector.select_applicable([rule], check_in, check_out, 2)
        assert (rule in selected) is expected

    def test_half_open_window_is_always_in_window(self, make_rule):
        rule = make_rule(start_date=date(2025, 6, 10))
        assert RuleSelector.select_applicable([rule], date(2025, 1, 1), date(2025, 1, 2), 1) == [rule]

    def test_min_and_max_nights(self, make_rule):
        long_stay = make_rule(min_nights=3)
        short_stay = make_rule(max_nights=2)
        rules = [long_stay, short_stay]

        assert RuleSelector.select_applicable(rules, night_count=2) == [short_stay]
        assert RuleSelector.select_applicable(rules, night_count=3) == [long_stay]

    def test_days_of_week_checks_checkin_day(self, make_rule):
        weekend = make_rule(kind='weekend', value=20, days_of_week={0, 6})
        monday = make_rule(days_of_week={1})

        selected = RuleSelector.select_applicable([weekend, monday], date(2025, 6, 2), date(2025, 6, 3), 1)
        assert selected == [monday]

        selected = RuleSelector.select_applicable([weekend, monday], date(2025, 6, 7), date(2025, 6, 8), 1)
        assert selected == [weekend]

    def test_no_context_ignores_all_constraints(self, make_rule):
        rule = make_rule(
            start_date=date(2020, 1, 1), end_date=date(2020, 1, 2),
            min_nights=30, max_nights=40, days_of_week={3},
        )
        assert RuleSelector.select_applicable([rule]) == [rule]

    def test_inactive_rules_never_apply(self, make_rule):
        rule = make_rule(is_active=False)
        assert RuleSelector.select_applicable([rule]) == []
        assert RuleSelector.select_for_display([rule]) == []

    def test_display_selection_keeps_discounts_only(self, make_rule):
        discount = make_rule(min_nights=7)
        seasonal = make_rule(kind='seasonal', value=25)
        weekend = make_rule(kind='weekend', adjustment='fixed', value=30)
        assert RuleSelector.select_for_display([discount, seasonal, weekend]) == [discount]

    def test_empty_rule_set(self):
        assert RuleSelector.select_applicable([], date(2025, 6, 2), date(2025, 6, 3), 1) == []
        assert RuleSelector.select_applicable(None) == []


class TestScoping:

    def test_accommodation_scope_excludes_room_and_foreign_rules(self, make_rule):
        unit_wide = make_rule()
        room_rule = make_rule(room_id='room-a')
        other = make_rule(accommodation_id='acc-2')
        assert RuleSelector.for_accommodation([unit_wide, room_rule, other], 'acc-1') == [unit_wide]

    def test_room_scope_includes_parent_unit_rules(self, make_rule):
        unit_wide = make_rule()
        room_a = make_rule(room_id='room-a')
        room_b = make_rule(room_id='room-b')
        assert RuleSelector.for_room([unit_wide, room_a, room_b], 'room-a', 'acc-1') == [unit_wide, room_a]

    def test_vehicle_scope(self, make_rule):
        car = make_rule(accommodation_id=None, vehicle_id='veh-1')
        house = make_rule()
        assert RuleSelector.for_vehicle([car, house], 'veh-1') == [car]


# =====================================================
# COMPOSITION
# =====================================================

class TestApplyRules:

    def test_discounts_compound_instead_of_summing(self, make_rule):
        rules = [make_rule(value=-10, priority=2), make_rule(value=-20, priority=1)]
        result = apply_rules(Decimal('100'), rules)

        assert result.adjusted_price == Decimal('72.00')
        assert result.discount_percentage == 30
        assert result.has_discount is True
        assert result.original_price == Decimal('100')

    def test_room_rules_apply_before_unit_rules(self, make_rule):
        unit_half_off = make_rule(value=-50, priority=10, id='unit')
        room_ten_off = make_rule(adjustment='fixed', value=-10, room_id='room-a', id='room')

        result = apply_rules(100, [unit_half_off, room_ten_off])

        assert result.rules_applied == ('room', 'unit')
        assert result.adjusted_price == Decimal('45.00')  # (100 - 10) * 0.5

    def test_higher_priority_first_within_scope(self, make_rule):
        fixed = make_rule(adjustment='fixed', value=-10, priority=1, id='fixed')
        half = make_rule(value=-50, priority=5, id='half')

        result = apply_rules(100, [fixed, half])

        assert result.rules_applied == ('half', 'fixed')
        assert result.adjusted_price == Decimal('40.00')

    def test_equal_keys_keep_input_order(self, make_rule):
        first = make_rule(id='first', priority=3)
        second = make_rule(id='second', priority=3)
        assert [r.id for r in RuleComposer.order([first, second])] == ['first', 'second']
        assert [r.id for r in RuleComposer.order([second, first])] == ['second', 'first']

    def test_markups_raise_price_without_discount(self, make_rule):
        rules = [
            make_rule(kind='seasonal', value=20, priority=2),
            make_rule(kind='weekend', adjustment='fixed', value=15, priority=1),
        ]
        result = apply_rules(100, rules)

        assert result.adjusted_price == Decimal('135.00')
        assert result.discount_percentage == 0
        assert result.has_discount is False

    def test_rule_kind_decides_direction(self, make_rule):
        # Stored sign is ignored: a seasonal rule always raises the price
        assert apply_rules(100, [make_rule(kind='seasonal', value=-20)]).adjusted_price == Decimal('120.00')
        assert apply_rules(100, [make_rule(kind='discount', value=20)]).adjusted_price == Decimal('80.00')

    def test_fixed_discount_reported_as_share_of_original(self, make_rule):
        rules = [make_rule(adjustment='fixed', value=-30, priority=2), make_rule(value=-10, priority=1)]
        result = apply_rules(200, rules)

        assert result.adjusted_price == Decimal('153.00')  # (200 - 30) * 0.9
        assert result.discount_percentage == 25            # 15 + 10, additive

    def test_discount_percentage_is_rounded(self, make_rule):
        result = apply_rules(3, [make_rule(adjustment='fixed', value=-1)])
        assert result.discount_percentage == 33

    def test_price_never_negative(self, make_rule):
        rules = [make_rule(value=-100), make_rule(value=-60), make_rule(adjustment='fixed', value=-500)]
        result = apply_rules(100, rules)

        assert result.adjusted_price == Decimal('0.00')
        assert result.discount_percentage > 100

    def test_floor_applies_after_the_sequence(self, make_rule):
        rules = [
            make_rule(adjustment='fixed', value=-150, priority=2),
            make_rule(kind='seasonal', adjustment='fixed', value=100, priority=1),
        ]
        assert apply_rules(100, rules).adjusted_price == Decimal('50.00')

    def test_adjusted_price_rounded_to_cents(self, make_rule):
        assert apply_rules(Decimal('99.99'), [make_rule(value=-15)]).adjusted_price == Decimal('84.99')

    def test_zero_base_with_fixed_discount(self, make_rule):
        result = apply_rules(0, [make_rule(adjustment='fixed', value=-10)])
        assert result.adjusted_price == Decimal('0.00')
        assert result.discount_percentage == 0
        assert result.has_discount is False

    def test_no_rules_leaves_price_unchanged(self):
        result = apply_rules(Decimal('80'), [])
        assert result.adjusted_price == Decimal('80.00')
        assert result.has_discount is False
        assert result.rules_applied == ()

    def test_negative_base_price_is_rejected(self, make_rule):
        with pytest.raises(NegativePriceError):
            apply_rules(-5, [make_rule()])

    def test_repeated_evaluation_is_identical(self, make_rule):
        rules = [make_rule(value=-12.5, priority=1), make_rule(kind='weekend', value=7, room_id='r')]
        assert apply_rules(Decimal('123.45'), rules) == apply_rules(Decimal('123.45'), rules)

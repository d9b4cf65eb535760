from __future__ import annotations

from datetime import date, timedelta

import pytest

from textileplan.core.capacity import add_working_days, calc_order_capacity_info, find_capacity_for_order, rule_score
from textileplan.core.models import CapacityRule, Order

FRIDAY = date(2024, 1, 5)
MONDAY = date(2024, 1, 8)


def make_order(**kw) -> Order:
    base = dict(
        id="D1-1",
        qty_requested=1000,
        article_code="ART1",
        reference="REF1",
        family="ROUPOES",
        color_code="C01",
        size="M",
    )
    base.update(kw)
    return Order(**base)


def rule(rule_id: str, sector_id: str = "tinturaria", pph: float = 50, hpd: float = 24, **filters) -> CapacityRule:
    return CapacityRule(id=rule_id, sector_id=sector_id, pieces_per_hour=pph, hours_per_day=hpd, **filters)


# --- matcher -----------------------------------------------------------------


def test_rule_score_weights():
    order = make_order()
    assert rule_score(rule("r"), order) == 0
    assert rule_score(rule("r", article_code="ART1", reference="REF1"), order) == 24
    assert rule_score(rule("r", family="ROUPOES"), order) == 4
    assert rule_score(rule("r", article_code="ART1", reference="REF1", family="ROUPOES", color_code="C01", size="M"), order) == 31


def test_blank_filters_are_wildcards():
    assert rule_score(rule("r", article_code="  ", size=""), make_order()) == 0


def test_specific_rule_beats_family_rule():
    rules = [
        rule("family", family="ROUPOES", pph=10),
        rule("specific", article_code="ART1", reference="REF1", pph=20),
    ]
    assert find_capacity_for_order(rules, "tinturaria", make_order()).id == "specific"


def test_single_mismatch_disqualifies_rule():
    rules = [
        rule("default"),
        rule("wrong_ref", article_code="ART1", reference="X", family="ROUPOES", color_code="C01", size="M"),
    ]
    order = make_order(reference="Y")
    assert rule_score(rules[1], order) is None
    assert find_capacity_for_order(rules, "tinturaria", order).id == "default"


def test_matching_is_case_sensitive():
    assert rule_score(rule("r", article_code="art1"), make_order()) is None


def test_sector_default_wins_only_without_more_specific_match():
    rules = [rule("default"), rule("color", color_code="C01")]
    assert find_capacity_for_order(rules, "tinturaria", make_order()).id == "color"
    assert find_capacity_for_order(rules, "tinturaria", make_order(color_code="C99")).id == "default"


def test_rules_of_other_sectors_are_ignored():
    rules = [rule("weaving", sector_id="tecelagem", article_code="ART1")]
    assert find_capacity_for_order(rules, "tinturaria", make_order()) is None
    assert find_capacity_for_order([], "tinturaria", make_order()) is None


def test_no_match_without_default_returns_none():
    rules = [rule("other", article_code="ART2")]
    assert find_capacity_for_order(rules, "tinturaria", make_order()) is None


def test_ties_keep_first_rule_and_are_deterministic():
    rules = [rule("a", family="ROUPOES"), rule("b", family="ROUPOES")]
    picks = {find_capacity_for_order(rules, "tinturaria", make_order()).id for _ in range(5)}
    assert picks == {"a"}


def test_unusable_rule_still_matches():
    rules = [rule("default", pph=100), rule("zero", article_code="ART1", pph=0)]
    assert find_capacity_for_order(rules, "tinturaria", make_order()).id == "zero"


# --- working days ------------------------------------------------------------


def test_add_working_days_skips_weekend():
    assert add_working_days(FRIDAY, 1) == MONDAY
    assert add_working_days(FRIDAY, 0) == FRIDAY
    assert add_working_days(MONDAY, 5) == date(2024, 1, 15)
    assert add_working_days(date(2024, 1, 6), 1) == MONDAY  # from Saturday


def test_add_working_days_negative_returns_start():
    assert add_working_days(MONDAY, -3) == MONDAY


def test_add_working_days_matches_day_by_day_count():
    for offset in range(7):
        start = MONDAY + timedelta(days=offset)
        expected = start
        for days in range(1, 23):
            expected += timedelta(days=1)
            while expected.weekday() >= 5:
                expected += timedelta(days=1)
            assert add_working_days(start, days) == expected, (start, days)


def test_add_working_days_large_count_is_arithmetic():
    assert add_working_days(MONDAY, 5 * 52) == MONDAY + timedelta(weeks=52)


# --- calculator --------------------------------------------------------------


def test_end_to_end_next_working_day():
    order = make_order(tinturaria_qty=200)
    info = calc_order_capacity_info(order, "tinturaria", [rule("default", pph=50, hpd=24)], today=FRIDAY)
    assert info.remaining_qty == 800
    assert info.daily_capacity == 1200
    assert info.estimated_days == 1
    assert info.estimated_completion_date == MONDAY
    assert info.has_usable_capacity


def test_days_late_against_requested_date():
    order = make_order(qty_requested=500, requested_date=date(2024, 1, 10))
    info = calc_order_capacity_info(order, "tinturaria", [rule("default", pph=100, hpd=1)], today=MONDAY)
    assert info.estimated_days == 5
    assert info.estimated_completion_date == date(2024, 1, 15)
    assert info.is_at_risk is True
    assert info.days_late == 5


def test_requested_today_counts_calendar_days_late():
    order = make_order(qty_requested=500, requested_date=MONDAY)
    info = calc_order_capacity_info(order, "tinturaria", [rule("default", pph=100, hpd=1)], today=MONDAY)
    assert info.is_at_risk is True
    assert info.days_late == 7


def test_early_completion_is_not_at_risk():
    order = make_order(qty_requested=100, requested_date=date(2024, 2, 1))
    info = calc_order_capacity_info(order, "tinturaria", [rule("default")], today=MONDAY)
    assert info.is_at_risk is False
    assert info.days_late < 0


@pytest.mark.parametrize("produced", [1000, 1500])
def test_done_orders_are_never_at_risk(produced):
    order = make_order(tinturaria_qty=produced, requested_date=date(2023, 1, 1))
    info = calc_order_capacity_info(order, "tinturaria", [rule("default")], today=MONDAY)
    assert info.remaining_qty == 0
    assert info.estimated_completion_date == MONDAY
    assert info.estimated_days == 0
    assert info.daily_capacity == 0
    assert info.is_at_risk is False
    assert info.days_late == 0


def test_matched_but_unusable_rule():
    order = make_order(requested_date=date(2023, 1, 1))
    info = calc_order_capacity_info(order, "tinturaria", [rule("zero", pph=0)], today=MONDAY)
    assert info.capacity is not None and info.capacity.id == "zero"
    assert info.has_usable_capacity is False
    assert info.estimated_days == 0
    assert info.estimated_completion_date is None
    assert info.is_at_risk is False


def test_no_rule_degrades_to_empty_estimate():
    info = calc_order_capacity_info(make_order(), "tinturaria", [], today=MONDAY)
    assert info.capacity is None
    assert info.daily_capacity == 0
    assert info.estimated_completion_date is None
    assert info.remaining_qty == 1000


def test_garment_making_sums_both_fields():
    order = make_order(conf_roupoes_qty=300, conf_felpos_qty=200)
    info = calc_order_capacity_info(order, "confeccao", [rule("c", sector_id="confeccao")], today=MONDAY)
    assert info.remaining_qty == 500


def test_calculator_does_not_mutate_inputs_and_is_repeatable():
    order = make_order(tinturaria_qty=200, requested_date=date(2024, 1, 9))
    rules = [rule("default", pph=10, hpd=8)]
    first = calc_order_capacity_info(order, "tinturaria", rules, today=MONDAY)
    second = calc_order_capacity_info(order, "tinturaria", rules, today=MONDAY)
    assert first == second
    assert order.tinturaria_qty == 200
    assert [r.id for r in rules] == ["default"]


def test_completion_beyond_calendar_degrades_to_none():
    order = make_order(qty_requested=2_000_000)
    info = calc_order_capacity_info(order, "tinturaria", [rule("slow", pph=0.5, hpd=1)], today=MONDAY)
    assert info.estimated_days == 4_000_000
    assert info.estimated_completion_date is None
    assert info.is_at_risk is False
    assert info.has_usable_capacity


@pytest.mark.parametrize("hpd", [0, -1])
def test_rule_without_hours_is_unusable(hpd):
    order = make_order(requested_date=MONDAY)
    info = calc_order_capacity_info(order, "tinturaria", [rule("no-hours", pph=10, hpd=hpd)], today=FRIDAY)
    assert info.capacity is not None
    assert info.has_usable_capacity is False
    assert info.daily_capacity == 0
    assert info.estimated_days == 0
    assert info.estimated_completion_date is None
    assert info.is_at_risk is False

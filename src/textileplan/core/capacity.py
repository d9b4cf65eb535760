from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import date, timedelta

from textileplan.core.models import CapacityRule, Order, OrderCapacityInfo, as_date
from textileplan.core.sectors import get_sector, sector_produced_qty

logger = logging.getLogger(__name__)


# Filter attribute -> weight, in matching priority order.
FILTER_WEIGHTS: tuple[tuple[str, int], ...] = (
    ("article_code", 16),
    ("reference", 8),
    ("family", 4),
    ("color_code", 2),
    ("size", 1),
)


def rule_score(rule: CapacityRule, order: Order) -> int | None:
    """Specificity score of ``rule`` for ``order``.

    Every non-blank filter on the rule must equal the order attribute exactly,
    otherwise the rule is disqualified and None is returned. Blank filters add
    nothing, so a sector-wide default rule scores 0.
    """
    score = 0
    for attr, weight in FILTER_WEIGHTS:
        wanted = str(getattr(rule, attr, "") or "")
        if not wanted.strip():
            continue
        if str(getattr(order, attr, "") or "") != wanted:
            return None
        score += weight
    return score


def find_capacity_for_order(
    rules: Iterable[CapacityRule],
    sector_id: str,
    order: Order,
) -> CapacityRule | None:
    """Most specific rule of ``sector_id`` that matches ``order``.

    Ties keep the first rule in iteration order. Rules with no usable
    throughput still match; callers decide what to do with them.
    """
    sector_id = get_sector(sector_id).sector_id

    best: CapacityRule | None = None
    best_score = -1
    for rule in rules:
        if rule.sector_id != sector_id:
            continue
        score = rule_score(rule, order)
        if score is None:
            continue
        if score > best_score:
            best, best_score = rule, score
    return best


def add_working_days(start: date, days: int) -> date:
    """Advance ``start`` by ``days`` Monday-Friday days."""
    if days <= 0:
        return start
    if start.weekday() >= 5:
        # counting from a weekend is the same as counting from its Friday
        start -= timedelta(days=start.weekday() - 4)
    weeks, rest = divmod(days, 5)
    result = start + timedelta(weeks=weeks)
    while rest:
        result += timedelta(days=1)
        if result.weekday() < 5:
            rest -= 1
    return result


def calc_order_capacity_info(
    order: Order,
    sector_id: str,
    rules: Iterable[CapacityRule],
    *,
    today: date,
) -> OrderCapacityInfo:
    """Remaining work, throughput, completion estimate and delivery risk.

    ``today`` is the reference "now"; the clock is never read here.
    """
    sector_id = get_sector(sector_id).sector_id
    today = as_date(today) or today

    rule = find_capacity_for_order(rules, sector_id, order)
    produced = sector_produced_qty(order, sector_id)
    try:
        requested = float(order.qty_requested or 0)
    except (TypeError, ValueError):
        requested = 0.0
    remaining = max(0.0, requested - produced)

    daily_capacity = 0.0
    estimated_days = 0
    completion: date | None = None

    if remaining == 0:
        completion = today
    elif rule is not None and rule.daily_capacity > 0:
        daily_capacity = rule.daily_capacity
        try:
            estimated_days = math.ceil(remaining / daily_capacity)
            completion = add_working_days(today, estimated_days)
        except (OverflowError, ValueError):
            logger.warning("Order %s: completion beyond the calendar (%s working days)", order.id, estimated_days)
            completion = None

    is_at_risk = False
    days_late = 0
    requested_date = as_date(order.requested_date)
    if completion is not None and requested_date is not None and remaining > 0:
        days_late = (completion - requested_date).days
        is_at_risk = days_late > 0

    logger.debug(
        "capacity %s/%s: remaining=%s daily=%s days=%s late=%s",
        order.id, sector_id, remaining, daily_capacity, estimated_days, days_late,
    )
    return OrderCapacityInfo(
        order=order,
        sector_id=sector_id,
        capacity=rule,
        remaining_qty=remaining,
        daily_capacity=daily_capacity,
        estimated_days=estimated_days,
        estimated_completion_date=completion,
        is_at_risk=is_at_risk,
        days_late=days_late,
    )

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import date

from textileplan.core.capacity import calc_order_capacity_info
from textileplan.core.models import (
    AtRiskOrder,
    CapacityRule,
    Order,
    OrderCapacityInfo,
    SectorQueueSummary,
    SectorRisk,
    as_date,
)
from textileplan.core.sectors import SECTORS, get_sector, sector_produced_qty


def active_orders(orders: Iterable[Order]) -> list[Order]:
    """Orders still open and not archived."""
    return [o for o in orders if not o.is_archived and (o.qty_open or 0) > 0]


def _in_queue(order: Order, sector_id: str) -> bool:
    return sector_produced_qty(order, sector_id) < (order.qty_requested or 0)


def _risk_sort_key(info: OrderCapacityInfo) -> tuple[int, int]:
    # At risk first, then most days late first.
    return (0 if info.is_at_risk else 1, -info.days_late)


def sector_queue(
    orders: Iterable[Order],
    sector_id: str,
    rules: list[CapacityRule],
    *,
    today: date,
) -> SectorQueueSummary:
    sector = get_sector(sector_id)
    queued = [o for o in orders if _in_queue(o, sector.sector_id)]
    infos = [calc_order_capacity_info(o, sector.sector_id, rules, today=today) for o in queued]
    infos.sort(key=_risk_sort_key)

    total_remaining = sum(i.remaining_qty for i in infos)
    with_capacity = [i.daily_capacity for i in infos if i.daily_capacity > 0]
    avg_daily = sum(with_capacity) / len(with_capacity) if with_capacity else 0.0
    days_to_complete = (
        math.ceil(total_remaining / avg_daily) if avg_daily > 0 and math.isfinite(total_remaining) else None
    )

    return SectorQueueSummary(
        sector=sector,
        infos=infos,
        total_orders=len(queued),
        total_remaining=total_remaining,
        at_risk_count=sum(1 for i in infos if i.is_at_risk),
        no_capacity_count=sum(1 for i in infos if not i.has_usable_capacity and i.remaining_qty > 0),
        total_daily_capacity=sum(i.daily_capacity for i in infos),
        days_to_complete=days_to_complete,
    )


def sector_queues(orders: Iterable[Order], rules: list[CapacityRule], *, today: date) -> list[SectorQueueSummary]:
    orders = list(orders)
    return [sector_queue(orders, s.sector_id, rules, today=today) for s in SECTORS]


def at_risk_orders(orders: Iterable[Order], rules: list[CapacityRule], *, today: date) -> list[AtRiskOrder]:
    """Orders late in at least one sector, worst first."""
    orders = list(orders)
    by_order: dict[str, tuple[Order, list[SectorRisk]]] = {}
    for sector in SECTORS:
        for order in orders:
            if not _in_queue(order, sector.sector_id):
                continue
            info = calc_order_capacity_info(order, sector.sector_id, rules, today=today)
            if not info.is_at_risk:
                continue
            entry = by_order.setdefault(order.id, (order, []))
            entry[1].append(
                SectorRisk(
                    sector_id=sector.sector_id,
                    sector_name=sector.name,
                    days_late=info.days_late,
                    estimated_days=info.estimated_days,
                )
            )

    result = [AtRiskOrder(order=o, sectors=risks) for o, risks in by_order.values()]
    result.sort(key=lambda r: -r.max_days_late)
    return result


def alert_count(orders: Iterable[Order], *, today: date) -> int:
    """Late open orders plus predicted dates awaiting validation."""
    late = 0
    pending = 0
    for o in orders:
        requested = as_date(o.requested_date)
        if requested is not None and requested < today and (o.qty_open or 0) > 0:
            late += 1
        pending += sum(1 for v in (o.sector_predicted_dates_pending or {}).values() if v is True)
    return late + pending

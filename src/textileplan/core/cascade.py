"""Predicted-date edits and their forward propagation through the pipeline."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, timedelta

from textileplan.core.models import Order, as_date
from textileplan.core.sectors import SECTORS, downstream_sectors, get_sector, sector_baseline_date

logger = logging.getLogger(__name__)


def _without_pending(order: Order, sector_id: str) -> dict[str, bool]:
    pending = dict(order.sector_predicted_dates_pending or {})
    pending.pop(sector_id, None)
    return pending


def apply_predicted_date_change(order: Order, changed_sector_id: str, new_date: date | None) -> Order:
    """Set the predicted date of one sector and shift the sectors after it.

    The edited sector always counts as validated. When the edit moves the
    date by N days relative to the previous predicted date (or the sector's
    baseline date), every downstream sector that has a predicted or baseline
    date is moved by the same N days and flagged as pending.

    Returns a new Order; ``order`` is left untouched.
    """
    sector_id = get_sector(changed_sector_id).sector_id
    new_date = as_date(new_date)

    old_dates = dict(order.sector_predicted_dates or {})
    dates = dict(old_dates)
    dates[sector_id] = new_date
    pending = _without_pending(order, sector_id)

    reference = as_date(old_dates.get(sector_id)) or sector_baseline_date(order, sector_id)
    if new_date is not None and reference is not None:
        diff_days = (new_date - reference).days
        if diff_days != 0:
            shifted: list[str] = []
            for sector in downstream_sectors(sector_id):
                current = as_date(dates.get(sector.sector_id)) or sector_baseline_date(order, sector.sector_id)
                if current is None:
                    continue
                dates[sector.sector_id] = current + timedelta(days=diff_days)
                pending[sector.sector_id] = True
                shifted.append(sector.sector_id)
            logger.debug("order %s: %s moved %+d days, shifted %s", order.id, sector_id, diff_days, shifted)

    return replace(order, sector_predicted_dates=dates, sector_predicted_dates_pending=pending)


def validate_predicted_date(order: Order, sector_id: str) -> Order:
    """Confirm an auto-shifted predicted date without changing it."""
    sector_id = get_sector(sector_id).sector_id
    return replace(order, sector_predicted_dates_pending=_without_pending(order, sector_id))


def find_changed_sector(old: Order, new: Order) -> str | None:
    """First sector (pipeline order) whose predicted date differs between two versions."""
    old_dates = old.sector_predicted_dates or {}
    new_dates = new.sector_predicted_dates or {}
    for sector in SECTORS:
        if as_date(old_dates.get(sector.sector_id)) != as_date(new_dates.get(sector.sector_id)):
            return sector.sector_id
    return None


def pending_sectors(order: Order) -> list[str]:
    flags = order.sector_predicted_dates_pending or {}
    return [s.sector_id for s in SECTORS if flags.get(s.sector_id) is True]

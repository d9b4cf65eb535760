from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime


DEFAULT_HOURS_PER_DAY = 24.0  # 3 turnos x 8h


def as_date(value) -> date | None:
    """Return ``value`` as a plain ``date``; anything that is not a date is None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


@dataclass(frozen=True)
class Sector:
    sector_id: str
    name: str
    order_index: int


@dataclass(frozen=True)
class Order:
    id: str
    doc_nr: str = ""
    item_nr: int = 0
    client_name: str = ""
    po: str = ""
    issue_date: date | None = None
    requested_date: date | None = None
    qty_requested: float = 0

    # Article attributes used for capacity matching ("" = unset)
    article_code: str = ""
    reference: str = ""
    family: str = ""
    color_code: str = ""
    size: str = ""

    # Per-sector produced quantities
    felpo_cru_qty: float = 0
    tinturaria_qty: float = 0
    conf_roupoes_qty: float = 0
    conf_felpos_qty: float = 0
    emb_acab_qty: float = 0
    stock_cx_qty: float = 0

    # Per-sector baseline dates (from the imported sheet)
    data_tec: date | None = None
    felpo_cru_date: date | None = None
    tinturaria_date: date | None = None
    conf_date: date | None = None
    arm_exp_date: date | None = None

    qty_billed: float = 0
    qty_open: float = 0

    # 0=none, 1=high, 2=medium, 3=low
    priority: int = 0
    is_archived: bool = False

    sector_predicted_dates: dict[str, date | None] = field(default_factory=dict)
    sector_predicted_dates_pending: dict[str, bool] = field(default_factory=dict)
    sector_observations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CapacityRule:
    id: str
    sector_id: str
    pieces_per_hour: float
    hours_per_day: float = DEFAULT_HOURS_PER_DAY
    label: str = ""

    # Article filters (blank = wildcard)
    article_code: str = ""
    reference: str = ""
    family: str = ""
    color_code: str = ""
    size: str = ""

    @property
    def is_sector_default(self) -> bool:
        return not any(
            str(v or "").strip()
            for v in (self.article_code, self.reference, self.family, self.color_code, self.size)
        )

    @property
    def daily_capacity(self) -> float:
        """Pieces per day; 0 unless both rates are positive and finite."""
        daily = self.pieces_per_hour * self.hours_per_day
        if self.pieces_per_hour <= 0 or self.hours_per_day <= 0 or not math.isfinite(daily):
            return 0.0
        return daily


@dataclass(frozen=True)
class OrderCapacityInfo:
    order: Order
    sector_id: str
    capacity: CapacityRule | None
    remaining_qty: float
    daily_capacity: float
    estimated_days: int
    estimated_completion_date: date | None
    is_at_risk: bool
    days_late: int

    @property
    def has_usable_capacity(self) -> bool:
        """True when a rule matched and it has a positive throughput."""
        return self.capacity is not None and self.capacity.daily_capacity > 0


@dataclass(frozen=True)
class SectorQueueSummary:
    sector: Sector
    infos: list[OrderCapacityInfo]
    total_orders: int
    total_remaining: float
    at_risk_count: int
    no_capacity_count: int
    total_daily_capacity: float
    days_to_complete: int | None


@dataclass(frozen=True)
class SectorRisk:
    sector_id: str
    sector_name: str
    days_late: int
    estimated_days: int


@dataclass(frozen=True)
class AtRiskOrder:
    order: Order
    sectors: list[SectorRisk]

    @property
    def max_days_late(self) -> int:
        return max((s.days_late for s in self.sectors), default=0)


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None

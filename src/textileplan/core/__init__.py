"""Core package.

Pure capacity matching, delivery-risk estimation and predicted-date cascade
over the fixed six-sector pipeline. Nothing here touches storage or the clock.
"""

from textileplan.core.capacity import add_working_days, calc_order_capacity_info, find_capacity_for_order, rule_score
from textileplan.core.cascade import apply_predicted_date_change, find_changed_sector, pending_sectors, validate_predicted_date
from textileplan.core.models import CapacityRule, Order, OrderCapacityInfo, Sector
from textileplan.core.sectors import SECTORS, SectorId, UnknownSectorError

__all__ = [
    "CapacityRule",
    "Order",
    "OrderCapacityInfo",
    "SECTORS",
    "Sector",
    "SectorId",
    "UnknownSectorError",
    "add_working_days",
    "apply_predicted_date_change",
    "calc_order_capacity_info",
    "find_capacity_for_order",
    "find_changed_sector",
    "pending_sectors",
    "rule_score",
    "validate_predicted_date",
]

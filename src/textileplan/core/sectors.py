"""Fixed six-stage sector pipeline.

Pipeline order is load-bearing: the predicted-date cascade only ever moves
dates of sectors that come strictly after the edited one.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from textileplan.core.models import Order, Sector, as_date


class UnknownSectorError(ValueError):
    """Raised when a sector id outside the fixed pipeline is used."""


class SectorId(str, Enum):
    TECELAGEM = "tecelagem"
    FELPO_CRU = "felpo_cru"
    TINTURARIA = "tinturaria"
    CONFECCAO = "confeccao"
    EMBALAGEM = "embalagem"
    EXPEDICAO = "expedicao"


SECTORS: tuple[Sector, ...] = (
    Sector(SectorId.TECELAGEM.value, "Tecelagem", 0),
    Sector(SectorId.FELPO_CRU.value, "Felpo Cru", 1),
    Sector(SectorId.TINTURARIA.value, "Tinturaria", 2),
    Sector(SectorId.CONFECCAO.value, "Confecção", 3),
    Sector(SectorId.EMBALAGEM.value, "Embalagem/Acabamento", 4),
    Sector(SectorId.EXPEDICAO.value, "Stock/Expedição", 5),
)

SECTOR_IDS: tuple[str, ...] = tuple(s.sector_id for s in SECTORS)

_BY_ID: dict[str, Sector] = {s.sector_id: s for s in SECTORS}

# sector -> order fields summed to get the quantity produced at that stage.
# Weaving output is counted as raw loop.
PRODUCED_QTY_FIELDS: dict[str, tuple[str, ...]] = {
    "tecelagem": ("felpo_cru_qty",),
    "felpo_cru": ("felpo_cru_qty",),
    "tinturaria": ("tinturaria_qty",),
    "confeccao": ("conf_roupoes_qty", "conf_felpos_qty"),
    "embalagem": ("emb_acab_qty",),
    "expedicao": ("stock_cx_qty",),
}

# sector -> order field holding the imported (baseline) date for that stage.
# Packing and shipping share the warehouse/export date.
BASELINE_DATE_FIELDS: dict[str, str] = {
    "tecelagem": "data_tec",
    "felpo_cru": "felpo_cru_date",
    "tinturaria": "tinturaria_date",
    "confeccao": "conf_date",
    "embalagem": "arm_exp_date",
    "expedicao": "arm_exp_date",
}


def _key(sector_id: str | SectorId) -> str:
    if isinstance(sector_id, SectorId):
        return sector_id.value
    return str(sector_id)


def get_sector(sector_id: str | SectorId) -> Sector:
    try:
        return _BY_ID[_key(sector_id)]
    except KeyError:
        raise UnknownSectorError(f"sector desconhecido: {sector_id!r}") from None


def sector_index(sector_id: str | SectorId) -> int:
    return get_sector(sector_id).order_index


def downstream_sectors(sector_id: str | SectorId) -> list[Sector]:
    """Sectors strictly after ``sector_id`` in pipeline order."""
    idx = sector_index(sector_id)
    return [s for s in SECTORS if s.order_index > idx]


def _as_number(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def sector_produced_qty(order: Order, sector_id: str | SectorId) -> float:
    fields = PRODUCED_QTY_FIELDS[get_sector(sector_id).sector_id]
    return sum(_as_number(getattr(order, f, 0)) for f in fields)


def sector_baseline_date(order: Order, sector_id: str | SectorId) -> date | None:
    return as_date(getattr(order, BASELINE_DATE_FIELDS[get_sector(sector_id).sector_id], None))

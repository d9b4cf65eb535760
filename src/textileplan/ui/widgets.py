from __future__ import annotations

from contextlib import contextmanager

from nicegui import ui

from textileplan.core.models import OrderCapacityInfo
from textileplan.core.sectors import SECTORS


_THEME_APPLIED = False


def apply_theme() -> None:
    ui.colors(
        primary="#2563eb",  # blue-600
        secondary="#0ea5e9",  # sky-500
        positive="#16a34a",  # green-600
        negative="#dc2626",  # red-600
        warning="#f59e0b",  # amber-500
    )
    ui.add_css(
        """
        body { background: #f8fafc; }
        .tp-container { max-width: 1280px; margin: 0 auto; padding: 16px; }
        .tp-subtitle { color: #475569; }
        .tp-header { border-bottom: 1px solid rgba(15, 23, 42, 0.08); }
        .tp-kpi .q-card { border: 1px solid rgba(15, 23, 42, 0.08); }
        .tp-table th, .tp-table td { white-space: normal !important; word-break: break-word; }
        """
    )


def ensure_theme() -> None:
    """Apply theme once, but only when called from within a page context."""
    global _THEME_APPLIED
    if _THEME_APPLIED:
        return
    apply_theme()
    _THEME_APPLIED = True


@contextmanager
def page_container():
    with ui.element("div").classes("tp-container"):
        yield


def render_nav(active: str | None = None, *, alerts: int = 0) -> None:
    ensure_theme()
    active_key = active or "gargalos"
    sections: list[tuple[str, str, str]] = [
        ("gargalos", "Gargalos", "/"),
        ("capacidades", "Capacidades", "/capacidades"),
        ("importar", "Importar", "/importar"),
    ]

    with ui.header().classes("tp-header bg-white text-slate-900"):
        with ui.row().classes("w-full items-center justify-between gap-4 px-4 py-2"):
            with ui.row().classes("items-center gap-3"):
                ui.label("Planeamento Têxtil").classes("text-xl md:text-2xl font-semibold leading-none")
                if alerts:
                    ui.badge(str(alerts), color="negative").props("rounded")
            with ui.row().classes("items-center gap-1"):
                for key, label, path in sections:
                    props = "dense no-caps color=primary" + (" unelevated" if key == active_key else " flat")
                    ui.button(label, on_click=lambda p=path: ui.navigate.to(p)).props(props)

                sector_active = active_key.startswith("sector:")
                with ui.button("Sectores", icon="factory").props(
                    "dense no-caps color=primary" + (" unelevated" if sector_active else " flat")
                ):
                    with ui.menu().props("auto-close"):
                        for s in SECTORS:
                            label = ("✓ " if active_key == f"sector:{s.sector_id}" else "") + s.name
                            ui.menu_item(label, on_click=lambda sid=s.sector_id: ui.navigate.to(f"/sector/{sid}"))


def fmt_date(value) -> str:
    if not value:
        return "-"
    return value.strftime("%d/%m/%Y")


def fmt_qty(value) -> str:
    return f"{float(value or 0):,.0f}".replace(",", " ")


def capacity_row(info: OrderCapacityInfo) -> dict:
    """Table row for one order in one sector queue."""
    o = info.order
    if info.capacity is None:
        capacity_label = "Sem capacidade definida"
    elif not info.has_usable_capacity:
        capacity_label = f"{info.capacity.label or 'Regra'} (0 pç/h)"
    else:
        capacity_label = f"{info.capacity.label} · {fmt_qty(info.daily_capacity)}/dia"

    predicted = (o.sector_predicted_dates or {}).get(info.sector_id)
    return {
        "_row_id": o.id,
        "order_id": o.id,
        "doc_nr": o.doc_nr,
        "client_name": o.client_name,
        "article": " ".join(p for p in (o.article_code, o.reference, o.color_code, o.size) if p),
        "remaining": fmt_qty(info.remaining_qty),
        "capacity": capacity_label,
        "estimated_days": info.estimated_days or "-",
        "completion": fmt_date(info.estimated_completion_date),
        "requested": fmt_date(o.requested_date),
        "predicted": fmt_date(predicted),
        "pending": bool((o.sector_predicted_dates_pending or {}).get(info.sector_id)),
        "risk": info.is_at_risk,
        "days_late": info.days_late if info.is_at_risk else "",
        "observation": (o.sector_observations or {}).get(info.sector_id, ""),
    }


QUEUE_COLUMNS = [
    {"name": "risk", "label": "", "field": "risk"},
    {"name": "doc_nr", "label": "Documento", "field": "doc_nr"},
    {"name": "client_name", "label": "Cliente", "field": "client_name"},
    {"name": "article", "label": "Artigo", "field": "article"},
    {"name": "remaining", "label": "Em falta", "field": "remaining"},
    {"name": "capacity", "label": "Capacidade", "field": "capacity"},
    {"name": "estimated_days", "label": "Dias", "field": "estimated_days"},
    {"name": "completion", "label": "Conclusão est.", "field": "completion"},
    {"name": "requested", "label": "Entrega pedida", "field": "requested"},
    {"name": "days_late", "label": "Atraso (d)", "field": "days_late"},
    {"name": "predicted", "label": "Data prevista", "field": "predicted"},
]


def render_queue_table(rows: list[dict]):
    tbl = ui.table(columns=QUEUE_COLUMNS, rows=rows, row_key="_row_id", pagination=50).classes(
        "w-full tp-table"
    ).props("dense flat bordered separator=cell wrap-cells")
    tbl.add_slot(
        "body-cell-risk",
        r"""
<q-td :props="props" style="width: 36px">
  <q-icon v-if="props.value" name="warning" color="negative" size="18px">
    <q-tooltip>Em risco</q-tooltip>
  </q-icon>
  <q-icon v-else name="check_circle" color="positive" size="18px" />
</q-td>
""",
    )
    tbl.add_slot(
        "body-cell-predicted",
        r"""
<q-td :props="props">
  <span :class="props.row.pending ? 'text-orange-600 font-bold' : ''">{{ props.value }}</span>
  <q-icon v-if="props.row.pending" name="pending" color="warning" size="16px">
    <q-tooltip>Data ajustada automaticamente, por validar</q-tooltip>
  </q-icon>
</q-td>
""",
    )
    return tbl

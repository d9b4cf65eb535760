from __future__ import annotations

from dataclasses import replace
from datetime import date

from nicegui import ui

from textileplan.core.models import DEFAULT_HOURS_PER_DAY, CapacityRule
from textileplan.core.reports import active_orders, alert_count, at_risk_orders, sector_queue, sector_queues
from textileplan.core.sectors import SECTORS, SECTOR_IDS, UnknownSectorError, get_sector
from textileplan.data.excel_io import coerce_date
from textileplan.data.repository import Repository
from textileplan.ui.widgets import capacity_row, fmt_date, fmt_qty, page_container, render_nav, render_queue_table


def _pick_row(args) -> dict | None:
    """Find the row dict inside a NiceGUI table event payload."""

    def _walk(obj):
        if isinstance(obj, dict):
            yield obj
            for v in obj.values():
                yield from _walk(v)
        elif isinstance(obj, (list, tuple)):
            for it in obj:
                yield from _walk(it)

    for d in _walk(args):
        if "_row_id" in d or "rule_id" in d:
            return d
    return None


def register_pages(repo: Repository) -> None:
    def nav(active: str) -> None:
        render_nav(active=active, alerts=alert_count(repo.get_orders(include_archived=False), today=date.today()))

    @ui.page("/")
    def gargalos() -> None:
        nav("gargalos")
        today = date.today()
        orders = active_orders(repo.get_orders(include_archived=False))
        rules = repo.list_capacity_rules()
        summaries = sector_queues(orders, rules, today=today)
        risky = at_risk_orders(orders, rules, today=today)

        with page_container():
            ui.label("Análise de Gargalos").classes("text-2xl font-semibold")
            ui.label(f"Capacidade real vs carga por sector · {len(orders)} encomendas ativas").classes("tp-subtitle")

            with ui.row().classes("w-full gap-4 tp-kpi"):
                for label, value in (
                    ("Encomendas ativas", len(orders)),
                    ("Em risco", len(risky)),
                    ("Regras de capacidade", len(rules)),
                ):
                    with ui.card().classes("min-w-[180px]"):
                        ui.label(label).classes("text-sm text-slate-600")
                        ui.label(str(value)).classes("text-3xl font-bold")

            ui.separator()
            ui.label("Fila por sector").classes("text-lg font-semibold")
            ui.table(
                columns=[
                    {"name": "sector", "label": "Sector", "field": "sector"},
                    {"name": "total_orders", "label": "Encomendas", "field": "total_orders"},
                    {"name": "total_remaining", "label": "Peças em falta", "field": "total_remaining"},
                    {"name": "total_daily_capacity", "label": "Capacidade/dia", "field": "total_daily_capacity"},
                    {"name": "days_to_complete", "label": "Dias p/ concluir", "field": "days_to_complete"},
                    {"name": "at_risk_count", "label": "Em risco", "field": "at_risk_count"},
                    {"name": "no_capacity_count", "label": "Sem capacidade", "field": "no_capacity_count"},
                ],
                rows=[
                    {
                        "sector_id": s.sector.sector_id,
                        "sector": s.sector.name,
                        "total_orders": s.total_orders,
                        "total_remaining": fmt_qty(s.total_remaining),
                        "total_daily_capacity": fmt_qty(s.total_daily_capacity),
                        "days_to_complete": s.days_to_complete if s.days_to_complete is not None else "-",
                        "at_risk_count": s.at_risk_count,
                        "no_capacity_count": s.no_capacity_count,
                    }
                    for s in summaries
                ],
                row_key="sector_id",
            ).classes("w-full").props("dense flat bordered")

            ui.separator()
            ui.label(f"Encomendas em risco ({len(risky)})").classes("text-lg font-semibold")
            if not risky:
                ui.label("(sem encomendas em risco)").classes("text-gray-500")
                return
            ui.table(
                columns=[
                    {"name": "doc_nr", "label": "Documento", "field": "doc_nr"},
                    {"name": "client_name", "label": "Cliente", "field": "client_name"},
                    {"name": "article_code", "label": "Artigo", "field": "article_code"},
                    {"name": "requested", "label": "Entrega pedida", "field": "requested"},
                    {"name": "max_days_late", "label": "Atraso máx. (d)", "field": "max_days_late"},
                    {"name": "sectors", "label": "Sectores", "field": "sectors"},
                ],
                rows=[
                    {
                        "_row_id": r.order.id,
                        "doc_nr": r.order.doc_nr,
                        "client_name": r.order.client_name,
                        "article_code": r.order.article_code,
                        "requested": fmt_date(r.order.requested_date),
                        "max_days_late": r.max_days_late,
                        "sectors": ", ".join(f"{s.sector_name} (+{s.days_late}d)" for s in r.sectors),
                    }
                    for r in risky
                ],
                row_key="_row_id",
                pagination=25,
            ).classes("w-full tp-table").props("dense flat bordered wrap-cells")

    @ui.page("/sector/{sector_id}")
    def sector_page(sector_id: str) -> None:
        try:
            sector = get_sector(sector_id)
        except UnknownSectorError:
            nav("gargalos")
            with page_container():
                ui.label(f"Sector desconhecido: {sector_id}").classes("text-negative")
            return

        nav(f"sector:{sector.sector_id}")
        with page_container():
            ui.label(sector.name).classes("text-2xl font-semibold")
            summary_label = ui.label("").classes("tp-subtitle")
            q = ui.input("Pesquisar", placeholder="Documento, cliente ou artigo").classes("w-80")

            def build_rows() -> list[dict]:
                orders = active_orders(repo.get_orders(include_archived=False))
                summary = sector_queue(orders, sector.sector_id, repo.list_capacity_rules(), today=date.today())
                summary_label.text = (
                    f"{summary.total_orders} encomendas · {fmt_qty(summary.total_remaining)} peças em falta · "
                    f"{summary.at_risk_count} em risco · {summary.no_capacity_count} sem capacidade"
                )
                rows = [capacity_row(i) for i in summary.infos]
                needle = str(q.value or "").strip().lower()
                if needle:
                    rows = [
                        r for r in rows
                        if needle in f"{r['doc_nr']} {r['client_name']} {r['article']}".lower()
                    ]
                return rows

            tbl = render_queue_table(build_rows())

            def refresh() -> None:
                tbl.rows = build_rows()
                tbl.update()

            q.on("update:model-value", lambda *_: refresh())

            dialog = ui.dialog().props("persistent")
            state: dict = {"order_id": None}
            with dialog:
                with ui.card().classes("bg-white p-6").style("width: 92vw; max-width: 560px;"):
                    title = ui.label("").classes("text-xl font-semibold")
                    pending_label = ui.label("").classes("text-orange-600")
                    ui.separator()
                    date_input = ui.input("Data prevista", placeholder="DD/MM/AAAA").props("outlined dense").classes("w-60")
                    obs_input = ui.textarea("Observações").props("outlined dense").classes("w-full")

                    with ui.row().classes("w-full justify-end gap-2"):
                        ui.button("Cancelar", on_click=dialog.close).props("flat")

                        def do_validate() -> None:
                            try:
                                repo.validate_predicted_date(order_id=state["order_id"], sector_id=sector.sector_id)
                            except Exception as ex:
                                ui.notify(f"Erro ao validar: {ex}", color="negative")
                                return
                            ui.notify("Data validada")
                            dialog.close()
                            refresh()

                        validate_btn = ui.button("Validar", icon="check", on_click=do_validate).props("outline color=warning")

                        def do_save() -> None:
                            raw = str(date_input.value or "").strip()
                            new_date = coerce_date(raw) if raw else None
                            if raw and new_date is None:
                                ui.notify("Data inválida", color="negative")
                                return
                            try:
                                order = repo.get_order(state["order_id"])
                                dates = dict(order.sector_predicted_dates or {})
                                if new_date is not None or dates.get(sector.sector_id) is not None:
                                    dates[sector.sector_id] = new_date
                                observations = dict(order.sector_observations or {})
                                note = str(obs_input.value or "").strip()
                                if note:
                                    observations[sector.sector_id] = note
                                else:
                                    observations.pop(sector.sector_id, None)
                                repo.update_order(
                                    replace(order, sector_predicted_dates=dates, sector_observations=observations)
                                )
                            except Exception as ex:
                                ui.notify(f"Erro ao guardar: {ex}", color="negative")
                                return
                            ui.notify("Guardado")
                            dialog.close()
                            refresh()

                        ui.button("Guardar", on_click=do_save).props("unelevated color=primary")

            def open_editor(e) -> None:
                row = _pick_row(getattr(e, "args", None))
                if not row:
                    ui.notify("Não foi possível ler a linha selecionada", color="negative")
                    return
                order = repo.get_order(str(row["_row_id"]))
                predicted = (order.sector_predicted_dates or {}).get(sector.sector_id)
                is_pending = bool((order.sector_predicted_dates_pending or {}).get(sector.sector_id))
                state["order_id"] = order.id
                title.text = f"{order.doc_nr} · linha {order.item_nr} · {order.client_name}"
                pending_label.text = "Data ajustada automaticamente, por validar" if is_pending else ""
                validate_btn.set_visibility(is_pending)
                date_input.value = fmt_date(predicted) if predicted else ""
                obs_input.value = (order.sector_observations or {}).get(sector.sector_id, "")
                dialog.open()

            tbl.on("rowDblclick", open_editor)

    @ui.page("/capacidades")
    def capacidades() -> None:
        nav("capacidades")
        sector_options = {s.sector_id: s.name for s in SECTORS}

        with page_container():
            ui.label("Capacidades de Produção").classes("text-2xl font-semibold")
            ui.label(
                "Capacidade produtiva (peças/hora) por artigo e sector. Campos em branco valem para qualquer artigo."
            ).classes("tp-subtitle")

            with ui.row().classes("items-end w-full gap-3"):
                sector_filter = ui.select(
                    {"all": "Todos", **sector_options},
                    value="all",
                    label="Sector",
                    on_change=lambda _: refresh_rows(),
                ).classes("w-60")
                q = ui.input("Pesquisar", placeholder="Artigo, referência, família...").classes("w-72")

            def to_row(r: CapacityRule) -> dict:
                return {
                    "rule_id": r.id,
                    "sector": sector_options.get(r.sector_id, r.sector_id),
                    "label": r.label,
                    "article_code": r.article_code,
                    "reference": r.reference,
                    "family": r.family,
                    "color_code": r.color_code,
                    "size": r.size,
                    "pieces_per_hour": r.pieces_per_hour,
                    "hours_per_day": r.hours_per_day,
                    "daily": fmt_qty(r.daily_capacity),
                }

            def filtered_rows() -> list[dict]:
                sid = sector_filter.value
                rules = repo.list_capacity_rules(sector_id=None if sid == "all" else sid)
                needle = str(q.value or "").strip().lower()
                rows = [to_row(r) for r in rules]
                if needle:
                    keys = ("label", "article_code", "reference", "family", "color_code")
                    rows = [r for r in rows if any(needle in str(r[k]).lower() for k in keys)]
                return rows

            tbl = ui.table(
                columns=[
                    {"name": "sector", "label": "Sector", "field": "sector"},
                    {"name": "label", "label": "Regra", "field": "label"},
                    {"name": "article_code", "label": "Artigo", "field": "article_code"},
                    {"name": "reference", "label": "Referência", "field": "reference"},
                    {"name": "family", "label": "Família", "field": "family"},
                    {"name": "color_code", "label": "Cor", "field": "color_code"},
                    {"name": "size", "label": "Tamanho", "field": "size"},
                    {"name": "pieces_per_hour", "label": "Peças/hora", "field": "pieces_per_hour"},
                    {"name": "hours_per_day", "label": "Horas/dia", "field": "hours_per_day"},
                    {"name": "daily", "label": "Peças/dia", "field": "daily"},
                ],
                rows=filtered_rows(),
                row_key="rule_id",
            ).classes("w-full").props("dense flat bordered")

            def refresh_rows() -> None:
                tbl.rows = filtered_rows()
                tbl.update()

            q.on("update:model-value", lambda *_: refresh_rows())

            dialog = ui.dialog().props("persistent")
            state: dict = {"rule_id": None}

            with dialog:
                with ui.card().classes("bg-white p-6").style("width: 92vw; max-width: 820px;"):
                    mode_label = ui.label("").classes("text-xl font-semibold")
                    ui.separator()
                    f_sector = ui.select(sector_options, value=SECTOR_IDS[0], label="Sector").classes("w-60")
                    f_label = ui.input("Descrição (opcional)").props("outlined dense").classes("w-full")
                    with ui.row().classes("w-full items-end gap-3"):
                        f_article = ui.input("Artigo").props("outlined dense").classes("w-40")
                        f_reference = ui.input("Referência").props("outlined dense").classes("w-40")
                        f_family = ui.input("Família").props("outlined dense").classes("w-40")
                        f_color = ui.input("Cor").props("outlined dense").classes("w-28")
                        f_size = ui.input("Tamanho").props("outlined dense").classes("w-28")
                    with ui.row().classes("w-full items-end gap-3"):
                        f_pph = ui.number("Peças/hora", value=0, min=0, step=1).classes("w-36")
                        f_hpd = ui.number("Horas/dia", value=DEFAULT_HOURS_PER_DAY, min=1, max=24, step=1).classes("w-36")

                    with ui.row().classes("w-full justify-end gap-2"):
                        ui.button("Cancelar", on_click=dialog.close).props("flat")

                        def do_delete() -> None:
                            if not state["rule_id"]:
                                ui.notify("Não há nada para eliminar", color="warning")
                                return
                            try:
                                repo.delete_capacity_rule(state["rule_id"])
                            except Exception as ex:
                                ui.notify(f"Erro ao eliminar: {ex}", color="negative")
                                return
                            ui.notify("Regra eliminada")
                            dialog.close()
                            refresh_rows()

                        ui.button("Eliminar", color="negative", on_click=do_delete).props("outline")

                        def do_save() -> None:
                            values = dict(
                                sector_id=f_sector.value,
                                label=str(f_label.value or ""),
                                article_code=str(f_article.value or ""),
                                reference=str(f_reference.value or ""),
                                family=str(f_family.value or ""),
                                color_code=str(f_color.value or ""),
                                size=str(f_size.value or ""),
                                pieces_per_hour=float(f_pph.value or 0),
                                hours_per_day=float(f_hpd.value or DEFAULT_HOURS_PER_DAY),
                            )
                            try:
                                if state["rule_id"]:
                                    repo.update_capacity_rule(CapacityRule(id=state["rule_id"], **values))
                                    ui.notify("Regra alterada")
                                else:
                                    repo.add_capacity_rule(**values)
                                    ui.notify("Regra adicionada")
                            except Exception as ex:
                                ui.notify(f"Erro ao guardar: {ex}", color="negative")
                                return
                            dialog.close()
                            refresh_rows()

                        ui.button("Guardar", on_click=do_save).props("unelevated color=primary")

            def open_dialog(rule: CapacityRule | None = None) -> None:
                state["rule_id"] = rule.id if rule else None
                mode_label.text = "Editar regra" if rule else "Nova regra"
                default_sector = sector_filter.value if sector_filter.value != "all" else SECTOR_IDS[0]
                f_sector.value = rule.sector_id if rule else default_sector
                f_label.value = rule.label if rule else ""
                f_article.value = rule.article_code if rule else ""
                f_reference.value = rule.reference if rule else ""
                f_family.value = rule.family if rule else ""
                f_color.value = rule.color_code if rule else ""
                f_size.value = rule.size if rule else ""
                f_pph.value = rule.pieces_per_hour if rule else 0
                f_hpd.value = rule.hours_per_day if rule else DEFAULT_HOURS_PER_DAY
                dialog.open()

            def on_row_event(e) -> None:
                row = _pick_row(getattr(e, "args", None))
                if not row:
                    ui.notify("Não foi possível ler a linha selecionada", color="negative")
                    return
                try:
                    open_dialog(repo.get_capacity_rule(str(row["rule_id"])))
                except ValueError as ex:
                    ui.notify(str(ex), color="negative")

            ui.button("Nova regra", icon="add", on_click=lambda: open_dialog()).props("unelevated color=primary")
            tbl.on("rowDblclick", on_row_event)

    @ui.page("/importar")
    def importar() -> None:
        nav("importar")
        with page_container():
            ui.label("Importar encomendas").classes("text-2xl font-semibold")
            ui.label(
                "Folha Excel de encomendas (primeira folha). Datas previstas, observações e prioridades já "
                "introduzidas mantêm-se."
            ).classes("tp-subtitle")
            count_label = ui.label(f"Encomendas na base de dados: {repo.count_orders()}")

            async def handle_upload(e) -> None:
                try:
                    content = await e.file.read()
                    filename = getattr(e.file, "name", None) or getattr(e.file, "filename", None)
                    n = repo.import_orders_excel_bytes(content=content, filename=filename)
                except Exception as ex:
                    ui.notify(f"Erro ao importar: {ex}", color="negative")
                    return
                ui.notify(f"Importadas {n} encomendas")
                count_label.text = f"Encomendas na base de dados: {repo.count_orders()}"

            ui.upload(label="Ficheiro .xlsx", auto_upload=True, on_upload=handle_upload).props(
                "accept=.xlsx"
            ).classes("w-96")

            ui.separator()
            ui.label("Histórico").classes("text-lg font-semibold")
            ui.table(
                columns=[
                    {"name": "timestamp", "label": "Data", "field": "timestamp"},
                    {"name": "category", "label": "Tipo", "field": "category"},
                    {"name": "message", "label": "Mensagem", "field": "message"},
                    {"name": "details", "label": "Detalhes", "field": "details"},
                ],
                rows=[
                    {"id": a.id, "timestamp": a.timestamp, "category": a.category, "message": a.message, "details": a.details or ""}
                    for a in repo.get_recent_audit_entries(limit=50)
                ],
                row_key="id",
            ).classes("w-full tp-table").props("dense flat bordered wrap-cells")

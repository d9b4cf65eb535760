from __future__ import annotations

import json
import logging
import math
import sqlite3
from dataclasses import fields, replace
from datetime import date
from uuid import uuid4

from textileplan.core.cascade import apply_predicted_date_change, find_changed_sector, validate_predicted_date
from textileplan.core.models import DEFAULT_HOURS_PER_DAY, AuditEntry, CapacityRule, Order, as_date
from textileplan.core.sectors import SECTOR_IDS, get_sector
from textileplan.data.db import Db
from textileplan.data.excel_io import read_orders_excel_bytes

logger = logging.getLogger(__name__)


_ORDER_DATE_COLUMNS = ("issue_date", "requested_date", "data_tec", "felpo_cru_date", "tinturaria_date", "conf_date", "arm_exp_date")

# Order dataclass fields stored in plain columns (same name).
_ORDER_PLAIN_COLUMNS = tuple(
    f.name
    for f in fields(Order)
    if f.name not in {"id", "is_archived", "sector_predicted_dates", "sector_predicted_dates_pending", "sector_observations"}
)

_RULE_FILTERS = ("article_code", "reference", "family", "color_code", "size")


def _iso(value) -> str | None:
    d = as_date(value)
    return d.isoformat() if d else None


def _parse_iso(value) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _load_json(raw, default):
    if not raw:
        return default
    try:
        out = json.loads(raw)
    except (TypeError, ValueError):
        return default
    return out if isinstance(out, type(default)) else default


def _positive_number(value) -> bool:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


def generate_rule_label(rule: CapacityRule) -> str:
    """Label built from the non-blank filters, or 'Padrão <sector>' for a default rule."""
    parts = [str(getattr(rule, a) or "").strip() for a in _RULE_FILTERS]
    parts = [p for p in parts if p]
    if not parts:
        return f"Padrão {get_sector(rule.sector_id).name}"
    return " / ".join(parts)


class Repository:
    def __init__(self, db: Db):
        self.db = db

    # ------------------------------------------------------------------ audit

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a business event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except sqlite3.Error:
            # Don't crash the app over an audit row.
            logger.exception("Failed to write audit log entry (%s: %s)", category, message)

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [
                AuditEntry(
                    id=row["id"],
                    timestamp=row["timestamp"],
                    category=row["category"],
                    message=row["message"],
                    details=row["details"],
                )
                for row in rows
            ]

    # ----------------------------------------------------------------- orders

    @staticmethod
    def _row_to_order(row: sqlite3.Row) -> Order:
        values = {}
        for name in _ORDER_PLAIN_COLUMNS:
            v = row[name]
            if name in _ORDER_DATE_COLUMNS:
                v = _parse_iso(v)
            values[name] = v

        predicted = {
            k: _parse_iso(v)
            for k, v in _load_json(row["sector_predicted_dates_json"], {}).items()
        }
        pending = {k: True for k, v in _load_json(row["sector_pending_json"], {}).items() if v is True}
        observations = {k: str(v) for k, v in _load_json(row["sector_observations_json"], {}).items()}
        return Order(
            id=row["order_id"],
            is_archived=bool(row["is_archived"]),
            sector_predicted_dates=predicted,
            sector_predicted_dates_pending=pending,
            sector_observations=observations,
            **values,
        )

    @staticmethod
    def _save_order(con: sqlite3.Connection, order: Order) -> None:
        values = []
        for name in _ORDER_PLAIN_COLUMNS:
            v = getattr(order, name)
            if name in _ORDER_DATE_COLUMNS:
                v = _iso(v)
            values.append(v)

        predicted = {k: _iso(v) for k, v in (order.sector_predicted_dates or {}).items()}
        pending = {k: True for k, v in (order.sector_predicted_dates_pending or {}).items() if v is True}

        cols = ["order_id", *_ORDER_PLAIN_COLUMNS, "is_archived",
                "sector_predicted_dates_json", "sector_pending_json", "sector_observations_json"]
        params = [
            order.id,
            *values,
            1 if order.is_archived else 0,
            json.dumps(predicted, sort_keys=True),
            json.dumps(pending, sort_keys=True),
            json.dumps(order.sector_observations or {}, sort_keys=True, ensure_ascii=False),
        ]
        placeholders = ", ".join("?" for _ in cols)
        updates = ", ".join(f"{c} = excluded.{c}" for c in cols if c != "order_id")
        con.execute(
            f"""
            INSERT INTO production_order({", ".join(cols)})
            VALUES ({placeholders})
            ON CONFLICT(order_id) DO UPDATE SET {updates}, updated_at = CURRENT_TIMESTAMP
            """,
            params,
        )

    def _load_order(self, con: sqlite3.Connection, order_id: str) -> Order:
        row = con.execute("SELECT * FROM production_order WHERE order_id = ?", (order_id,)).fetchone()
        if row is None:
            raise ValueError(f"encomenda não encontrada: {order_id!r}")
        return self._row_to_order(row)

    def get_orders(self, *, include_archived: bool = True) -> list[Order]:
        sql = "SELECT * FROM production_order"
        if not include_archived:
            sql += " WHERE is_archived = 0"
        sql += " ORDER BY doc_nr, item_nr, order_id"
        with self.db.connect() as con:
            return [self._row_to_order(r) for r in con.execute(sql).fetchall()]

    def get_order(self, order_id: str) -> Order:
        with self.db.connect() as con:
            return self._load_order(con, order_id)

    def count_orders(self) -> int:
        with self.db.connect() as con:
            return int(con.execute("SELECT COUNT(*) FROM production_order").fetchone()[0])

    def upsert_orders(self, orders: list[Order]) -> int:
        """Insert or refresh imported orders.

        Data coming from the sheet replaces what is stored, but user-entered
        state (predicted dates, pending flags, observations, priority, archive)
        of already known orders is kept.
        """
        with self.db.connect() as con:
            for order in orders:
                row = con.execute("SELECT * FROM production_order WHERE order_id = ?", (order.id,)).fetchone()
                if row is not None:
                    existing = self._row_to_order(row)
                    order = replace(
                        order,
                        priority=existing.priority,
                        is_archived=existing.is_archived,
                        sector_predicted_dates=existing.sector_predicted_dates,
                        sector_predicted_dates_pending=existing.sector_predicted_dates_pending,
                        sector_observations=existing.sector_observations,
                    )
                self._save_order(con, order)
        return len(orders)

    def import_orders_excel_bytes(self, *, content: bytes, filename: str | None = None) -> int:
        orders = read_orders_excel_bytes(content)
        n = self.upsert_orders(orders)
        logger.info("Imported %d orders from %s", n, filename or "spreadsheet")
        self.log_audit("import", f"Importadas {n} encomendas", filename)
        return n

    def clear_orders(self) -> None:
        with self.db.connect() as con:
            con.execute("DELETE FROM production_order")
        self.log_audit("reset", "Encomendas eliminadas")

    def update_predicted_date(self, *, order_id: str, sector_id: str, new_date: date | None) -> Order:
        """Edit one sector's predicted date and persist the cascade in one transaction."""
        sector_id = get_sector(sector_id).sector_id
        with self.db.connect() as con:
            order = self._load_order(con, order_id)
            updated = apply_predicted_date_change(order, sector_id, new_date)
            self._save_order(con, updated)

        logger.info("Order %s: predicted date %s -> %s", order_id, sector_id, _iso(new_date))
        self.log_audit(
            "predicted_date",
            f"{order_id} {sector_id} -> {_iso(new_date) or '-'}",
            json.dumps({k: _iso(v) for k, v in updated.sector_predicted_dates.items()}, sort_keys=True),
        )
        return updated

    def update_order(self, order: Order) -> Order:
        """Persist an order edited as a whole.

        If a predicted date changed relative to the stored version, the first
        such sector is treated as the user's edit and cascaded forward.
        """
        with self.db.connect() as con:
            stored = self._load_order(con, order.id)
            changed = find_changed_sector(stored, order)
            final = order
            if changed is not None:
                new_date = as_date((order.sector_predicted_dates or {}).get(changed))
                base = replace(order, sector_predicted_dates=dict(stored.sector_predicted_dates or {}))
                final = apply_predicted_date_change(base, changed, new_date)
            self._save_order(con, final)

        if changed is not None:
            new_date = (final.sector_predicted_dates or {}).get(changed)
            logger.info("Order %s: predicted date %s -> %s", order.id, changed, _iso(new_date))
            self.log_audit(
                "predicted_date",
                f"{order.id} {changed} -> {_iso(new_date) or '-'}",
                json.dumps({k: _iso(v) for k, v in final.sector_predicted_dates.items()}, sort_keys=True),
            )
        return final

    def validate_predicted_date(self, *, order_id: str, sector_id: str) -> Order:
        with self.db.connect() as con:
            order = self._load_order(con, order_id)
            updated = validate_predicted_date(order, sector_id)
            self._save_order(con, updated)
        return updated

    def set_observation(self, *, order_id: str, sector_id: str, text: str) -> Order:
        sector_id = get_sector(sector_id).sector_id
        with self.db.connect() as con:
            order = self._load_order(con, order_id)
            observations = dict(order.sector_observations or {})
            text = str(text or "").strip()
            if text:
                observations[sector_id] = text
            else:
                observations.pop(sector_id, None)
            updated = replace(order, sector_observations=observations)
            self._save_order(con, updated)
        return updated

    def set_priority(self, *, doc_nr: str, priority: int) -> int:
        """Set the priority of every line of a document."""
        priority = int(priority)
        if priority not in {0, 1, 2, 3}:
            raise ValueError(f"prioridade inválida: {priority!r}")
        with self.db.connect() as con:
            cur = con.execute(
                "UPDATE production_order SET priority = ?, updated_at = CURRENT_TIMESTAMP WHERE doc_nr = ?",
                (priority, str(doc_nr)),
            )
            return int(cur.rowcount)

    def set_archived(self, *, order_id: str, archived: bool) -> None:
        with self.db.connect() as con:
            cur = con.execute(
                "UPDATE production_order SET is_archived = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                (1 if archived else 0, order_id),
            )
            if cur.rowcount == 0:
                raise ValueError(f"encomenda não encontrada: {order_id!r}")
        self.log_audit("archive", f"{order_id} {'arquivada' if archived else 'reativada'}")

    # --------------------------------------------------------- capacity rules

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> CapacityRule:
        return CapacityRule(
            id=row["rule_id"],
            sector_id=row["sector_id"],
            label=row["label"] or "",
            article_code=row["article_code"] or "",
            reference=row["reference"] or "",
            family=row["family"] or "",
            color_code=row["color_code"] or "",
            size=row["size"] or "",
            pieces_per_hour=float(row["pieces_per_hour"]),
            hours_per_day=float(row["hours_per_day"]),
        )

    @staticmethod
    def _clean_rule(rule: CapacityRule) -> CapacityRule:
        sector_id = str(rule.sector_id or "").strip()
        if sector_id not in SECTOR_IDS:
            raise ValueError(f"sector desconhecido: {rule.sector_id!r}")
        if not _positive_number(rule.pieces_per_hour):
            raise ValueError("Peças/Hora deve ser maior que zero.")
        if not _positive_number(rule.hours_per_day):
            raise ValueError("Horas/Dia deve ser maior que zero.")
        cleaned = replace(
            rule,
            sector_id=sector_id,
            pieces_per_hour=float(rule.pieces_per_hour),
            hours_per_day=float(rule.hours_per_day),
            **{a: str(getattr(rule, a) or "").strip() for a in _RULE_FILTERS},
        )
        label = str(cleaned.label or "").strip() or generate_rule_label(cleaned)
        return replace(cleaned, label=label)

    def list_capacity_rules(self, *, sector_id: str | None = None) -> list[CapacityRule]:
        """Rules in insertion order (the matcher breaks ties by this order)."""
        with self.db.connect() as con:
            if sector_id is None:
                rows = con.execute("SELECT * FROM capacity_rule ORDER BY seq").fetchall()
            else:
                rows = con.execute(
                    "SELECT * FROM capacity_rule WHERE sector_id = ? ORDER BY seq",
                    (get_sector(sector_id).sector_id,),
                ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def get_capacity_rule(self, rule_id: str) -> CapacityRule:
        with self.db.connect() as con:
            row = con.execute("SELECT * FROM capacity_rule WHERE rule_id = ?", (rule_id,)).fetchone()
        if row is None:
            raise ValueError(f"regra de capacidade não encontrada: {rule_id!r}")
        return self._row_to_rule(row)

    def add_capacity_rule(
        self,
        *,
        sector_id: str,
        pieces_per_hour: float,
        hours_per_day: float = DEFAULT_HOURS_PER_DAY,
        label: str = "",
        article_code: str = "",
        reference: str = "",
        family: str = "",
        color_code: str = "",
        size: str = "",
    ) -> CapacityRule:
        rule = self._clean_rule(
            CapacityRule(
                id=f"cap_{uuid4().hex[:12]}",
                sector_id=sector_id,
                pieces_per_hour=pieces_per_hour,
                hours_per_day=hours_per_day,
                label=label,
                article_code=article_code,
                reference=reference,
                family=family,
                color_code=color_code,
                size=size,
            )
        )
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO capacity_rule(
                    rule_id, sector_id, label, article_code, reference, family,
                    color_code, size, pieces_per_hour, hours_per_day
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.id, rule.sector_id, rule.label, rule.article_code, rule.reference,
                    rule.family, rule.color_code, rule.size, rule.pieces_per_hour, rule.hours_per_day,
                ),
            )
        logger.info("Capacity rule added: %s (%s)", rule.label, rule.sector_id)
        self.log_audit("capacity", f"Regra adicionada: {rule.label}", rule.id)
        return rule

    def update_capacity_rule(self, rule: CapacityRule) -> CapacityRule:
        rule = self._clean_rule(rule)
        with self.db.connect() as con:
            cur = con.execute(
                """
                UPDATE capacity_rule
                SET sector_id = ?, label = ?, article_code = ?, reference = ?, family = ?,
                    color_code = ?, size = ?, pieces_per_hour = ?, hours_per_day = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE rule_id = ?
                """,
                (
                    rule.sector_id, rule.label, rule.article_code, rule.reference, rule.family,
                    rule.color_code, rule.size, rule.pieces_per_hour, rule.hours_per_day, rule.id,
                ),
            )
            if cur.rowcount == 0:
                raise ValueError(f"regra de capacidade não encontrada: {rule.id!r}")
        logger.info("Capacity rule updated: %s", rule.id)
        self.log_audit("capacity", f"Regra alterada: {rule.label}", rule.id)
        return rule

    def delete_capacity_rule(self, rule_id: str) -> None:
        with self.db.connect() as con:
            cur = con.execute("DELETE FROM capacity_rule WHERE rule_id = ?", (rule_id,))
            if cur.rowcount == 0:
                raise ValueError(f"regra de capacidade não encontrada: {rule_id!r}")
        logger.info("Capacity rule deleted: %s", rule_id)
        self.log_audit("capacity", "Regra eliminada", rule_id)

from __future__ import annotations


from contextlib import contextmanager
import sqlite3
from pathlib import Path


class Db:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self):
        con = sqlite3.connect(self.path, timeout=20.0)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        con = sqlite3.connect(self.path, timeout=10.0)
        try:
            con.execute("PRAGMA journal_mode=WAL;")

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
                    category TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT
                );
                """
            )

            con.executescript(
                """
                -- Capacity rules: flat, unordered collection. seq keeps insertion
                -- order so ties in the matcher resolve the same way every time.
                CREATE TABLE IF NOT EXISTS capacity_rule (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    rule_id TEXT NOT NULL UNIQUE,
                    sector_id TEXT NOT NULL,
                    label TEXT NOT NULL DEFAULT '',
                    article_code TEXT NOT NULL DEFAULT '',
                    reference TEXT NOT NULL DEFAULT '',
                    family TEXT NOT NULL DEFAULT '',
                    color_code TEXT NOT NULL DEFAULT '',
                    size TEXT NOT NULL DEFAULT '',
                    pieces_per_hour REAL NOT NULL,
                    hours_per_day REAL NOT NULL DEFAULT 24,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS ix_capacity_rule_sector ON capacity_rule(sector_id);

                CREATE TABLE IF NOT EXISTS production_order (
                    order_id TEXT PRIMARY KEY,
                    doc_nr TEXT NOT NULL DEFAULT '',
                    item_nr INTEGER NOT NULL DEFAULT 0,
                    client_name TEXT NOT NULL DEFAULT '',
                    po TEXT NOT NULL DEFAULT '',
                    issue_date TEXT,
                    requested_date TEXT,
                    qty_requested REAL NOT NULL DEFAULT 0,

                    article_code TEXT NOT NULL DEFAULT '',
                    reference TEXT NOT NULL DEFAULT '',
                    family TEXT NOT NULL DEFAULT '',
                    color_code TEXT NOT NULL DEFAULT '',
                    size TEXT NOT NULL DEFAULT '',

                    felpo_cru_qty REAL NOT NULL DEFAULT 0,
                    tinturaria_qty REAL NOT NULL DEFAULT 0,
                    conf_roupoes_qty REAL NOT NULL DEFAULT 0,
                    conf_felpos_qty REAL NOT NULL DEFAULT 0,
                    emb_acab_qty REAL NOT NULL DEFAULT 0,
                    stock_cx_qty REAL NOT NULL DEFAULT 0,

                    data_tec TEXT,
                    felpo_cru_date TEXT,
                    tinturaria_date TEXT,
                    conf_date TEXT,
                    arm_exp_date TEXT,

                    qty_billed REAL NOT NULL DEFAULT 0,
                    qty_open REAL NOT NULL DEFAULT 0,
                    priority INTEGER NOT NULL DEFAULT 0,
                    is_archived INTEGER NOT NULL DEFAULT 0,

                    -- JSON: {sector_id: "YYYY-MM-DD" | null}
                    sector_predicted_dates_json TEXT NOT NULL DEFAULT '{}',
                    -- JSON: {sector_id: true}
                    sector_pending_json TEXT NOT NULL DEFAULT '{}',
                    -- JSON: {sector_id: "text"}
                    sector_observations_json TEXT NOT NULL DEFAULT '{}',

                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS ix_production_order_doc ON production_order(doc_nr);
                """
            )
            con.commit()
        finally:
            con.close()

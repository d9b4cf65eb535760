from __future__ import annotations

import io
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

from textileplan.core.models import CapacityRule, Order
from textileplan.data.db import Db
from textileplan.data.repository import Repository

LETTERS = [chr(ord("A") + i) for i in range(26)] + ["AA", "AB", "AC"]


@pytest.fixture()
def repo(tmp_path) -> Repository:
    db = Db(Path(tmp_path) / "test.db")
    db.ensure_schema()
    return Repository(db)


def make_order(order_id: str = "ENC1-1", **kw) -> Order:
    base = dict(
        id=order_id,
        doc_nr=order_id.split("-")[0],
        item_nr=int(order_id.split("-")[1]),
        qty_requested=1000,
        qty_open=1000,
        data_tec=date(2024, 1, 10),
        tinturaria_date=date(2024, 1, 20),
        arm_exp_date=date(2024, 2, 1),
    )
    base.update(kw)
    return Order(**base)


# --- capacity rules ----------------------------------------------------------


def test_add_and_list_rules_in_insertion_order(repo):
    r1 = repo.add_capacity_rule(sector_id="tinturaria", pieces_per_hour=50)
    r2 = repo.add_capacity_rule(sector_id="tinturaria", pieces_per_hour=80, article_code=" ART1 ", family="ROUPOES")
    repo.add_capacity_rule(sector_id="confeccao", pieces_per_hour=10, hours_per_day=16)

    rules = repo.list_capacity_rules(sector_id="tinturaria")
    assert [r.id for r in rules] == [r1.id, r2.id]
    assert rules[0].hours_per_day == 24
    assert rules[0].label == "Padrão Tinturaria"
    assert rules[1].article_code == "ART1"
    assert rules[1].label == "ART1 / ROUPOES"
    assert len(repo.list_capacity_rules()) == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(sector_id="lavandaria", pieces_per_hour=10),
        dict(sector_id="tinturaria", pieces_per_hour=0),
        dict(sector_id="tinturaria", pieces_per_hour=-5),
        dict(sector_id="tinturaria", pieces_per_hour=10, hours_per_day=0),
        dict(sector_id="tinturaria", pieces_per_hour=float("nan")),
        dict(sector_id="tinturaria", pieces_per_hour=float("inf")),
        dict(sector_id="tinturaria", pieces_per_hour=10, hours_per_day=float("nan")),
    ],
)
def test_invalid_rules_are_rejected(repo, kwargs):
    with pytest.raises(ValueError):
        repo.add_capacity_rule(**kwargs)
    assert repo.list_capacity_rules() == []


def test_update_and_delete_rule(repo):
    rule = repo.add_capacity_rule(sector_id="embalagem", pieces_per_hour=30, label="Caixas")
    updated = repo.update_capacity_rule(replace(rule, pieces_per_hour=45, size="L"))
    assert repo.get_capacity_rule(rule.id) == updated
    assert updated.pieces_per_hour == 45 and updated.label == "Caixas"

    repo.delete_capacity_rule(rule.id)
    assert repo.list_capacity_rules() == []
    with pytest.raises(ValueError):
        repo.delete_capacity_rule(rule.id)
    with pytest.raises(ValueError):
        repo.update_capacity_rule(updated)


def test_update_unknown_rule_raises(repo):
    with pytest.raises(ValueError):
        repo.update_capacity_rule(CapacityRule(id="nope", sector_id="tinturaria", pieces_per_hour=1))


# --- orders ------------------------------------------------------------------


def test_order_round_trip(repo):
    order = make_order(
        requested_date=date(2024, 3, 1),
        article_code="ART1",
        conf_roupoes_qty=12.5,
        sector_predicted_dates={"tinturaria": date(2024, 1, 22), "confeccao": None},
        sector_predicted_dates_pending={"tinturaria": True},
        sector_observations={"tinturaria": "à espera de fio"},
        priority=2,
    )
    repo.upsert_orders([order])
    assert repo.get_order(order.id) == order
    assert repo.count_orders() == 1


def test_get_unknown_order_raises(repo):
    with pytest.raises(ValueError):
        repo.get_order("missing")


def test_update_predicted_date_persists_cascade(repo):
    repo.upsert_orders([make_order()])
    out = repo.update_predicted_date(order_id="ENC1-1", sector_id="tecelagem", new_date=date(2024, 1, 15))

    stored = repo.get_order("ENC1-1")
    assert stored == out
    assert stored.sector_predicted_dates == {
        "tecelagem": date(2024, 1, 15),
        "tinturaria": date(2024, 1, 25),
        "embalagem": date(2024, 2, 6),
        "expedicao": date(2024, 2, 6),
    }
    assert stored.sector_predicted_dates_pending == {"tinturaria": True, "embalagem": True, "expedicao": True}
    assert any(a.category == "predicted_date" for a in repo.get_recent_audit_entries())


def test_cascade_is_all_or_nothing(repo, monkeypatch):
    repo.upsert_orders([make_order()])

    def boom(con, order):
        raise RuntimeError("disk full")

    monkeypatch.setattr(Repository, "_save_order", staticmethod(boom))
    with pytest.raises(RuntimeError):
        repo.update_predicted_date(order_id="ENC1-1", sector_id="tecelagem", new_date=date(2024, 1, 15))
    monkeypatch.undo()

    stored = repo.get_order("ENC1-1")
    assert stored.sector_predicted_dates == {}
    assert stored.sector_predicted_dates_pending == {}


def test_validate_predicted_date(repo):
    repo.upsert_orders([make_order()])
    repo.update_predicted_date(order_id="ENC1-1", sector_id="tecelagem", new_date=date(2024, 1, 12))
    out = repo.validate_predicted_date(order_id="ENC1-1", sector_id="tinturaria")
    assert out.sector_predicted_dates["tinturaria"] == date(2024, 1, 22)
    assert "tinturaria" not in repo.get_order("ENC1-1").sector_predicted_dates_pending


def test_update_order_detects_changed_sector(repo):
    repo.upsert_orders([make_order()])
    edited = replace(
        repo.get_order("ENC1-1"),
        sector_predicted_dates={"tinturaria": date(2024, 1, 23)},
        sector_observations={"tinturaria": "ok"},
    )
    out = repo.update_order(edited)
    assert out.sector_predicted_dates["tinturaria"] == date(2024, 1, 23)
    assert out.sector_predicted_dates["embalagem"] == date(2024, 2, 4)
    assert out.sector_observations == {"tinturaria": "ok"}
    assert repo.get_order("ENC1-1") == out
    assert repo.get_recent_audit_entries()[0].category == "predicted_date"


def test_update_order_with_only_a_note_keeps_pending_flag(repo):
    repo.upsert_orders([make_order()])
    repo.update_predicted_date(order_id="ENC1-1", sector_id="tecelagem", new_date=date(2024, 1, 12))
    shifted = repo.get_order("ENC1-1")
    assert shifted.sector_predicted_dates_pending == {"tinturaria": True, "embalagem": True, "expedicao": True}

    out = repo.update_order(replace(shifted, sector_observations={"tinturaria": "aguarda corante"}))
    assert out.sector_predicted_dates == shifted.sector_predicted_dates
    assert out.sector_predicted_dates_pending == shifted.sector_predicted_dates_pending
    assert repo.get_order("ENC1-1").sector_observations == {"tinturaria": "aguarda corante"}


def test_set_observation(repo):
    repo.upsert_orders([make_order()])
    assert repo.set_observation(order_id="ENC1-1", sector_id="confeccao", text=" falta linha ").sector_observations == {
        "confeccao": "falta linha"
    }
    assert repo.set_observation(order_id="ENC1-1", sector_id="confeccao", text="").sector_observations == {}


def test_priority_applies_to_whole_document(repo):
    repo.upsert_orders([make_order("ENC1-1"), make_order("ENC1-2"), make_order("ENC2-1")])
    assert repo.set_priority(doc_nr="ENC1", priority=1) == 2
    assert [o.priority for o in repo.get_orders()] == [1, 1, 0]
    with pytest.raises(ValueError):
        repo.set_priority(doc_nr="ENC1", priority=7)


def test_archive_hides_order(repo):
    repo.upsert_orders([make_order("ENC1-1"), make_order("ENC2-1")])
    repo.set_archived(order_id="ENC1-1", archived=True)
    assert [o.id for o in repo.get_orders(include_archived=False)] == ["ENC2-1"]
    assert len(repo.get_orders()) == 2
    with pytest.raises(ValueError):
        repo.set_archived(order_id="missing", archived=True)


def test_clear_orders(repo):
    repo.upsert_orders([make_order()])
    repo.clear_orders()
    assert repo.count_orders() == 0


# --- import ------------------------------------------------------------------


def make_order_sheet(rows: list[dict]) -> bytes:
    bio = io.BytesIO()
    pd.DataFrame({c: [r.get(c) for r in rows] for c in LETTERS}).to_excel(bio, index=False)
    bio.seek(0)
    return bio.read()


def test_reimport_keeps_user_state(repo):
    sheet = make_order_sheet(
        [
            {"B": "ENC1", "F": 1, "P": 1000, "Q": datetime(2024, 1, 10), "U": datetime(2024, 1, 20), "AC": 1000},
        ]
    )
    assert repo.import_orders_excel_bytes(content=sheet, filename="encomendas.xlsx") == 1
    repo.update_predicted_date(order_id="ENC1-1", sector_id="tecelagem", new_date=date(2024, 1, 11))
    repo.set_priority(doc_nr="ENC1", priority=1)

    sheet2 = make_order_sheet(
        [
            {"B": "ENC1", "F": 1, "P": 1000, "R": 400, "Q": datetime(2024, 1, 10), "AC": 600},
        ]
    )
    repo.import_orders_excel_bytes(content=sheet2)

    order = repo.get_order("ENC1-1")
    assert order.felpo_cru_qty == 400
    assert order.qty_open == 600
    assert order.tinturaria_date is None
    assert order.priority == 1
    assert order.sector_predicted_dates["tinturaria"] == date(2024, 1, 21)
    assert order.sector_predicted_dates_pending == {"tinturaria": True}
    assert [a.category for a in repo.get_recent_audit_entries()].count("import") == 2

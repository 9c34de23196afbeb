from __future__ import annotations

from datetime import datetime

import pytest

from fundraising_dashboard.metrics import (
    MetricsCache,
    compute_week_to_date,
    rank_top_agents,
)
from fundraising_dashboard.store import (
    DEFAULT_AGENT_NUMBER,
    DEFAULT_DISPOSITION_ID,
    DEFAULT_DISPOSITIONS,
    DashboardStore,
    disposition_id_for,
)


def _build_store(tmp_path) -> DashboardStore:  # type: ignore[no-untyped-def]
    db_path = tmp_path / "fundraising_dashboard_test.db"
    store = DashboardStore(db_path)
    store.init_db()
    return store


def test_init_db_seeds_office_agent_and_default_dispositions(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.init_db()

    agents = store.agent_lookup()
    assert list(agents) == [DEFAULT_AGENT_NUMBER]
    assert agents[DEFAULT_AGENT_NUMBER].display_name == "Office"

    dispositions = store.disposition_lookup()
    assert len(dispositions) == len(DEFAULT_DISPOSITIONS) + 1
    assert dispositions[DEFAULT_DISPOSITION_ID].name == "No Disposition"
    assert dispositions[DEFAULT_DISPOSITION_ID].modifiers == frozenset()

    processed = dispositions[disposition_id_for("Processed")]
    assert processed.is_sale and processed.is_payment
    assert dispositions["disp-ran"].is_payment
    assert not dispositions["disp-ran"].is_sale
    assert dispositions["disp-sale"].modifiers == frozenset({"Sale", "Invoice"})
    assert disposition_id_for("Verified Credit") == "disp-verified-credit"


def test_add_agent_validates_input(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(ValueError):
        store.add_agent(1, first_name="  ", last_name="Ayala")

    with pytest.raises(ValueError):
        store.add_agent(-4, first_name="John", last_name="Ayala")

    store.add_agent(1, first_name="John", last_name="Ayala", email="john@example.org")
    with pytest.raises(ValueError):
        store.add_agent(1, first_name="Johnny", last_name=None)

    agents = store.agent_lookup()
    assert agents[1].display_name == "John Ayala"


def test_add_disposition_rejects_unknown_modifiers_and_duplicates(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)

    with pytest.raises(ValueError):
        store.add_disposition("Pledge", ["Sale", "Refund"])

    with pytest.raises(ValueError):
        store.add_disposition("", ["Sale"])

    with pytest.raises(ValueError):
        store.add_disposition("Sale", ["Sale"])

    new_id = store.add_disposition("Pledge", ["Sale", "Sale", "Invoice"])
    assert new_id == "disp-pledge"
    assert store.disposition_lookup()[new_id].modifiers == frozenset({"Sale", "Invoice"})


def test_record_disposition_validates_references(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    customer_id = store.add_customer("Avery", "Mills", "555-0101", "R", "Cold")
    moment = datetime(2025, 3, 6, 10, 0)

    with pytest.raises(ValueError):
        store.add_customer("No", "Phone", "   ")

    with pytest.raises(ValueError):
        store.record_disposition(customer_id, "disp-sale", 1, moment, amount=-5)

    with pytest.raises(ValueError):
        store.record_disposition(customer_id + 100, "disp-sale", 1, moment, amount=5)

    with pytest.raises(ValueError):
        store.record_disposition(customer_id, "disp-missing", 1, moment, amount=5)

    assert store.list_history(customer_id) == []


def test_history_round_trips_into_snapshot(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.add_agent(1, first_name="John", last_name="Ayala")
    first = store.add_customer("Avery", "Mills", "555-0101", "Residential", "Cold")
    second = store.add_customer(None, None, "555-0102", "B", "PC")

    store.record_disposition(first, "disp-sale", 1, datetime(2025, 3, 7, 9, 0), amount=100)
    store.record_disposition(first, "disp-no-answer", 1, datetime(2025, 3, 6, 9, 0))
    store.record_disposition(second, "disp-ran", 1, datetime(2025, 3, 8, 14, 30), amount=45.5, notes="card")

    history = store.list_history(first)
    assert [row["disposition_name"] for row in history] == ["Sale", "No Answer"]

    customers = {row["id"]: row for row in store.list_customers()}
    assert customers[first]["history_count"] == 2
    assert customers[second]["last_disposition_at"] == "2025-03-08T14:30:00"

    snapshot = store.snapshot()
    assert [customer.id for customer in snapshot.customers] == [str(first), str(second)]
    first_customer = snapshot.customers[0]
    assert first_customer.is_residential and first_customer.is_cold
    assert [event.disposition_id for event in first_customer.disposition_history] == [
        "disp-no-answer",
        "disp-sale",
    ]
    assert first_customer.disposition_history[0].amount is None

    now = datetime(2025, 3, 9, 15, 0)
    wtd = compute_week_to_date(now, snapshot.customers, snapshot.dispositions)
    assert wtd.sales_total == 100
    assert wtd.payments_total == 45.5
    assert wtd.residential_sales == 100
    assert wtd.pc_payments == 45.5

    ranking = rank_top_agents(wtd, snapshot.agents)
    assert [item.agent.display_name for item in ranking] == ["John Ayala"]


def test_every_write_bumps_generation(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    assert store.generation == 0

    store.add_agent(2, first_name="Nyah", last_name="Bell")
    customer_id = store.add_customer("Sam", "Ortiz", "555-0103")
    store.record_disposition(customer_id, "disp-sale", 2, datetime(2025, 3, 6, 10, 0), amount=20)
    assert store.generation == 3

    with pytest.raises(ValueError):
        store.add_agent(2, first_name="Nyah", last_name="Bell")
    assert store.generation == 3

    reopened = DashboardStore(store.db_path)
    reopened.init_db()
    assert reopened.generation == 3


def test_metrics_cache_sees_new_history(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    customer_id = store.add_customer("Avery", "Mills", "555-0101")
    now = datetime(2025, 3, 9, 15, 0)
    cache = MetricsCache()

    before = cache.get(now, store.snapshot())
    assert before.wtd.sales_total == 0
    assert cache.get(now, store.snapshot()) is before

    store.record_disposition(customer_id, "disp-credit", 0, datetime(2025, 3, 8, 10, 0), amount=75)
    after = cache.get(now, store.snapshot())
    assert after.wtd.sales_total == 75
    assert after.wtd.payments_total == 75
    assert [item.agent.display_name for item in after.top_agents] == ["Office"]
    assert cache.misses == 2


def test_customer_history_joins_names_and_filters_money_rows(tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = _build_store(tmp_path)
    store.add_agent(1, first_name="John", last_name="Ayala")
    customer_id = store.add_customer("Avery", "Mills", "555-0101", "R", "PC")

    store.record_disposition(customer_id, "disp-voicemail", 1, datetime(2025, 3, 5, 9, 0))
    store.record_disposition(customer_id, "disp-sale", 1, datetime(2025, 3, 6, 9, 0), amount=60)
    store.record_disposition(customer_id, "disp-ran", 7, datetime(2025, 3, 7, 9, 0), amount=60, notes="paid by card")
    store.record_disposition(customer_id, "disp-remail", 1, datetime(2025, 3, 8, 9, 0))

    customer = store.get_customer(customer_id)
    assert customer is not None
    assert customer["phone"] == "555-0101"
    assert store.get_customer(customer_id + 1) is None

    full = store.list_history(customer_id)
    assert [row["disposition_name"] for row in full] == ["ReMail", "Ran", "Sale", "Voicemail"]
    assert full[1]["agent_first_name"] is None
    assert full[1]["notes"] == "paid by card"
    assert full[2]["agent_first_name"] == "John"
    assert full[2]["disposition_modifiers"] == "Sale,Invoice"

    money = store.list_history(customer_id, sales_and_payments_only=True)
    assert [row["disposition_name"] for row in money] == ["Ran", "Sale"]

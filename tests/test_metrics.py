from __future__ import annotations

import math
from datetime import date, datetime, timedelta

import pytest

from fundraising_dashboard.metrics import (
    MetricsCache,
    WtdStats,
    compute_daily_series,
    compute_month_to_date,
    compute_week_to_date,
    compute_weekly_series,
    format_currency,
    month_to_date_bounds,
    parse_currency,
    rank_top_agents,
    thursday_of_week,
    week_to_date_bounds,
    weekly_bucket_keys,
)
from fundraising_dashboard.models import (
    Agent,
    Customer,
    DataSnapshot,
    Disposition,
    DispositionEvent,
)

# Sunday afternoon; the business week opened on Thursday 2025-03-06.
NOW = datetime(2025, 3, 9, 15, 0)

DISPOSITIONS = {
    "sale": Disposition("sale", "Sale", frozenset({"Sale", "Invoice"})),
    "ran": Disposition("ran", "Ran", frozenset({"Payment"})),
    "credit": Disposition("credit", "Credit", frozenset({"Payment", "Sale", "Invoice"})),
    "no-answer": Disposition("no-answer", "No Answer"),
}

AGENTS = {
    1: Agent(1, "John", "Ayala"),
    2: Agent(2, "Nyah", "Bell"),
    3: Agent(3, "Chris", "Stone"),
}


def _event(
    disposition_id: str,
    amount: float | None,
    occurred_at: datetime,
    agent_number: int = 1,
) -> DispositionEvent:
    return DispositionEvent(
        disposition_id=disposition_id,
        agent_number=agent_number,
        amount=amount,
        occurred_at=occurred_at,
    )


def _customer(
    customer_id: str,
    *events: DispositionEvent,
    business_residential: str = "",
    cold_pc: str = "",
) -> Customer:
    return Customer(
        id=customer_id,
        business_residential=business_residential,
        cold_pc=cold_pc,
        disposition_history=tuple(events),
    )


def test_week_window_always_starts_on_thursday_and_spans_seven_days() -> None:
    for offset in range(21):
        now = datetime(2025, 3, 1, 8, 30) + timedelta(days=offset, hours=offset)
        window = week_to_date_bounds(now)

        assert window.start.weekday() == 3
        assert window.start.time() == datetime.min.time()
        assert window.start <= now <= window.end
        assert (window.end.date() - window.start.date()).days == 6
        assert window.end + timedelta(microseconds=1) == window.start + timedelta(days=7)


def test_week_window_on_thursday_starts_that_morning() -> None:
    thursday = datetime(2025, 3, 6, 17, 45, 12)
    window = week_to_date_bounds(thursday)

    assert window.start == datetime(2025, 3, 6)
    assert window.end == datetime(2025, 3, 12, 23, 59, 59, 999999)


def test_week_window_on_wednesday_reaches_back_six_days() -> None:
    window = week_to_date_bounds(datetime(2025, 3, 12, 9, 0))
    assert window.start == datetime(2025, 3, 6)
    assert thursday_of_week(date(2025, 3, 12)) == date(2025, 3, 6)
    assert thursday_of_week(datetime(2025, 3, 13, 0, 0)) == date(2025, 3, 13)


def test_single_sale_example_produces_card_value_and_ranking() -> None:
    customers = [
        _customer("c1", _event("sale1", 100, datetime(2025, 3, 6, 10, 0), agent_number=1)),
    ]
    dispositions = {"sale1": Disposition("sale1", "Sale", frozenset({"Sale"}))}
    agents = {1: Agent(1, "John", "Ayala")}

    wtd = compute_week_to_date(NOW, customers, dispositions)

    assert wtd.display()["sales_total"] == "$100.00"
    assert wtd.sales_count == 1
    assert wtd.payments_count == 0

    ranking = rank_top_agents(wtd, agents)
    assert len(ranking) == 1
    assert ranking[0].agent.agent_number == 1
    assert ranking[0].sales == 100
    assert ranking[0].payments == 0


def test_week_to_date_breaks_out_categories_and_agents() -> None:
    customers = [
        _customer(
            "c1",
            _event("sale", 100, datetime(2025, 3, 6, 10, 0), agent_number=1),
            _event("credit", 40, datetime(2025, 3, 8, 11, 0), agent_number=2),
            business_residential="R",
            cold_pc="Cold",
        ),
        _customer(
            "c2",
            _event("ran", 30, datetime(2025, 3, 9, 9, 0), agent_number=1),
            _event("sale", 20, datetime(2025, 3, 7, 9, 0), agent_number=3),
            business_residential="Business",
            cold_pc="P",
        ),
        _customer(
            "c3",
            _event("sale", 5, datetime(2025, 3, 7, 12, 0), agent_number=3),
        ),
        _customer(
            "c4",
            _event("sale", 7, datetime(2025, 3, 7, 13, 0), agent_number=2),
            business_residential="res",
            cold_pc="pc",
        ),
    ]

    wtd = compute_week_to_date(NOW, customers, DISPOSITIONS)

    assert wtd.sales_total == 172
    assert wtd.sales_count == 5
    assert wtd.payments_total == 70
    assert wtd.payments_count == 2
    assert wtd.residential_sales == 147
    assert wtd.business_sales == 20
    assert wtd.cold_sales == 140
    assert wtd.pc_sales == 27
    assert wtd.residential_payments == 40
    assert wtd.business_payments == 30
    assert wtd.cold_payments == 40
    assert wtd.pc_payments == 30
    assert wtd.agent_sales == {1: 100, 2: 47, 3: 25}
    assert wtd.agent_payments == {2: 40, 1: 30}


def test_week_to_date_ignores_events_outside_the_business_week() -> None:
    customers = [
        _customer(
            "c1",
            _event("sale", 11, datetime(2025, 3, 5, 23, 59, 59)),
            _event("sale", 13, datetime(2025, 3, 6, 0, 0)),
            _event("sale", 17, datetime(2025, 3, 12, 23, 59, 59)),
            _event("sale", 19, datetime(2025, 3, 13, 0, 0)),
        )
    ]

    wtd = compute_week_to_date(NOW, customers, DISPOSITIONS)

    assert wtd.sales_total == 30
    assert wtd.sales_count == 2


def test_unresolved_disposition_contributes_nothing_anywhere() -> None:
    moment = datetime(2025, 3, 7, 10, 0)
    with_unknown = [
        _customer(
            "c1",
            _event("sale", 50, moment),
            _event("deleted-disposition", 999, moment),
            _event("ran", 25, moment),
            business_residential="R",
        )
    ]
    without_unknown = [
        _customer(
            "c1",
            _event("sale", 50, moment),
            _event("ran", 25, moment),
            business_residential="R",
        )
    ]

    assert compute_week_to_date(NOW, with_unknown, DISPOSITIONS) == compute_week_to_date(
        NOW, without_unknown, DISPOSITIONS
    )
    assert compute_month_to_date(NOW, with_unknown, DISPOSITIONS) == compute_month_to_date(
        NOW, without_unknown, DISPOSITIONS
    )
    assert compute_daily_series(NOW, with_unknown, DISPOSITIONS) == compute_daily_series(
        NOW, without_unknown, DISPOSITIONS
    )
    assert compute_weekly_series(NOW, with_unknown, DISPOSITIONS) == compute_weekly_series(
        NOW, without_unknown, DISPOSITIONS
    )

    wtd = compute_week_to_date(NOW, with_unknown, DISPOSITIONS)
    assert wtd.sales_total == 50
    assert wtd.payments_total == 25


def test_missing_amount_counts_as_zero() -> None:
    customers = [_customer("c1", _event("sale", None, datetime(2025, 3, 7, 10, 0)))]

    wtd = compute_week_to_date(NOW, customers, DISPOSITIONS)

    assert wtd.sales_total == 0
    assert wtd.sales_count == 1


def test_month_to_date_window_and_breakdowns() -> None:
    window = month_to_date_bounds(NOW)
    assert window.start == datetime(2025, 3, 1)
    assert window.end == NOW

    customers = [
        _customer(
            "c1",
            _event("sale", 10, datetime(2025, 2, 28, 23, 59)),
            _event("sale", 100, datetime(2025, 3, 1, 0, 0)),
            _event("credit", 60, datetime(2025, 3, 4, 12, 0)),
            _event("sale", 500, datetime(2025, 3, 9, 15, 1)),
            business_residential="R",
        ),
        _customer(
            "c2",
            _event("ran", 25.5, datetime(2025, 3, 2, 9, 0)),
            business_residential="B",
        ),
        _customer(
            "c3",
            _event("sale", 1000.25, datetime(2025, 3, 3, 9, 0)),
        ),
    ]

    mtd = compute_month_to_date(NOW, customers, DISPOSITIONS)

    assert mtd.sales_total == 1160.25
    assert mtd.sales_count == 3
    assert mtd.payments_total == 85.5
    assert mtd.payments_count == 2
    assert mtd.residential_sales == 160
    assert mtd.business_sales == 0
    assert mtd.residential_payments == 60
    assert mtd.business_payments == 25.5
    assert mtd.display()["sales_total"] == "$1,160.25"


def test_daily_series_drops_empty_days_and_sorts_ascending() -> None:
    customers = [
        _customer(
            "c1",
            _event("sale", 40, datetime(2025, 3, 8, 18, 0)),
            _event("no-answer", 0, datetime(2025, 3, 7, 9, 0)),
            _event("ran", 15, datetime(2025, 3, 2, 9, 0)),
            _event("credit", 20, datetime(2025, 3, 2, 16, 0)),
            _event("sale", 0, datetime(2025, 3, 5, 9, 0)),
        )
    ]

    series = compute_daily_series(NOW, customers, DISPOSITIONS)

    assert [point.day for point in series] == [date(2025, 3, 2), date(2025, 3, 8)]
    assert series[0].sales == 20
    assert series[0].payments == 35
    assert series[1].sales == 40
    assert series[1].payments == 0
    assert all(point.sales > 0 or point.payments > 0 for point in series)


def test_daily_series_lookback_starts_at_midnight() -> None:
    customers = [
        _customer(
            "c1",
            _event("sale", 1, datetime(2024, 12, 8, 23, 59)),
            _event("sale", 2, datetime(2024, 12, 9, 0, 30)),
        )
    ]

    series = compute_daily_series(NOW, customers, DISPOSITIONS, lookback_days=90)

    assert [point.day for point in series] == [date(2024, 12, 9)]


def test_weekly_series_keeps_empty_weeks_contiguous() -> None:
    customers = [
        _customer(
            "c1",
            _event("sale", 100, datetime(2025, 3, 6, 10, 0)),
            _event("ran", 40, datetime(2025, 3, 5, 10, 0)),
            _event("sale", 60, datetime(2025, 2, 20, 10, 0)),
            _event("sale", 999, datetime(2024, 3, 1, 10, 0)),
        )
    ]

    series = compute_weekly_series(NOW, customers, DISPOSITIONS)

    assert len(series) <= min(53, math.ceil(365 / 7))
    assert all(point.day.weekday() == 3 for point in series)
    days = [point.day for point in series]
    assert days == sorted(days)
    assert all((later - earlier).days == 7 for earlier, later in zip(days, days[1:]))
    assert days[-1] == date(2025, 3, 6)

    by_day = {point.day: point for point in series}
    assert by_day[date(2025, 3, 6)].sales == 100
    assert by_day[date(2025, 2, 27)].payments == 40
    assert by_day[date(2025, 2, 20)].sales == 60
    assert by_day[date(2025, 2, 13)].sales == 0
    assert by_day[date(2025, 2, 13)].payments == 0
    assert sum(point.sales for point in series) == 160


def test_weekly_bucket_count_respects_lookback() -> None:
    thursday = datetime(2025, 3, 6, 10, 0)

    keys = weekly_bucket_keys(thursday, lookback_days=14)
    assert keys == [date(2025, 3, 6), date(2025, 2, 27)]

    for lookback_days in (1, 7, 30, 90, 365, 800):
        keys = weekly_bucket_keys(NOW, lookback_days=lookback_days)
        assert len(keys) <= min(53, math.ceil(lookback_days / 7))


def test_rank_top_agents_sorts_by_sales_and_keeps_tie_order() -> None:
    window = week_to_date_bounds(NOW)
    wtd = WtdStats(
        window=window,
        agent_sales={7: 50.0, 9: 80.0, 4: 50.0, 99: 500.0},
        agent_payments={12: 10.0, 7: 5.0},
    )
    agents = {
        4: Agent(4, "Kevin", "Swope"),
        7: Agent(7, "John", "Ayala"),
        9: Agent(9, "Jay", "Bass"),
        12: Agent(12, "Neal", "Read"),
    }

    ranking = rank_top_agents(wtd, agents)
    assert [item.agent.agent_number for item in ranking] == [9, 7, 4, 12]
    assert ranking[1].payments == 5.0
    assert ranking[3].sales == 0

    top_three = rank_top_agents(wtd, agents, limit=3)
    assert [item.agent.agent_number for item in top_three] == [9, 7, 4]

    sales = [item.sales for item in ranking]
    assert sales == sorted(sales, reverse=True)


@pytest.mark.parametrize(
    ("value", "grouping"),
    [(0.0, False), (100.0, False), (1234.5, False), (1234.5, True), (1234567.891, True), (0.1 + 0.2, True)],
)
def test_currency_formatting_is_idempotent(value: float, grouping: bool) -> None:
    text = format_currency(value, grouping=grouping)
    assert format_currency(parse_currency(text), grouping=grouping) == text


def test_currency_formats() -> None:
    assert format_currency(1234.5) == "$1234.50"
    assert format_currency(1234.5, grouping=True) == "$1,234.50"
    with pytest.raises(ValueError):
        parse_currency("$")


def test_metrics_cache_recomputes_only_when_generation_or_clock_changes() -> None:
    customers = (_customer("c1", _event("sale", 100, datetime(2025, 3, 6, 10, 0))),)
    snapshot = DataSnapshot(customers=customers, dispositions=DISPOSITIONS, agents=AGENTS, generation=3)
    cache = MetricsCache()

    first = cache.get(NOW, snapshot)
    second = cache.get(NOW, snapshot)
    assert first is second
    assert cache.hits == 1
    assert cache.misses == 1

    changed = DataSnapshot(customers=(), dispositions=DISPOSITIONS, agents=AGENTS, generation=4)
    third = cache.get(NOW, changed)
    assert third is not first
    assert third.wtd.sales_total == 0

    cache.get(NOW + timedelta(minutes=1), changed)
    assert cache.misses == 3

    cache.invalidate()
    cache.get(NOW + timedelta(minutes=1), changed)
    assert cache.misses == 4


def test_metrics_cache_counts_events_from_earlier_in_the_same_minute() -> None:
    customers = (_customer("c1", _event("sale", 100, datetime(2025, 3, 9, 15, 0, 30))),)
    snapshot = DataSnapshot(customers=customers, dispositions=DISPOSITIONS, agents=AGENTS, generation=1)
    cache = MetricsCache()

    metrics = cache.get(datetime(2025, 3, 9, 15, 0, 45), snapshot)

    assert metrics.wtd.sales_total == 100
    assert metrics.mtd.sales_total == metrics.wtd.sales_total
    assert metrics.daily[-1].sales == 100

    assert cache.get(datetime(2025, 3, 9, 15, 0, 59), snapshot) is metrics
    assert cache.hits == 1

"""Week-to-date, month-to-date and time-series rollups of disposition history.

Every function here is a pure function of ``now`` and the records passed in;
inputs are never mutated and nothing reads the wall clock.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Mapping

from .config import (
    DAILY_LOOKBACK_DAYS,
    MAX_WEEKLY_BUCKETS,
    TOP_AGENT_LIMIT,
    WEEK_START_WEEKDAY,
    WEEKLY_LOOKBACK_DAYS,
)
from .models import (
    Agent,
    ChartPoint,
    ChartSeries,
    Customer,
    DataSnapshot,
    Disposition,
    DispositionEvent,
)

logger = logging.getLogger(__name__)


def format_currency(value: float, grouping: bool = False) -> str:
    if grouping:
        return f"${value:,.2f}"
    return f"${value:.2f}"


def parse_currency(text: str) -> float:
    cleaned = text.strip().replace("$", "").replace(",", "")
    if not cleaned:
        raise ValueError(f"Not a currency value: {text!r}")
    return float(cleaned)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class WindowRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _days_since_week_start(day: date) -> int:
    # date.weekday() is Monday=0; shift to Sunday=0 numbering.
    sunday_based = (day.weekday() + 1) % 7
    return (sunday_based - WEEK_START_WEEKDAY + 7) % 7


def thursday_of_week(moment: datetime | date) -> date:
    """Return the Thursday that opens the business week containing ``moment``."""
    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=_days_since_week_start(day))


def week_to_date_bounds(now: datetime) -> WindowRange:
    """Thursday 00:00:00 through the following Wednesday 23:59:59.999999."""
    shift = _days_since_week_start(now.date())
    start = _start_of_day(now - timedelta(days=shift))
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return WindowRange(start=start, end=end)


def month_to_date_bounds(now: datetime) -> WindowRange:
    start = _start_of_day(now.replace(day=1))
    return WindowRange(start=start, end=now)


# ---------------------------------------------------------------------------
# Event classification
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class _ClassifiedEvent:
    customer: Customer
    event: DispositionEvent
    is_sale: bool
    is_payment: bool
    amount: float


def _classified_events(
    customers: Iterable[Customer],
    dispositions: Mapping[str, Disposition],
    window: WindowRange | None = None,
    since: datetime | None = None,
) -> Iterator[_ClassifiedEvent]:
    for customer in customers:
        for event in customer.disposition_history:
            if window is not None and not window.contains(event.occurred_at):
                continue
            if since is not None and event.occurred_at < since:
                continue
            disposition = dispositions.get(event.disposition_id)
            if disposition is None:
                logger.debug(
                    "Skipping event for customer %s: unknown disposition %r",
                    customer.id,
                    event.disposition_id,
                )
                continue
            yield _ClassifiedEvent(
                customer=customer,
                event=event,
                is_sale=disposition.is_sale,
                is_payment=disposition.is_payment,
                amount=event.amount or 0.0,
            )


# ---------------------------------------------------------------------------
# Week to date
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class WtdStats:
    window: WindowRange
    sales_total: float = 0.0
    sales_count: int = 0
    payments_total: float = 0.0
    payments_count: int = 0
    residential_sales: float = 0.0
    business_sales: float = 0.0
    cold_sales: float = 0.0
    pc_sales: float = 0.0
    residential_payments: float = 0.0
    business_payments: float = 0.0
    cold_payments: float = 0.0
    pc_payments: float = 0.0
    agent_sales: dict[int, float] = field(default_factory=dict)
    agent_payments: dict[int, float] = field(default_factory=dict)

    def display(self) -> dict[str, str]:
        """Card values keyed by field name, formatted the way the weekly cards show them."""
        keys = (
            "sales_total",
            "payments_total",
            "residential_sales",
            "business_sales",
            "cold_sales",
            "pc_sales",
            "residential_payments",
            "business_payments",
            "cold_payments",
            "pc_payments",
        )
        return {key: format_currency(getattr(self, key)) for key in keys}


def compute_week_to_date(
    now: datetime,
    customers: Iterable[Customer],
    dispositions: Mapping[str, Disposition],
) -> WtdStats:
    window = week_to_date_bounds(now)
    totals = {
        "sales_total": 0.0,
        "payments_total": 0.0,
        "residential_sales": 0.0,
        "business_sales": 0.0,
        "cold_sales": 0.0,
        "pc_sales": 0.0,
        "residential_payments": 0.0,
        "business_payments": 0.0,
        "cold_payments": 0.0,
        "pc_payments": 0.0,
    }
    sales_count = 0
    payments_count = 0
    agent_sales: dict[int, float] = {}
    agent_payments: dict[int, float] = {}

    for item in _classified_events(customers, dispositions, window=window):
        customer = item.customer
        agent_number = item.event.agent_number
        if item.is_sale:
            totals["sales_total"] += item.amount
            sales_count += 1
            if customer.is_residential:
                totals["residential_sales"] += item.amount
            if customer.is_business:
                totals["business_sales"] += item.amount
            if customer.is_cold:
                totals["cold_sales"] += item.amount
            if customer.is_pc:
                totals["pc_sales"] += item.amount
            agent_sales[agent_number] = agent_sales.get(agent_number, 0.0) + item.amount
        if item.is_payment:
            totals["payments_total"] += item.amount
            payments_count += 1
            if customer.is_residential:
                totals["residential_payments"] += item.amount
            if customer.is_business:
                totals["business_payments"] += item.amount
            if customer.is_cold:
                totals["cold_payments"] += item.amount
            if customer.is_pc:
                totals["pc_payments"] += item.amount
            agent_payments[agent_number] = agent_payments.get(agent_number, 0.0) + item.amount

    return WtdStats(
        window=window,
        sales_count=sales_count,
        payments_count=payments_count,
        agent_sales=agent_sales,
        agent_payments=agent_payments,
        **totals,
    )


# ---------------------------------------------------------------------------
# Month to date
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MtdStats:
    window: WindowRange
    sales_total: float = 0.0
    sales_count: int = 0
    payments_total: float = 0.0
    payments_count: int = 0
    residential_sales: float = 0.0
    business_sales: float = 0.0
    residential_payments: float = 0.0
    business_payments: float = 0.0

    def display(self) -> dict[str, str]:
        keys = (
            "sales_total",
            "payments_total",
            "residential_sales",
            "business_sales",
            "residential_payments",
            "business_payments",
        )
        return {key: format_currency(getattr(self, key), grouping=True) for key in keys}


def compute_month_to_date(
    now: datetime,
    customers: Iterable[Customer],
    dispositions: Mapping[str, Disposition],
) -> MtdStats:
    window = month_to_date_bounds(now)
    sales_total = payments_total = 0.0
    residential_sales = business_sales = 0.0
    residential_payments = business_payments = 0.0
    sales_count = payments_count = 0

    for item in _classified_events(customers, dispositions, window=window):
        customer = item.customer
        if item.is_sale:
            sales_total += item.amount
            sales_count += 1
            if customer.is_residential:
                residential_sales += item.amount
            elif customer.is_business:
                business_sales += item.amount
        if item.is_payment:
            payments_total += item.amount
            payments_count += 1
            if customer.is_residential:
                residential_payments += item.amount
            elif customer.is_business:
                business_payments += item.amount

    return MtdStats(
        window=window,
        sales_total=sales_total,
        sales_count=sales_count,
        payments_total=payments_total,
        payments_count=payments_count,
        residential_sales=residential_sales,
        business_sales=business_sales,
        residential_payments=residential_payments,
        business_payments=business_payments,
    )


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------
def _lookback_cutoff(now: datetime, lookback_days: int) -> datetime:
    return _start_of_day(now - timedelta(days=lookback_days))


def compute_daily_series(
    now: datetime,
    customers: Iterable[Customer],
    dispositions: Mapping[str, Disposition],
    lookback_days: int = DAILY_LOOKBACK_DAYS,
) -> ChartSeries:
    """Per-day sales and payment totals; days with no activity are left out."""
    cutoff = _lookback_cutoff(now, lookback_days)
    buckets: dict[date, list[float]] = {}

    for item in _classified_events(customers, dispositions, since=cutoff):
        bucket = buckets.setdefault(item.event.occurred_at.date(), [0.0, 0.0])
        if item.is_sale:
            bucket[0] += item.amount
        if item.is_payment:
            bucket[1] += item.amount

    return [
        ChartPoint(day=day, sales=sales, payments=payments)
        for day, (sales, payments) in sorted(buckets.items())
        if sales > 0 or payments > 0
    ]


def weekly_bucket_keys(now: datetime, lookback_days: int = WEEKLY_LOOKBACK_DAYS) -> list[date]:
    """Thursday anchors inside the lookback window, newest first."""
    cutoff_day = _lookback_cutoff(now, lookback_days).date()
    limit = min(MAX_WEEKLY_BUCKETS, math.ceil(lookback_days / 7))
    keys: list[date] = []
    week_start = thursday_of_week(now)
    for _ in range(limit):
        if week_start < cutoff_day:
            break
        keys.append(week_start)
        week_start -= timedelta(days=7)
    return keys


def compute_weekly_series(
    now: datetime,
    customers: Iterable[Customer],
    dispositions: Mapping[str, Disposition],
    lookback_days: int = WEEKLY_LOOKBACK_DAYS,
) -> ChartSeries:
    """Per-week sales and payment totals; empty weeks are kept as zeros."""
    cutoff = _lookback_cutoff(now, lookback_days)
    buckets: dict[date, list[float]] = {
        key: [0.0, 0.0] for key in weekly_bucket_keys(now, lookback_days)
    }

    for item in _classified_events(customers, dispositions, since=cutoff):
        bucket = buckets.get(thursday_of_week(item.event.occurred_at))
        if bucket is None:
            continue
        if item.is_sale:
            bucket[0] += item.amount
        if item.is_payment:
            bucket[1] += item.amount

    return [
        ChartPoint(day=day, sales=sales, payments=payments)
        for day, (sales, payments) in sorted(buckets.items())
    ]


# ---------------------------------------------------------------------------
# Agent ranking
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class AgentRanking:
    agent: Agent
    sales: float
    payments: float


def rank_top_agents(
    wtd: WtdStats,
    agents: Mapping[int, Agent],
    limit: int = TOP_AGENT_LIMIT,
) -> list[AgentRanking]:
    agent_numbers = dict.fromkeys([*wtd.agent_sales, *wtd.agent_payments])
    rankings: list[AgentRanking] = []
    for agent_number in agent_numbers:
        agent = agents.get(agent_number)
        if agent is None:
            logger.debug("Agent %s has activity but no agent record", agent_number)
            continue
        rankings.append(
            AgentRanking(
                agent=agent,
                sales=wtd.agent_sales.get(agent_number, 0.0),
                payments=wtd.agent_payments.get(agent_number, 0.0),
            )
        )
    # sorted() is stable with reverse=True, so ties keep first-seen order.
    rankings = sorted(rankings, key=lambda ranking: ranking.sales, reverse=True)
    return rankings[: max(limit, 0)]


# ---------------------------------------------------------------------------
# Dashboard bundle and cache
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DashboardMetrics:
    generated_at: datetime
    wtd: WtdStats
    mtd: MtdStats
    top_agents: list[AgentRanking]
    daily: ChartSeries
    weekly: ChartSeries


def compute_dashboard_metrics(
    now: datetime,
    snapshot: DataSnapshot,
    daily_lookback_days: int = DAILY_LOOKBACK_DAYS,
    weekly_lookback_days: int = WEEKLY_LOOKBACK_DAYS,
    top_agent_limit: int = TOP_AGENT_LIMIT,
) -> DashboardMetrics:
    customers = snapshot.customers
    dispositions = snapshot.dispositions
    wtd = compute_week_to_date(now, customers, dispositions)
    metrics = DashboardMetrics(
        generated_at=now,
        wtd=wtd,
        mtd=compute_month_to_date(now, customers, dispositions),
        top_agents=rank_top_agents(wtd, snapshot.agents, limit=top_agent_limit),
        daily=compute_daily_series(now, customers, dispositions, daily_lookback_days),
        weekly=compute_weekly_series(now, customers, dispositions, weekly_lookback_days),
    )
    logger.info(
        "Computed dashboard metrics for %d customers (generation %d): %d daily, %d weekly points",
        len(customers),
        snapshot.generation,
        len(metrics.daily),
        len(metrics.weekly),
    )
    return metrics


class MetricsCache:
    """Holds the last computed metrics, keyed on the snapshot generation and the minute of ``now``.

    Metrics are always computed with the exact ``now`` passed in; only the
    cache key is truncated, so windows ending at ``now`` still include events
    recorded earlier in the same minute.
    """

    def __init__(self) -> None:
        self._key: tuple[int, datetime] | None = None
        self._metrics: DashboardMetrics | None = None
        self.hits = 0
        self.misses = 0

    def get(self, now: datetime, snapshot: DataSnapshot) -> DashboardMetrics:
        key = (snapshot.generation, now.replace(second=0, microsecond=0))
        if self._metrics is not None and self._key == key:
            self.hits += 1
            return self._metrics

        self.misses += 1
        self._metrics = compute_dashboard_metrics(now, snapshot)
        self._key = key
        return self._metrics

    def invalidate(self) -> None:
        self._key = None
        self._metrics = None

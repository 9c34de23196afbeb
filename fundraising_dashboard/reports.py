"""Date-range reports over disposition history: agent performance and disposition usage."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Mapping

from .metrics import week_to_date_bounds
from .models import Agent, Customer, Disposition, DispositionEvent

logger = logging.getLogger(__name__)

KEY_DISPOSITION_NAMES = ("Turndown", "Remove", "Processed", "Credit", "Sale")


@dataclass(frozen=True)
class ReportFilters:
    date_from: date | None = None
    date_to: date | None = None
    agent_number: int | None = None
    disposition_id: str | None = None
    business_residential: str | None = None
    cold_pc: str | None = None

    @classmethod
    def current_week(cls, now: datetime) -> ReportFilters:
        window = week_to_date_bounds(now)
        return cls(date_from=window.start.date(), date_to=window.end.date())

    def shifted(self, weeks: int) -> ReportFilters:
        """Move the date range by whole weeks, keeping it seven days long."""
        if self.date_from is None:
            raise ValueError("A start date is required to move between weeks.")
        start = self.date_from + timedelta(days=7 * weeks)
        return ReportFilters(
            date_from=start,
            date_to=start + timedelta(days=6),
            agent_number=self.agent_number,
            disposition_id=self.disposition_id,
            business_residential=self.business_residential,
            cold_pc=self.cold_pc,
        )

    def matches(self, customer: Customer, event: DispositionEvent) -> bool:
        if self.date_from is not None and event.occurred_at < datetime.combine(self.date_from, time.min):
            return False
        if self.date_to is not None and event.occurred_at > datetime.combine(self.date_to, time.max):
            return False
        if self.agent_number is not None and event.agent_number != self.agent_number:
            return False
        if self.disposition_id and event.disposition_id != self.disposition_id:
            return False
        if self.business_residential and customer.business_residential != self.business_residential:
            return False
        if self.cold_pc and customer.cold_pc != self.cold_pc:
            return False
        return True


@dataclass(frozen=True)
class HistoryRecord:
    customer: Customer
    event: DispositionEvent


def filter_history(customers: Iterable[Customer], filters: ReportFilters) -> list[HistoryRecord]:
    return [
        HistoryRecord(customer=customer, event=event)
        for customer in customers
        for event in customer.disposition_history
        if filters.matches(customer, event)
    ]


# ---------------------------------------------------------------------------
# Agent performance
# ---------------------------------------------------------------------------
@dataclass
class CategoryBreakdown:
    """Residential/Business crossed with Cold/PC. Other categories are not split out."""

    res_cold: float = 0.0
    res_pc: float = 0.0
    biz_cold: float = 0.0
    biz_pc: float = 0.0

    def add(self, customer: Customer, amount: float) -> None:
        if customer.is_residential:
            if customer.is_cold:
                self.res_cold += amount
            elif customer.is_pc:
                self.res_pc += amount
        elif customer.is_business:
            if customer.is_cold:
                self.biz_cold += amount
            elif customer.is_pc:
                self.biz_pc += amount


@dataclass
class DispositionLine:
    disposition_id: str
    disposition_name: str
    amount: float = 0.0
    count: int = 0
    breakdown: CategoryBreakdown = field(default_factory=CategoryBreakdown)

    def add(self, customer: Customer, amount: float) -> None:
        self.amount += amount
        self.count += 1
        self.breakdown.add(customer, amount)


@dataclass
class AgentPerformance:
    agent: Agent
    sale_amount: float = 0.0
    sale_count: int = 0
    payment_amount: float = 0.0
    payment_count: int = 0
    sales_breakdown: CategoryBreakdown = field(default_factory=CategoryBreakdown)
    payments_breakdown: CategoryBreakdown = field(default_factory=CategoryBreakdown)
    disposition_sales: dict[str, DispositionLine] = field(default_factory=dict)
    disposition_payments: dict[str, DispositionLine] = field(default_factory=dict)

    def sales_by_disposition(self) -> list[DispositionLine]:
        return sorted(self.disposition_sales.values(), key=lambda line: line.amount, reverse=True)

    def payments_by_disposition(self) -> list[DispositionLine]:
        return sorted(self.disposition_payments.values(), key=lambda line: line.amount, reverse=True)


@dataclass(frozen=True)
class AgentReportTotals:
    active_agents: int
    sale_amount: float
    sale_count: int
    payment_amount: float
    payment_count: int


def agent_performance_report(
    records: Iterable[HistoryRecord],
    dispositions: Mapping[str, Disposition],
    agents: Mapping[int, Agent],
) -> list[AgentPerformance]:
    """Per-agent sales and payments, ordered by payments then sales, both descending.

    An agent gets a row as soon as it has any record in range, even when the
    record's disposition no longer resolves.
    """
    by_agent: dict[int, AgentPerformance] = {}

    for record in records:
        event = record.event
        agent = agents.get(event.agent_number)
        if agent is None:
            logger.debug("Report skipped event for unknown agent %s", event.agent_number)
            continue
        stat = by_agent.setdefault(event.agent_number, AgentPerformance(agent=agent))

        disposition = dispositions.get(event.disposition_id)
        if disposition is None:
            logger.debug("Report skipped event with unknown disposition %r", event.disposition_id)
            continue
        amount = event.amount or 0.0

        if disposition.is_sale:
            stat.sale_amount += amount
            stat.sale_count += 1
            stat.sales_breakdown.add(record.customer, amount)
            stat.disposition_sales.setdefault(
                disposition.id, DispositionLine(disposition.id, disposition.name)
            ).add(record.customer, amount)
        if disposition.is_payment:
            stat.payment_amount += amount
            stat.payment_count += 1
            stat.payments_breakdown.add(record.customer, amount)
            stat.disposition_payments.setdefault(
                disposition.id, DispositionLine(disposition.id, disposition.name)
            ).add(record.customer, amount)

    return sorted(
        by_agent.values(),
        key=lambda stat: (stat.payment_amount, stat.sale_amount),
        reverse=True,
    )


def agent_report_totals(rows: Iterable[AgentPerformance]) -> AgentReportTotals:
    rows = list(rows)
    return AgentReportTotals(
        active_agents=len(rows),
        sale_amount=sum(row.sale_amount for row in rows),
        sale_count=sum(row.sale_count for row in rows),
        payment_amount=sum(row.payment_amount for row in rows),
        payment_count=sum(row.payment_count for row in rows),
    )


# ---------------------------------------------------------------------------
# Disposition usage
# ---------------------------------------------------------------------------
@dataclass
class DispositionUsage:
    disposition: Disposition
    count: int = 0
    total_amount: float = 0.0
    first_used: datetime | None = None
    last_used: datetime | None = None


@dataclass(frozen=True)
class ModifierBreakdown:
    sale_count: int
    payment_count: int
    total_count: int

    @property
    def sale_percentage(self) -> float:
        return self.sale_count / self.total_count * 100 if self.total_count else 0.0

    @property
    def payment_percentage(self) -> float:
        return self.payment_count / self.total_count * 100 if self.total_count else 0.0


def disposition_usage_report(
    records: Iterable[HistoryRecord],
    dispositions: Mapping[str, Disposition],
) -> list[DispositionUsage]:
    usage: dict[str, DispositionUsage] = {}
    for record in records:
        event = record.event
        disposition = dispositions.get(event.disposition_id)
        if disposition is None:
            continue
        stat = usage.setdefault(disposition.id, DispositionUsage(disposition=disposition))
        stat.count += 1
        stat.total_amount += event.amount or 0.0
        if stat.first_used is None or event.occurred_at < stat.first_used:
            stat.first_used = event.occurred_at
        if stat.last_used is None or event.occurred_at > stat.last_used:
            stat.last_used = event.occurred_at
    return sorted(usage.values(), key=lambda stat: stat.count, reverse=True)


def modifier_breakdown(usage: Iterable[DispositionUsage], total_count: int) -> ModifierBreakdown:
    """Sale and payment counts against every record in range, resolved or not."""
    sale_count = 0
    payment_count = 0
    for stat in usage:
        if stat.disposition.is_sale:
            sale_count += stat.count
        if stat.disposition.is_payment:
            payment_count += stat.count
    return ModifierBreakdown(sale_count=sale_count, payment_count=payment_count, total_count=total_count)


def key_disposition_counts(
    usage: Iterable[DispositionUsage],
    names: Iterable[str] = KEY_DISPOSITION_NAMES,
) -> dict[str, int]:
    counts_by_name = {stat.disposition.name: stat.count for stat in usage}
    return {name: counts_by_name.get(name, 0) for name in names}

"""Domain records shared by the store, the aggregator, and the charts.

All records are frozen: the aggregator only reads them and every derived
value is rebuilt from scratch on each call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping

SALE = "Sale"
PAYMENT = "Payment"

DISPOSITION_MODIFIERS = (
    "DNC",
    SALE,
    PAYMENT,
    "Invoice",
    "TimeOut",
    "ExcludeCount",
    "Cancel",
)


@dataclass(frozen=True)
class DispositionEvent:
    disposition_id: str
    agent_number: int
    amount: float | None
    occurred_at: datetime


@dataclass(frozen=True)
class Customer:
    id: str
    business_residential: str = ""
    cold_pc: str = ""
    disposition_history: tuple[DispositionEvent, ...] = ()
    first_name: str = ""
    last_name: str = ""
    phone: str = ""

    @property
    def is_residential(self) -> bool:
        return _has_prefix(self.business_residential, "R")

    @property
    def is_business(self) -> bool:
        return _has_prefix(self.business_residential, "B")

    @property
    def is_cold(self) -> bool:
        return _has_prefix(self.cold_pc, "C")

    @property
    def is_pc(self) -> bool:
        return _has_prefix(self.cold_pc, "P")


@dataclass(frozen=True)
class Disposition:
    id: str
    name: str = ""
    modifiers: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_sale(self) -> bool:
        return SALE in self.modifiers

    @property
    def is_payment(self) -> bool:
        return PAYMENT in self.modifiers


@dataclass(frozen=True)
class Agent:
    agent_number: int
    first_name: str
    last_name: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or f"Agent {self.agent_number}"


@dataclass(frozen=True)
class ChartPoint:
    day: date
    sales: float
    payments: float


ChartSeries = list[ChartPoint]


@dataclass(frozen=True)
class DataSnapshot:
    """Everything the aggregator needs from the data provider at one point in time."""

    customers: tuple[Customer, ...]
    dispositions: Mapping[str, Disposition]
    agents: Mapping[int, Agent]
    generation: int = 0


def _has_prefix(value: str | None, prefix: str) -> bool:
    if not value:
        return False
    return value.upper().startswith(prefix)

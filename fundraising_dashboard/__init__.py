"""Sales and payment metrics, charts, and storage for the fundraising dashboard."""

from .charting import layout, render_svg, resolve_hover
from .metrics import (
    MetricsCache,
    compute_daily_series,
    compute_month_to_date,
    compute_week_to_date,
    compute_weekly_series,
    format_currency,
    rank_top_agents,
)
from .store import DashboardStore

__all__ = [
    "DashboardStore",
    "MetricsCache",
    "compute_daily_series",
    "compute_month_to_date",
    "compute_week_to_date",
    "compute_weekly_series",
    "format_currency",
    "layout",
    "rank_top_agents",
    "render_svg",
    "resolve_hover",
]

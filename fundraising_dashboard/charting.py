"""SVG line charts for the daily and weekly sales/payment series.

Layout, paths, ticks and hover lookup are plain functions of the series so the
Streamlit page only has to remember which point is hovered.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from html import escape
from typing import Mapping, NamedTuple, Sequence

from .config import (
    CHART_HEIGHT,
    CHART_MARGINS,
    CHART_WIDTH,
    DAILY_X_TICKS,
    PAYMENTS_COLOR,
    SALES_COLOR,
    WEEKLY_X_TICKS,
    Y_AXIS_TICKS,
)
from .metrics import format_currency
from .models import ChartPoint

PLACEHOLDER_MESSAGE = "Not enough data to display a chart. At least two data points are needed."
SERIES_KEYS = ("sales", "payments")


@dataclass(frozen=True)
class ChartMargins:
    top: float = 20
    right: float = 30
    bottom: float = 40
    left: float = 60

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> ChartMargins:
        return cls(
            top=values.get("top", cls.top),
            right=values.get("right", cls.right),
            bottom=values.get("bottom", cls.bottom),
            left=values.get("left", cls.left),
        )


DEFAULT_MARGINS = ChartMargins.from_mapping(CHART_MARGINS)


@dataclass(frozen=True)
class ChartView:
    name: str
    x_ticks: int
    tooltip_width: int
    tooltip_offset: int
    aria_label: str


CHART_VIEWS: dict[str, ChartView] = {
    "daily": ChartView(
        name="daily",
        x_ticks=DAILY_X_TICKS,
        tooltip_width=145,
        tooltip_offset=160,
        aria_label="Interactive daily sales and payments chart",
    ),
    "weekly": ChartView(
        name="weekly",
        x_ticks=WEEKLY_X_TICKS,
        tooltip_width=240,
        tooltip_offset=250,
        aria_label="Interactive weekly sales and payments chart",
    ),
}


@dataclass(frozen=True)
class ChartLayout:
    width: float
    height: float
    margins: ChartMargins
    first_day: date | None
    last_day: date | None
    max_value: float

    @property
    def inner_width(self) -> float:
        return self.width - self.margins.left - self.margins.right

    @property
    def inner_height(self) -> float:
        return self.height - self.margins.top - self.margins.bottom

    def x_scale(self, day: date) -> float:
        if self.first_day is None or self.last_day is None:
            return 0.0
        span = self.last_day.toordinal() - self.first_day.toordinal()
        if span == 0:
            return 0.0
        return (day.toordinal() - self.first_day.toordinal()) / span * self.inner_width

    def y_scale(self, value: float) -> float:
        if self.max_value == 0:
            return self.inner_height
        return self.inner_height - (value / self.max_value) * self.inner_height


class PathCommand(NamedTuple):
    command: str
    x: float
    y: float


@dataclass(frozen=True)
class Tooltip:
    x: float
    y: float
    width: int
    title: str
    sales_label: str
    payments_label: str
    height: int = 70


def has_enough_points(series: Sequence[ChartPoint]) -> bool:
    return len(series) >= 2


def layout(
    series: Sequence[ChartPoint],
    view_width: float = CHART_WIDTH,
    view_height: float = CHART_HEIGHT,
    margins: ChartMargins = DEFAULT_MARGINS,
) -> ChartLayout:
    max_value = max((max(point.sales, point.payments) for point in series), default=0.0)
    return ChartLayout(
        width=view_width,
        height=view_height,
        margins=margins,
        first_day=series[0].day if series else None,
        last_day=series[-1].day if series else None,
        max_value=max(max_value, 0.0),
    )


def build_path(series: Sequence[ChartPoint], chart: ChartLayout, key: str) -> list[PathCommand]:
    if key not in SERIES_KEYS:
        raise ValueError(f"Unknown series key {key!r}; expected one of {SERIES_KEYS}.")
    return [
        PathCommand(
            "M" if index == 0 else "L",
            chart.x_scale(point.day),
            chart.y_scale(getattr(point, key)),
        )
        for index, point in enumerate(series)
    ]


def path_data(commands: Sequence[PathCommand]) -> str:
    return " ".join(f"{cmd.command} {cmd.x:.2f},{cmd.y:.2f}" for cmd in commands)


def resolve_hover(
    pointer_x: float,
    series: Sequence[ChartPoint],
    chart: ChartLayout,
    margins: ChartMargins | None = None,
    rendered_width: float | None = None,
) -> int | None:
    """Index of the point closest to ``pointer_x``, or None when off the plot area.

    ``pointer_x`` is in view-box units unless ``rendered_width`` is given, in
    which case it is treated as an on-screen offset and rescaled first.
    """
    if not series:
        return None
    margins = margins or chart.margins
    if rendered_width:
        pointer_x = pointer_x / rendered_width * chart.width
    chart_x = pointer_x - margins.left
    if chart_x < 0 or chart_x > chart.inner_width:
        return None

    closest = 0
    closest_distance = abs(chart.x_scale(series[0].day) - chart_x)
    for index, point in enumerate(series):
        distance = abs(chart.x_scale(point.day) - chart_x)
        if distance < closest_distance:
            closest = index
            closest_distance = distance
    return closest


def y_axis_ticks(max_value: float, ticks: int = Y_AXIS_TICKS) -> list[float]:
    return [(max_value / ticks) * step for step in range(ticks + 1)]


def x_axis_tick_indices(length: int, max_ticks: int) -> list[int]:
    count = min(length, max_ticks)
    if count <= 0:
        return []
    divisor = count - 1 if count > 1 else 1
    indices = [math.floor(step * (length - 1) / divisor) for step in range(count)]
    return list(dict.fromkeys(indices))


def short_date(day: date) -> str:
    return f"{day:%b} {day.day}"


def long_date(day: date) -> str:
    return f"{short_date(day)}, {day.year}"


def week_range_label(week_start: date) -> str:
    week_end = week_start + timedelta(days=6)
    if week_start.year != week_end.year:
        return f"{long_date(week_start)} - {long_date(week_end)}"
    return f"{short_date(week_start)} - {short_date(week_end)}, {week_start.year}"


def axis_money_label(value: float) -> str:
    return f"${math.floor(value + 0.5):,}"


def tooltip_for(
    series: Sequence[ChartPoint],
    index: int,
    chart: ChartLayout,
    view: str = "daily",
) -> Tooltip:
    chart_view = CHART_VIEWS[view]
    point = series[index]
    point_x = chart.x_scale(point.day)
    if point_x > chart.inner_width / 2:
        tooltip_x = point_x - chart_view.tooltip_offset
    else:
        tooltip_x = point_x + 15
    title = week_range_label(point.day) if view == "weekly" else long_date(point.day)
    return Tooltip(
        x=tooltip_x,
        y=chart.height / 5,
        width=chart_view.tooltip_width,
        title=title,
        sales_label=format_currency(point.sales, grouping=True),
        payments_label=format_currency(point.payments, grouping=True),
    )


@dataclass
class _SvgWriter:
    parts: list[str] = field(default_factory=list)

    def add(self, markup: str) -> None:
        self.parts.append(markup)

    def text(self) -> str:
        return "".join(self.parts)


def render_svg(
    series: Sequence[ChartPoint],
    view: str = "daily",
    hovered_index: int | None = None,
    width: float = CHART_WIDTH,
    height: float = CHART_HEIGHT,
    margins: ChartMargins = DEFAULT_MARGINS,
) -> str:
    """Render the chart as standalone SVG markup.

    Series with fewer than two points render the placeholder message instead.
    """
    if not has_enough_points(series):
        return f'<div class="chart-placeholder">{escape(PLACEHOLDER_MESSAGE)}</div>'

    chart_view = CHART_VIEWS[view]
    chart = layout(series, width, height, margins)
    svg = _SvgWriter()
    svg.add(
        f'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {width:g} {height:g}" '
        f'width="100%" role="img" aria-label="{escape(chart_view.aria_label)}" '
        'font-family="sans-serif">'
    )
    svg.add(f'<g transform="translate({margins.left:g}, {margins.top:g})">')

    for value in y_axis_ticks(chart.max_value):
        y = chart.y_scale(value)
        svg.add(
            f'<line x1="0" x2="{chart.inner_width:g}" y1="{y:.2f}" y2="{y:.2f}" '
            'stroke="#E5E7EB" stroke-dasharray="2,2"/>'
        )
        svg.add(
            f'<text x="-10" y="{y:.2f}" dy="0.32em" text-anchor="end" font-size="12" '
            f'fill="#6B7280">{escape(axis_money_label(value))}</text>'
        )

    for index in x_axis_tick_indices(len(series), chart_view.x_ticks):
        point = series[index]
        svg.add(
            f'<text x="{chart.x_scale(point.day):.2f}" y="{chart.inner_height + 20:g}" '
            f'text-anchor="middle" font-size="12" fill="#6B7280">{escape(short_date(point.day))}</text>'
        )

    for key, color in (("sales", SALES_COLOR), ("payments", PAYMENTS_COLOR)):
        commands = build_path(series, chart, key)
        svg.add(f'<path d="{path_data(commands)}" fill="none" stroke="{color}" stroke-width="2"/>')

    if hovered_index is not None and 0 <= hovered_index < len(series):
        _render_hover(svg, series, hovered_index, chart, view)

    svg.add("</g></svg>")
    return svg.text()


def _render_hover(
    svg: _SvgWriter,
    series: Sequence[ChartPoint],
    index: int,
    chart: ChartLayout,
    view: str,
) -> None:
    point = series[index]
    x = chart.x_scale(point.day)
    tooltip = tooltip_for(series, index, chart, view)

    svg.add('<g pointer-events="none">')
    svg.add(
        f'<line x1="{x:.2f}" y1="0" x2="{x:.2f}" y2="{chart.inner_height:g}" '
        'stroke="#9CA3AF" stroke-dasharray="3,3"/>'
    )
    for value, color in ((point.sales, SALES_COLOR), (point.payments, PAYMENTS_COLOR)):
        svg.add(
            f'<circle cx="{x:.2f}" cy="{chart.y_scale(value):.2f}" r="5" fill="{color}" '
            'stroke="#FFFFFF" stroke-width="2"/>'
        )
    svg.add(f'<g transform="translate({tooltip.x:.2f}, {tooltip.y:.2f})">')
    svg.add(
        f'<rect width="{tooltip.width}" height="{tooltip.height}" rx="6" '
        'fill="#FFFFFF" fill-opacity="0.95" stroke="#D1D5DB"/>'
    )
    svg.add(
        f'<text x="10" y="20" font-size="14" font-weight="bold" fill="#111827">'
        f"{escape(tooltip.title)}</text>"
    )
    for offset, label, value, color in (
        (40, "Sales", tooltip.sales_label, SALES_COLOR),
        (58, "Payments", tooltip.payments_label, PAYMENTS_COLOR),
    ):
        svg.add(
            f'<g transform="translate(10, {offset})">'
            f'<circle cx="0" cy="0" r="4" fill="{color}"/>'
            f'<text x="10" y="4" font-size="12" fill="#374151">{label}: '
            f'<tspan font-weight="bold">{escape(value)}</tspan></text></g>'
        )
    svg.add("</g></g>")

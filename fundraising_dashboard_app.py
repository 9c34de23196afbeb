"""Streamlit app for the fundraising sales and payments dashboard."""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Iterable

import pandas as pd
import streamlit as st

from fundraising_dashboard.charting import (
    PLACEHOLDER_MESSAGE,
    has_enough_points,
    layout,
    render_svg,
    resolve_hover,
    short_date,
)
from fundraising_dashboard.config import (
    CHART_WIDTH,
    DB_PATH,
    ORGANIZATION_NAME,
    PAYMENTS_COLOR,
    SALES_COLOR,
)
from fundraising_dashboard.insights import (
    DEFAULT_PROMPT,
    InsightsError,
    generate_dashboard_summary,
)
from fundraising_dashboard.metrics import DashboardMetrics, MetricsCache, format_currency
from fundraising_dashboard.models import DISPOSITION_MODIFIERS, ChartPoint, DataSnapshot
from fundraising_dashboard.reports import (
    CategoryBreakdown,
    HistoryRecord,
    ReportFilters,
    agent_performance_report,
    agent_report_totals,
    disposition_usage_report,
    filter_history,
    key_disposition_counts,
    modifier_breakdown,
)
from fundraising_dashboard.store import DashboardStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

BUSINESS_RESIDENTIAL_OPTIONS = ["Residential", "Business", ""]
COLD_PC_OPTIONS = ["Cold", "PC", ""]

STORE = DashboardStore(DB_PATH)


def _inject_styles() -> None:
    st.markdown(
        """
        <style>
          :root {
            --brand-red: #b91c1c;
            --brand-red-light: #fee2e2;
            --card: #ffffff;
            --text: #111827;
            --muted: #6b7280;
            --border: #e5e7eb;
          }

          .dash-hero {
            border-radius: 1rem;
            padding: 1.2rem 1.4rem;
            margin-bottom: 1rem;
            background: linear-gradient(120deg, #7f1d1d, var(--brand-red));
            color: #ffffff;
          }

          .dash-hero h1 {
            margin: 0;
            font-size: 1.7rem;
          }

          .dash-hero p {
            margin: 0.3rem 0 0;
            opacity: 0.9;
          }

          .metric-card {
            background: var(--card);
            border: 1px solid var(--border);
            border-radius: 0.8rem;
            padding: 0.9rem 1rem;
            box-shadow: 0 6px 14px rgba(17, 24, 39, 0.06);
            min-height: 6.4rem;
          }

          .metric-label {
            margin: 0;
            color: var(--muted);
            font-size: 0.85rem;
            font-weight: 600;
          }

          .metric-value {
            margin: 0.3rem 0 0;
            color: var(--text);
            font-size: 1.45rem;
            font-weight: 700;
          }

          .metric-sub {
            margin: 0.3rem 0 0;
            color: var(--muted);
            font-size: 0.78rem;
          }

          .chart-card {
            background: var(--card);
            border: 1px solid var(--border);
            border-radius: 0.8rem;
            padding: 1rem;
          }

          .chart-legend {
            display: flex;
            justify-content: center;
            gap: 1.5rem;
            margin-top: 0.6rem;
            font-size: 0.85rem;
            color: var(--muted);
          }

          .legend-dot {
            display: inline-block;
            width: 0.7rem;
            height: 0.7rem;
            border-radius: 999px;
            margin-right: 0.4rem;
          }

          .section-note {
            color: var(--muted);
            margin-top: -0.2rem;
            margin-bottom: 0.8rem;
          }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _render_metric_card(title: str, value: str, subtitle: str = "") -> None:
    st.markdown(
        f"""
        <div class="metric-card">
          <p class="metric-label">{title}</p>
          <p class="metric-value">{value}</p>
          <p class="metric-sub">{subtitle}</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def _hero() -> None:
    st.markdown(
        f"""
        <div class="dash-hero">
          <h1>{ORGANIZATION_NAME} Sales Dashboard</h1>
          <p>Week-to-date (Thursday to Wednesday) and month-to-date sales, payments, and agent performance.</p>
        </div>
        """,
        unsafe_allow_html=True,
    )


def _table_or_info(frame: pd.DataFrame, empty_message: str) -> None:
    if frame.empty:
        st.info(empty_message)
        return
    st.dataframe(frame, use_container_width=True, hide_index=True)


def _rows_to_dicts(rows: Iterable) -> list[dict]:
    return [dict(row) for row in rows]


def _current_metrics() -> DashboardMetrics:
    if "metrics_cache" not in st.session_state:
        st.session_state.metrics_cache = MetricsCache()
    return st.session_state.metrics_cache.get(datetime.now(), STORE.snapshot())


def _render_card_row(cards: list[tuple[str, str, str]]) -> None:
    columns = st.columns(len(cards))
    for column, (title, value, subtitle) in zip(columns, cards):
        with column:
            _render_metric_card(title, value, subtitle)


def _render_ai_summary(metrics: DashboardMetrics) -> None:
    if "ai_prompt" not in st.session_state:
        st.session_state.ai_prompt = DEFAULT_PROMPT
    if "ai_summary" not in st.session_state:
        st.session_state.ai_summary = ""

    st.markdown("### AI-Powered Weekly Summary")

    with st.expander("Edit Prompt"):
        st.markdown(
            "<p class='section-note'>The weekly data is appended to this prompt automatically.</p>",
            unsafe_allow_html=True,
        )
        edited_prompt = st.text_area(
            "AI prompt",
            value=st.session_state.ai_prompt,
            height=320,
            key="ai-prompt-editor",
        )
        if st.button("Save Prompt", key="ai-prompt-save"):
            st.session_state.ai_prompt = edited_prompt
            st.success("Prompt updated successfully!")

    label = "Regenerate" if st.session_state.ai_summary else "Generate Summary"
    if st.button(label, key="ai-summary-generate"):
        with st.spinner("Generating summary..."):
            try:
                st.session_state.ai_summary = generate_dashboard_summary(
                    metrics.wtd,
                    metrics.top_agents,
                    prompt=st.session_state.ai_prompt,
                )
            except (ValueError, InsightsError) as exc:
                logger.warning("Weekly summary unavailable: %s", exc)
                st.error(str(exc))

    if st.session_state.ai_summary:
        st.markdown(st.session_state.ai_summary)
    else:
        st.info("Click the button to generate an AI-powered analysis of this week's data.")


def _render_chart(series: list[ChartPoint], view: str, key: str) -> None:
    if not has_enough_points(series):
        st.info(PLACEHOLDER_MESSAGE)
        return

    hovered_index = None
    chart = layout(series)
    if st.checkbox("Inspect a point", key=f"{key}-inspect"):
        pointer_x = st.slider(
            "Pointer position",
            min_value=0,
            max_value=CHART_WIDTH,
            value=int(chart.margins.left + chart.inner_width),
            key=f"{key}-pointer",
        )
        hovered_index = resolve_hover(pointer_x, series, chart)
        if hovered_index is None:
            st.caption("Pointer is outside the plot area.")
        else:
            st.caption(f"Showing {short_date(series[hovered_index].day)}")

    svg = render_svg(series, view=view, hovered_index=hovered_index)
    st.markdown(
        f"""
        <div class="chart-card">
          {svg}
          <div class="chart-legend">
            <span><span class="legend-dot" style="background:{SALES_COLOR}"></span>Sales</span>
            <span><span class="legend-dot" style="background:{PAYMENTS_COLOR}"></span>Payments</span>
          </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def render_dashboard() -> None:
    metrics = _current_metrics()
    wtd = metrics.wtd.display()
    mtd = metrics.mtd.display()

    st.markdown("### Week-to-Date Sales Performance (Thu-Wed)")
    _render_card_row(
        [
            ("WTD Sales", wtd["sales_total"], f"{metrics.wtd.sales_count} sales"),
            ("WTD Residential Sales", wtd["residential_sales"], ""),
            ("WTD Business Sales", wtd["business_sales"], ""),
            ("WTD Cold Sales", wtd["cold_sales"], ""),
            ("WTD PC Sales", wtd["pc_sales"], ""),
        ]
    )

    st.markdown("### Week-to-Date Payment Performance (Thu-Wed)")
    _render_card_row(
        [
            ("WTD Payments", wtd["payments_total"], f"{metrics.wtd.payments_count} payments"),
            ("WTD Residential Payments", wtd["residential_payments"], ""),
            ("WTD Business Payments", wtd["business_payments"], ""),
            ("WTD Cold Payments", wtd["cold_payments"], ""),
            ("WTD PC Payments", wtd["pc_payments"], ""),
        ]
    )

    _render_ai_summary(metrics)

    st.markdown("### Top Performing Agents (Week-to-Date)")
    top_agents_df = pd.DataFrame(
        [
            {
                "Rank": f"#{rank}",
                "Agent": ranking.agent.display_name,
                "Payment Amount": format_currency(ranking.payments),
                "Sales Amount": format_currency(ranking.sales),
            }
            for rank, ranking in enumerate(metrics.top_agents, start=1)
        ]
    )
    _table_or_info(top_agents_df, "No agent performance data for this week yet.")

    st.markdown("### Month-to-Date Performance")
    _render_card_row(
        [
            ("MTD Sales", mtd["sales_total"], f"{metrics.mtd.sales_count} sales"),
            ("MTD Residential Sales", mtd["residential_sales"], ""),
            ("MTD Business Sales", mtd["business_sales"], ""),
        ]
    )
    _render_card_row(
        [
            ("MTD Payments", mtd["payments_total"], f"{metrics.mtd.payments_count} payments"),
            ("MTD Residential Payments", mtd["residential_payments"], ""),
            ("MTD Business Payments", mtd["business_payments"], ""),
        ]
    )

    st.markdown("### Daily Performance (Last 90 Days)")
    _render_chart(metrics.daily, "daily", "daily-chart")

    st.markdown("### Weekly Performance (Last Year)")
    _render_chart(metrics.weekly, "weekly", "weekly-chart")


def render_agents_tab() -> None:
    left, right = st.columns([1, 1.4], gap="large")

    with left:
        st.markdown("#### New Agent")
        with st.form("agent-form", clear_on_submit=True):
            agent_number = st.number_input("Agent Number", min_value=0, step=1)
            first_name = st.text_input("First Name")
            last_name = st.text_input("Last Name")
            phone = st.text_input("Phone")
            email = st.text_input("Email")
            submitted = st.form_submit_button("Save Agent")

        if submitted:
            try:
                STORE.add_agent(
                    agent_number=int(agent_number),
                    first_name=first_name,
                    last_name=last_name,
                    phone=phone,
                    email=email,
                )
                st.success(f"Agent {int(agent_number)} saved.")
            except ValueError as exc:
                st.error(str(exc))

    with right:
        st.markdown("#### Agents")
        agents_df = pd.DataFrame(
            [
                {
                    "Number": row["agent_number"],
                    "Name": f"{row['first_name']} {row['last_name'] or ''}".strip(),
                    "Phone": row.get("phone") or "-",
                    "Email": row.get("email") or "-",
                }
                for row in _rows_to_dicts(STORE.list_agents())
            ]
        )
        _table_or_info(agents_df, "No agents yet.")


def render_dispositions_tab() -> None:
    left, right = st.columns([1, 1.4], gap="large")

    with left:
        st.markdown("#### New Disposition")
        with st.form("disposition-form", clear_on_submit=True):
            name = st.text_input("Name")
            modifiers = st.multiselect("Modifiers", list(DISPOSITION_MODIFIERS))
            submitted = st.form_submit_button("Save Disposition")

        if submitted:
            try:
                disposition_id = STORE.add_disposition(name=name, modifiers=modifiers)
                st.success(f"Disposition saved as {disposition_id}.")
            except ValueError as exc:
                st.error(str(exc))

    with right:
        st.markdown("#### Dispositions")
        dispositions_df = pd.DataFrame(
            [
                {
                    "Name": row["name"],
                    "Modifiers": row["modifiers"].replace(",", ", ") or "None",
                    "ID": row["id"],
                }
                for row in _rows_to_dicts(STORE.list_dispositions())
            ]
        )
        _table_or_info(dispositions_df, "No dispositions yet.")


def render_customers_tab() -> None:
    left, right = st.columns([1, 1.4], gap="large")

    with left:
        st.markdown("#### New Customer")
        with st.form("customer-form", clear_on_submit=True):
            first_name = st.text_input("First Name")
            last_name = st.text_input("Last Name")
            phone = st.text_input("Phone")
            business_residential = st.selectbox("Business/Residential", BUSINESS_RESIDENTIAL_OPTIONS)
            cold_pc = st.selectbox("Cold/PC", COLD_PC_OPTIONS)
            submitted = st.form_submit_button("Save Customer")

        if submitted:
            try:
                customer_id = STORE.add_customer(
                    first_name=first_name,
                    last_name=last_name,
                    phone=phone,
                    business_residential=business_residential,
                    cold_pc=cold_pc,
                )
                st.success(f"Customer #{customer_id} saved.")
            except ValueError as exc:
                st.error(str(exc))

    customers = _rows_to_dicts(STORE.list_customers())
    dispositions = _rows_to_dicts(STORE.list_dispositions())
    agents = _rows_to_dicts(STORE.list_agents())

    with right:
        st.markdown("#### Record Disposition")
        if not customers:
            st.info("Create at least one customer before recording dispositions.")
        else:
            with st.form("history-form", clear_on_submit=True):
                customer = st.selectbox(
                    "Customer",
                    customers,
                    format_func=lambda row: (
                        f"{row['first_name'] or ''} {row['last_name'] or ''} ({row['phone']})".strip()
                    ),
                )
                disposition = st.selectbox(
                    "Disposition",
                    dispositions,
                    format_func=lambda row: row["name"],
                )
                agent = st.selectbox(
                    "Agent",
                    agents,
                    format_func=lambda row: f"{row['agent_number']} - {row['first_name']}",
                )
                amount = st.number_input("Amount", min_value=0.0, step=5.0, format="%.2f")
                day = st.date_input("Date", value=date.today())
                at_time = st.time_input("Time", value=datetime.now().time().replace(microsecond=0))
                notes = st.text_area("Notes", height=80)
                submitted = st.form_submit_button("Record")

            if submitted:
                try:
                    STORE.record_disposition(
                        customer_id=int(customer["id"]),
                        disposition_id=disposition["id"],
                        agent_number=int(agent["agent_number"]),
                        occurred_at=datetime.combine(day, at_time or time()),
                        amount=float(amount) if amount else None,
                        notes=notes,
                    )
                    st.success("Disposition recorded.")
                except ValueError as exc:
                    st.error(str(exc))

    st.markdown("#### Customers")
    customers_df = pd.DataFrame(
        [
            {
                "ID": row["id"],
                "Name": f"{row['first_name'] or ''} {row['last_name'] or ''}".strip() or "-",
                "Phone": row["phone"],
                "B/R": row["business_residential"] or "-",
                "Cold/PC": row["cold_pc"] or "-",
                "Dispositions": int(row["history_count"]),
                "Last Disposition": row.get("last_disposition_at") or "-",
            }
            for row in _rows_to_dicts(STORE.list_customers())
        ]
    )
    _table_or_info(customers_df, "No customers yet.")

    render_customer_detail(customers)


def _history_table(rows: list[dict], show_amount: bool) -> pd.DataFrame:
    records = []
    for row in rows:
        agent = f"{row['agent_first_name'] or ''} {row['agent_last_name'] or ''}".strip()
        record = {
            "Date": datetime.fromisoformat(row["occurred_at"]).strftime("%Y-%m-%d %H:%M"),
            "Disposition": row["disposition_name"] or "Unknown",
            "Agent": agent or "Unknown",
        }
        if show_amount:
            record["Amount"] = format_currency(row["amount"]) if row["amount"] is not None else "N/A"
        record["Notes"] = row["notes"] or ""
        records.append(record)
    return pd.DataFrame(records)


def render_customer_detail(customers: list[dict]) -> None:
    st.markdown("#### Customer Detail")
    if not customers:
        st.info("No customers yet.")
        return

    selected = st.selectbox(
        "View customer",
        customers,
        format_func=lambda row: (
            f"#{row['id']} {row['first_name'] or ''} {row['last_name'] or ''} ({row['phone']})"
        ),
        key="customer-detail-select",
    )
    customer = STORE.get_customer(int(selected["id"]))
    if customer is None:
        st.warning("That customer no longer exists.")
        return

    name = f"{customer['first_name'] or ''} {customer['last_name'] or ''}".strip() or "Unnamed customer"
    _render_card_row(
        [
            ("Customer", name, customer["phone"]),
            ("Business/Residential", customer["business_residential"] or "-", ""),
            ("Cold/PC", customer["cold_pc"] or "-", ""),
        ]
    )

    st.markdown("##### Sales & Payments History")
    money_rows = _rows_to_dicts(STORE.list_history(int(customer["id"]), sales_and_payments_only=True))
    _table_or_info(_history_table(money_rows, show_amount=True), "No history found.")

    st.markdown("##### Full Disposition History")
    all_rows = _rows_to_dicts(STORE.list_history(int(customer["id"])))
    _table_or_info(_history_table(all_rows, show_amount=False), "No history found.")


def _report_filters() -> ReportFilters:
    if "report_filters" not in st.session_state:
        st.session_state.report_filters = ReportFilters.current_week(datetime.now())
    current: ReportFilters = st.session_state.report_filters

    previous_col, next_col, _ = st.columns([1, 1, 4])
    with previous_col:
        if st.button("Previous Week", key="report-previous-week"):
            current = current.shifted(-1)
    this_week_start = ReportFilters.current_week(datetime.now()).date_from
    with next_col:
        next_disabled = current.date_from is not None and this_week_start is not None and (
            current.date_from >= this_week_start
        )
        if st.button("Next Week", key="report-next-week", disabled=next_disabled):
            current = current.shifted(1)

    agents = _rows_to_dicts(STORE.list_agents())
    dispositions = _rows_to_dicts(STORE.list_dispositions())
    columns = st.columns(6)
    with columns[0]:
        date_from = st.date_input("From", value=current.date_from, key=f"report-from-{current.date_from}")
    with columns[1]:
        date_to = st.date_input("To", value=current.date_to, key=f"report-to-{current.date_to}")
    with columns[2]:
        agent = st.selectbox(
            "Agent",
            [None, *agents],
            format_func=lambda row: "All agents" if row is None else f"{row['agent_number']} - {row['first_name']}",
            key="report-agent",
        )
    with columns[3]:
        disposition = st.selectbox(
            "Disposition",
            [None, *dispositions],
            format_func=lambda row: "All dispositions" if row is None else row["name"],
            key="report-disposition",
        )
    with columns[4]:
        business_residential = st.selectbox(
            "Business/Residential", ["", *BUSINESS_RESIDENTIAL_OPTIONS[:2]], key="report-br"
        )
    with columns[5]:
        cold_pc = st.selectbox("Cold/PC", ["", *COLD_PC_OPTIONS[:2]], key="report-cp")

    filters = ReportFilters(
        date_from=date_from or None,
        date_to=date_to or None,
        agent_number=int(agent["agent_number"]) if agent else None,
        disposition_id=disposition["id"] if disposition else None,
        business_residential=business_residential or None,
        cold_pc=cold_pc or None,
    )
    st.session_state.report_filters = filters
    return filters


def _breakdown_cells(breakdown: CategoryBreakdown) -> dict[str, str]:
    return {
        "Res Cold": format_currency(breakdown.res_cold, grouping=True),
        "Res PC": format_currency(breakdown.res_pc, grouping=True),
        "Biz Cold": format_currency(breakdown.biz_cold, grouping=True),
        "Biz PC": format_currency(breakdown.biz_pc, grouping=True),
    }


def _render_agent_report(records: list[HistoryRecord], snapshot: DataSnapshot) -> None:
    rows = agent_performance_report(records, snapshot.dispositions, snapshot.agents)
    totals = agent_report_totals(rows)
    _render_card_row(
        [
            ("Active Agents", str(totals.active_agents), "in filtered period"),
            ("Total Sales", format_currency(totals.sale_amount, grouping=True), f"{totals.sale_count} sales"),
            (
                "Total Payments",
                format_currency(totals.payment_amount, grouping=True),
                f"{totals.payment_count} payments",
            ),
        ]
    )

    agents_df = pd.DataFrame(
        [
            {
                "Rank": f"#{rank}",
                "Agent": row.agent.display_name,
                "Sales": format_currency(row.sale_amount, grouping=True),
                "Sale Count": row.sale_count,
                "Payments": format_currency(row.payment_amount, grouping=True),
                "Payment Count": row.payment_count,
                **_breakdown_cells(row.payments_breakdown),
            }
            for rank, row in enumerate(rows, start=1)
        ]
    )
    _table_or_info(agents_df, "No agent performance data for the selected filters.")

    for row in rows:
        if not row.disposition_sales and not row.disposition_payments:
            continue
        with st.expander(f"{row.agent.display_name}: breakdown by disposition"):
            lines = [
                {
                    "Type": label,
                    "Disposition": line.disposition_name,
                    "Amount": format_currency(line.amount, grouping=True),
                    "Count": line.count,
                    **_breakdown_cells(line.breakdown),
                }
                for label, group in (
                    ("Sale", row.sales_by_disposition()),
                    ("Payment", row.payments_by_disposition()),
                )
                for line in group
            ]
            st.dataframe(pd.DataFrame(lines), use_container_width=True, hide_index=True)


def _render_disposition_report(records: list[HistoryRecord], snapshot: DataSnapshot) -> None:
    usage = disposition_usage_report(records, snapshot.dispositions)
    breakdown = modifier_breakdown(usage, total_count=len(records))
    _render_card_row(
        [
            ("Dispositions Logged", str(len(records)), "in filtered period"),
            ("Sale Dispositions", str(breakdown.sale_count), f"{breakdown.sale_percentage:.1f}% of total filtered"),
            (
                "Payment Dispositions",
                str(breakdown.payment_count),
                f"{breakdown.payment_percentage:.1f}% of total filtered",
            ),
        ]
    )

    key_counts = key_disposition_counts(usage)
    st.bar_chart(pd.DataFrame({"Count": list(key_counts.values())}, index=list(key_counts)))

    usage_df = pd.DataFrame(
        [
            {
                "Disposition": stat.disposition.name,
                "Modifiers": ", ".join(sorted(stat.disposition.modifiers)) or "None",
                "Count": stat.count,
                "Total Amount": format_currency(stat.total_amount, grouping=True),
                "First Used": stat.first_used.strftime("%Y-%m-%d") if stat.first_used else "N/A",
                "Last Used": stat.last_used.strftime("%Y-%m-%d") if stat.last_used else "N/A",
            }
            for stat in usage
        ]
    )
    _table_or_info(usage_df, "No dispositions were used in the selected period.")


def render_reports_tab() -> None:
    filters = _report_filters()
    snapshot = STORE.snapshot()
    records = filter_history(snapshot.customers, filters)

    agent_tab, disposition_tab = st.tabs(["Agent Performance", "Disposition Analysis"])
    with agent_tab:
        _render_agent_report(records, snapshot)
    with disposition_tab:
        _render_disposition_report(records, snapshot)


def main() -> None:
    st.set_page_config(
        page_title=f"{ORGANIZATION_NAME} Dashboard",
        page_icon=":bar_chart:",
        layout="wide",
    )
    STORE.init_db()
    _inject_styles()
    _hero()

    tabs = st.tabs(["Dashboard", "Reports", "Customers", "Agents", "Dispositions"])

    with tabs[0]:
        render_dashboard()
    with tabs[1]:
        render_reports_tab()
    with tabs[2]:
        render_customers_tab()
    with tabs[3]:
        render_agents_tab()
    with tabs[4]:
        render_dispositions_tab()


if __name__ == "__main__":
    main()

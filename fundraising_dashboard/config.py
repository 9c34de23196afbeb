"""Configuration: file paths, API settings, chart and window constants.

Values can be overridden with environment variables (or a local ``.env``).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
DB_PATH = Path(os.getenv("DASHBOARD_DB_PATH", ".data/fundraising_dashboard.db"))

ORGANIZATION_NAME = os.getenv("DASHBOARD_ORGANIZATION_NAME", "PFFPNC")

# ---------------------------------------------------------------------------
# Generative language API
# ---------------------------------------------------------------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "30"))

# ---------------------------------------------------------------------------
# Aggregation windows
# ---------------------------------------------------------------------------
# Business weeks run Thursday through Wednesday (Sunday=0 numbering).
WEEK_START_WEEKDAY = 4
DAILY_LOOKBACK_DAYS = 90
WEEKLY_LOOKBACK_DAYS = 365
MAX_WEEKLY_BUCKETS = 53
TOP_AGENT_LIMIT = 5

# ---------------------------------------------------------------------------
# Charts
# ---------------------------------------------------------------------------
CHART_WIDTH = 800
CHART_HEIGHT = 300
CHART_MARGINS = {"top": 20, "right": 30, "bottom": 40, "left": 60}
Y_AXIS_TICKS = 5
DAILY_X_TICKS = 7
WEEKLY_X_TICKS = 12
SALES_COLOR = "#10B981"
PAYMENTS_COLOR = "#3B82F6"

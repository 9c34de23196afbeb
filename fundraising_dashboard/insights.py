"""AI-written weekly summary built from week-to-date stats and the agent ranking."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import google.generativeai as genai
from google.api_core.exceptions import GoogleAPIError

from .config import (
    GEMINI_API_KEY,
    GEMINI_MODEL,
    GEMINI_TIMEOUT_SECONDS,
    ORGANIZATION_NAME,
)
from .metrics import AgentRanking, WtdStats, format_currency

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = f"""You are a data analyst and strategic advisor for {ORGANIZATION_NAME}, a fundraising organization. Your audience is the management team.
Analyze the provided week-to-date performance data and generate a concise, actionable summary.

Your output **MUST** use the following markdown format strictly:
## Summary
A 1-2 sentence overview of the week's performance.

## Key Insights
* **Highlight:** One major positive finding. For example, mention a top agent's exceptional performance or a surprising trend in sales categories. Use the provided data to be specific.
* **Concern:** One area of concern. For example, identify underperforming categories or a drop in average payment value.
* **Trend:** An interesting trend or comparison. For example, compare Business vs. Residential sales, or PC vs. Cold call success.

## Recommendations
* **Action Item 1:** A specific, data-driven recommendation. For example, "Focus on replicating Agent X's success by analyzing their call patterns."
* **Action Item 2:** Another specific recommendation. For example, "Launch a targeted mini-campaign for Residential PCs, as this category shows high conversion rates."

Do not include any text before the "## Summary" heading or after the recommendations. Be professional, data-driven, and concise."""

NO_AGENT_DATA = "No agent data for this period."


class InsightsError(RuntimeError):
    """The generative language API call failed or returned nothing usable."""


def build_data_payload(wtd: WtdStats, top_agents: Sequence[AgentRanking]) -> str:
    agent_lines = "\n".join(
        f"- {ranking.agent.display_name}: Sales {format_currency(ranking.sales)}, "
        f"Payments {format_currency(ranking.payments)}"
        for ranking in top_agents
    )
    display = wtd.display()
    return "\n".join(
        [
            "--- DATA START ---",
            "Week-to-Date Stats:",
            f"- Total Sales: {display['sales_total']} ({wtd.sales_count} transactions)",
            f"- Total Payments: {display['payments_total']} ({wtd.payments_count} transactions)",
            f"- Residential Sales: {display['residential_sales']}",
            f"- Business Sales: {display['business_sales']}",
            f"- Cold Sales: {display['cold_sales']}",
            f"- PC Sales: {display['pc_sales']}",
            "",
            "Top Performing Agents:",
            agent_lines or NO_AGENT_DATA,
            "--- DATA END ---",
        ]
    )


class GeminiClient:
    """Thin wrapper over ``google.generativeai`` for one-shot text generation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = GEMINI_MODEL,
        timeout: float = GEMINI_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key or GEMINI_API_KEY
        if not self.api_key:
            raise ValueError(
                "Gemini API key is not configured. Set the GEMINI_API_KEY environment variable."
            )
        self.model = model
        self.timeout = timeout
        genai.configure(api_key=self.api_key)

    def generate(
        self,
        prompt: str,
        temperature: float = 0.6,
        top_p: float = 0.95,
        top_k: int = 64,
    ) -> str:
        model = genai.GenerativeModel(
            model_name=self.model,
            generation_config={
                "temperature": temperature,
                "top_p": top_p,
                "top_k": top_k,
            },
        )
        try:
            response = model.generate_content(prompt, request_options={"timeout": self.timeout})
        except GoogleAPIError as exc:
            logger.error("Summary request to %s failed: %s", self.model, exc)
            raise InsightsError("An error occurred while generating the AI summary.") from exc

        return _response_text(response)


def _block_reason(response: Any) -> str | None:
    feedback = getattr(response, "prompt_feedback", None)
    reason = getattr(feedback, "block_reason", None)
    if not reason:
        return None
    return getattr(reason, "name", str(reason))


def _response_text(response: Any) -> str:
    reason = _block_reason(response)
    try:
        text = response.text
    except (ValueError, AttributeError) as exc:
        # .text raises ValueError when no candidate has usable parts.
        logger.warning("Summary response had no text (block reason: %s)", reason)
        raise InsightsError(
            "The model returned a response that could not be processed."
            + (f" Blocked: {reason}." if reason else "")
        ) from exc

    if not isinstance(text, str) or not text.strip():
        logger.warning("Summary response was empty (block reason: %s)", reason)
        raise InsightsError(
            "The model returned an empty response."
            + (f" Blocked: {reason}." if reason else "")
        )
    return text.strip()


def generate_dashboard_summary(
    wtd: WtdStats,
    top_agents: Sequence[AgentRanking],
    prompt: str = DEFAULT_PROMPT,
    client: GeminiClient | None = None,
) -> str:
    full_prompt = f"{prompt}\n\n{build_data_payload(wtd, top_agents)}"
    client = client or GeminiClient()
    summary = client.generate(full_prompt, temperature=0.6)
    logger.info("Generated weekly summary (%d characters)", len(summary))
    return summary

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

from pydantic import ValidationError

from domain.schemas import FinancialTips, LedgerSnapshot
from infrastructure.llm.llm_client import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a friendly and helpful financial advisor. Base every statement strictly on the data provided."

NOT_ENOUGH_DATA = FinancialTips(
    unnecessary_spending_areas=["Not enough data provided."],
    savings_suggestions=["Add income, expenses, or balance details for tips."],
    general_advice=(
        "Please add some financial data (income, expenses, current balance) "
        "so I can provide personalized tips."
    ),
)

_FENCE_RE = re.compile(r"^```(?:json|markdown|md)?\s*|\s*```$", re.IGNORECASE)


class AdviceUnavailableError(RuntimeError):
    pass


def has_sufficient_data(snapshot: LedgerSnapshot) -> bool:
    return snapshot.total_income > 0 or snapshot.total_expenses > 0 or snapshot.current_balance != 0


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


class FinancialAdvisorLLM:
    """Builds advice prompts from a ledger snapshot and parses model output."""

    def __init__(self, llm_client: LLMClient):
        self._llm = llm_client

    def build_tips_prompt(self, snapshot: LedgerSnapshot) -> str:
        prompt_payload: Dict[str, Any] = {
            "task": "Analyze the user's financial data for the current month and provide personalized tips.",
            "financial_data": snapshot.model_dump(mode="json", exclude={"recent_transactions"}),
            "output_contract": FinancialTips.model_json_schema(),
            "instructions": [
                "unnecessary_spending_areas: categories where spending is high relative to income, "
                "or more than 10-20% over a budget goal when goals are provided. Discretionary categories "
                "such as Food & Dining or Shopping deserve attention when they are a large share of expenses. "
                "If nothing stands out, say spending seems generally balanced.",
                "savings_suggestions: specific, actionable ways to reduce costs in those areas. If income is much "
                "higher than expenses suggest saving or investing; if expenses are close to or exceed income focus "
                "on cost-cutting.",
                "general_advice: a brief, encouraging comment on overall financial health based on the "
                "income/expense ratio and current balance.",
            ],
            "rules": [
                "Return JSON only.",
                "Base the analysis strictly on the numbers provided; do not assume external factors.",
                "If budget_goals is empty, analyze spending relative to income.",
                "If income and expenses are both zero or very low, say that more data is needed.",
                "Be concise.",
            ],
        }
        return json.dumps(prompt_payload, indent=2, default=str)

    def build_markdown_prompt(self, snapshot: LedgerSnapshot) -> str:
        prompt_payload: Dict[str, Any] = {
            "task": "Write personalized financial tips for the user's current month in a chat-like Markdown format.",
            "financial_data": snapshot.model_dump(mode="json"),
            "focus": [
                "Spending analysis: categories where spending is high compared to income or budget goals (when set).",
                "Budget adherence: compare actual spending against budget goals; encourage or suggest improvements.",
                "Savings potential: ways to save money based on spending patterns.",
                "Overall financial health: income vs. expenses and the change from starting to current balance.",
            ],
            "formatting": [
                "Use Markdown bold and bullet points.",
                "Start with a friendly greeting and finish with a positive remark.",
                "Give 2-4 specific, actionable tips.",
            ],
            "rules": [
                "Do not give generic advice that is not based on the data.",
                "Do not make assumptions beyond the transactions and goals listed.",
                "Do not ask for more information.",
            ],
        }
        return json.dumps(prompt_payload, indent=2, default=str)

    def generate_tips(self, snapshot: LedgerSnapshot) -> FinancialTips:
        if not has_sufficient_data(snapshot):
            logger.info("FinancialAdvisorLLM no financial data; returning placeholder tips")
            return NOT_ENOUGH_DATA.model_copy(deep=True)

        logger.info(
            "FinancialAdvisorLLM generate_tips start period=%s categories=%d goals=%d",
            snapshot.period,
            len(snapshot.expenses_by_category),
            len(snapshot.budget_goals),
        )
        raw = self._llm.complete(self.build_tips_prompt(snapshot), system=SYSTEM_PROMPT, json_mode=True)
        if not raw:
            raise AdviceUnavailableError("AI failed to generate a response.")

        try:
            tips = FinancialTips.model_validate_json(_strip_fences(raw))
        except ValidationError as exc:
            logger.info("FinancialAdvisorLLM invalid JSON response")
            raise AdviceUnavailableError("AI returned tips in an unexpected format.") from exc

        logger.info(
            "FinancialAdvisorLLM accepted tips areas=%d suggestions=%d",
            len(tips.unnecessary_spending_areas),
            len(tips.savings_suggestions),
        )
        return tips

    def generate_markdown_tips(self, snapshot: LedgerSnapshot) -> str:
        logger.info(
            "FinancialAdvisorLLM generate_markdown_tips start period=%s recent=%d",
            snapshot.period,
            len(snapshot.recent_transactions),
        )
        raw = _strip_fences(self._llm.complete(self.build_markdown_prompt(snapshot), system=SYSTEM_PROMPT))
        if not raw:
            raise AdviceUnavailableError("Failed to generate financial tips.")
        return raw

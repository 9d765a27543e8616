from __future__ import annotations

import logging
import os

from application.aggregator import LedgerAggregator
from domain.schemas import FinancialTips
from infrastructure.llm.llm_client import LLMClient
from llm.advisor import FinancialAdvisorLLM

logger = logging.getLogger(__name__)


class AdviceService:
    """Turns the current ledger into AI-generated financial tips."""

    def __init__(self, advisor: FinancialAdvisorLLM | None = None, recent_limit: int | None = None):
        self._advisor = advisor or FinancialAdvisorLLM(LLMClient())
        self._recent_limit = recent_limit if recent_limit is not None else int(os.getenv("BUDGETVIEW_RECENT_TRANSACTIONS", "20"))

    def tips(self, aggregator: LedgerAggregator) -> FinancialTips:
        snapshot = aggregator.advice_snapshot(recent_limit=self._recent_limit)
        logger.info("AdviceService tips period=%s", snapshot.period)
        return self._advisor.generate_tips(snapshot)

    def markdown_tips(self, aggregator: LedgerAggregator) -> str:
        snapshot = aggregator.advice_snapshot(recent_limit=self._recent_limit)
        logger.info("AdviceService markdown_tips period=%s recent=%d", snapshot.period, len(snapshot.recent_transactions))
        return self._advisor.generate_markdown_tips(snapshot)

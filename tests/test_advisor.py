from __future__ import annotations

import json
import unittest
from datetime import date

from application.advice import AdviceService
from application.aggregator import LedgerAggregator
from domain.models import TransactionKind
from domain.schemas import LedgerSnapshot, SnapshotBudgetGoal, SnapshotCategoryExpense, SnapshotTransaction
from infrastructure.llm.llm_client import LLMClient
from llm.advisor import NOT_ENOUGH_DATA, SYSTEM_PROMPT, AdviceUnavailableError, FinancialAdvisorLLM, has_sufficient_data


class _StubLLMClient:
    def __init__(self, response: str):
        self._response = response
        self.calls: list[dict] = []

    def complete(self, prompt: str, system: str | None = None, json_mode: bool = False) -> str:
        self.calls.append({"prompt": prompt, "system": system, "json_mode": json_mode})
        return self._response


def _snapshot(**overrides) -> LedgerSnapshot:
    values = dict(
        period="2026-03",
        total_income=3000.0,
        total_expenses=1250.0,
        starting_balance=500.0,
        current_balance=2250.0,
        expenses_by_category=[SnapshotCategoryExpense(category_name="Food & Dining", amount_spent=450.0)],
        budget_goals=[SnapshotBudgetGoal(category_name="Food & Dining", budget_amount=300.0)],
        recent_transactions=[
            SnapshotTransaction(
                occurred_on=date(2026, 3, 14),
                kind=TransactionKind.EXPENSE,
                description="Dinner out",
                amount=85.0,
                category_name="Food & Dining",
            )
        ],
    )
    values.update(overrides)
    return LedgerSnapshot(**values)


class FinancialAdvisorLLMTests(unittest.TestCase):
    def test_generate_tips_parses_json(self) -> None:
        client = _StubLLMClient(
            json.dumps(
                {
                    "unnecessarySpendingAreas": ["Food & Dining is 50% over budget"],
                    "savingsSuggestions": ["Cook at home twice more per week"],
                    "generalAdvice": "You are saving well overall.",
                }
            )
        )

        tips = FinancialAdvisorLLM(client).generate_tips(_snapshot())

        self.assertEqual(tips.unnecessary_spending_areas, ["Food & Dining is 50% over budget"])
        self.assertEqual(tips.general_advice, "You are saving well overall.")
        self.assertTrue(client.calls[0]["json_mode"])
        self.assertEqual(client.calls[0]["system"], SYSTEM_PROMPT)

    def test_generate_tips_strips_code_fences(self) -> None:
        client = _StubLLMClient('```json\n{"unnecessary_spending_areas": [], "savings_suggestions": ["Save 10%"], "general_advice": "Good"}\n```')

        tips = FinancialAdvisorLLM(client).generate_tips(_snapshot())

        self.assertEqual(tips.savings_suggestions, ["Save 10%"])

    def test_generate_tips_without_data_skips_the_model(self) -> None:
        client = _StubLLMClient("{}")
        empty = _snapshot(total_income=0.0, total_expenses=0.0, starting_balance=0.0, current_balance=0.0)

        tips = FinancialAdvisorLLM(client).generate_tips(empty)

        self.assertEqual(tips, NOT_ENOUGH_DATA)
        self.assertEqual(client.calls, [])

    def test_empty_or_invalid_output_is_unavailable(self) -> None:
        for response in ("", "not json", '{"unnecessary_spending_areas": "not a list"}'):
            with self.subTest(response=response):
                with self.assertRaises(AdviceUnavailableError):
                    FinancialAdvisorLLM(_StubLLMClient(response)).generate_tips(_snapshot())

    def test_tips_prompt_contains_financial_data(self) -> None:
        prompt = json.loads(FinancialAdvisorLLM(_StubLLMClient("")).build_tips_prompt(_snapshot()))

        self.assertEqual(prompt["financial_data"]["total_income"], 3000.0)
        self.assertEqual(prompt["financial_data"]["budget_goals"][0]["category_name"], "Food & Dining")
        self.assertNotIn("recent_transactions", prompt["financial_data"])
        self.assertIn("rules", prompt)

    def test_markdown_tips(self) -> None:
        client = _StubLLMClient("**Hi!**\n- Cook at home more")

        text = FinancialAdvisorLLM(client).generate_markdown_tips(_snapshot())

        self.assertEqual(text, "**Hi!**\n- Cook at home more")
        self.assertFalse(client.calls[0]["json_mode"])
        prompt = json.loads(client.calls[0]["prompt"])
        self.assertEqual(prompt["financial_data"]["recent_transactions"][0]["description"], "Dinner out")

    def test_markdown_tips_empty_output_is_unavailable(self) -> None:
        with self.assertRaises(AdviceUnavailableError):
            FinancialAdvisorLLM(_StubLLMClient("   ")).generate_markdown_tips(_snapshot())

    def test_has_sufficient_data(self) -> None:
        self.assertTrue(has_sufficient_data(_snapshot()))
        self.assertTrue(has_sufficient_data(_snapshot(total_income=0.0, total_expenses=0.0, current_balance=-5.0)))
        self.assertFalse(has_sufficient_data(_snapshot(total_income=0.0, total_expenses=0.0, current_balance=0.0)))


class AdviceServiceTests(unittest.TestCase):
    def test_service_builds_snapshot_from_aggregator(self) -> None:
        client = _StubLLMClient('{"general_advice": "Nice"}')
        aggregator = LedgerAggregator(clock=lambda: date(2026, 3, 15))
        aggregator.update_starting_balance(100)

        tips = AdviceService(FinancialAdvisorLLM(client), recent_limit=5).tips(aggregator)

        self.assertEqual(tips.general_advice, "Nice")
        prompt = json.loads(client.calls[0]["prompt"])
        self.assertEqual(prompt["financial_data"]["period"], "2026-03")
        self.assertEqual(prompt["financial_data"]["current_balance"], 100.0)


class LLMClientPayloadTests(unittest.TestCase):
    def test_build_payload(self) -> None:
        client = LLMClient(base_url="http://localhost:11434/", model="test-model", timeout_seconds=5)

        payload = client.build_payload("hello", system="be nice", json_mode=True)

        self.assertEqual(client.base_url, "http://localhost:11434")
        self.assertEqual(payload["model"], "test-model")
        self.assertEqual(payload["system"], "be nice")
        self.assertEqual(payload["format"], "json")
        self.assertFalse(payload["stream"])

    def test_plain_payload_has_no_format(self) -> None:
        payload = LLMClient(model="test-model").build_payload("hello")
        self.assertNotIn("format", payload)
        self.assertNotIn("system", payload)

    def test_unreachable_server_returns_empty_completion(self) -> None:
        client = LLMClient(base_url="http://127.0.0.1:9", model="test-model", timeout_seconds=0.5)
        self.assertEqual(client.complete("hello"), "")


if __name__ == "__main__":
    unittest.main()

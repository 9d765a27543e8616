from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse

from application.advice import AdviceService
from application.session import LedgerSession, SessionPool
from domain.models import Period, TrendGranularity
from domain.schemas import (
    BudgetGoalOut,
    BudgetGoalUpdate,
    BudgetProgressOut,
    CategoryExpenseOut,
    CategoryOut,
    FinancialTips,
    MarkdownTips,
    MonthSummary,
    StartingBalanceOut,
    StartingBalanceUpdate,
    TransactionCreate,
    TransactionOut,
    TrendPointOut,
)
from infrastructure.ledger_stores.store import LedgerStoreError
from interface.auth import UserResolver
from interface.cli import LOCAL_USER_ID, build_session, store_backend
from llm.advisor import AdviceUnavailableError

logger = logging.getLogger(__name__)


def _parse_month(month: Optional[str]) -> Optional[Period]:
    if month is None:
        return None
    try:
        return Period.parse(month)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid month {month!r}; expected YYYY-MM") from exc


def create_app(
    sessions: SessionPool | None = None,
    advice: AdviceService | None = None,
    resolve_user: Callable[..., str] | None = None,
) -> FastAPI:
    firebase_backend = store_backend() == "firebase"
    sessions = sessions or SessionPool(lambda user_id: build_session(user_id, sync=firebase_backend))
    resolve_user = resolve_user or UserResolver(
        require_token=firebase_backend,
        default_user=os.getenv("BUDGETVIEW_USER_ID", LOCAL_USER_ID),
    )
    advice_service = advice

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        sessions.close()
        logger.info("BudgetView API shut down; sessions closed")

    app = FastAPI(title="BudgetView API", lifespan=lifespan)
    app.state.sessions = sessions

    @app.exception_handler(LedgerStoreError)
    async def ledger_store_error(_: Request, exc: LedgerStoreError) -> JSONResponse:
        logger.warning("Ledger store error: %s", exc)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": f"Could not reach your ledger storage: {exc}"})

    @app.exception_handler(AdviceUnavailableError)
    async def advice_unavailable(_: Request, exc: AdviceUnavailableError) -> JSONResponse:
        logger.warning("Advice unavailable: %s", exc)
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})

    def current_session(user_id: str = Depends(resolve_user)) -> LedgerSession:
        return sessions.get(user_id)

    def get_advice() -> AdviceService:
        nonlocal advice_service
        if advice_service is None:
            advice_service = AdviceService()
        return advice_service

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "store": store_backend()}

    @app.get("/categories", response_model=List[CategoryOut])
    def categories(session: LedgerSession = Depends(current_session)) -> List[CategoryOut]:
        return [CategoryOut.from_category(category) for category in session.aggregator.categories]

    # ---- transactions ----
    @app.get("/transactions", response_model=List[TransactionOut])
    def list_transactions(session: LedgerSession = Depends(current_session)) -> List[TransactionOut]:
        aggregator = session.aggregator
        return [TransactionOut.from_transaction(txn, aggregator.categories) for txn in aggregator.transactions]

    @app.post("/transactions", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
    def add_transaction(payload: TransactionCreate, session: LedgerSession = Depends(current_session)) -> TransactionOut:
        txn = session.add_transaction(payload.to_new_transaction())
        return TransactionOut.from_transaction(txn, session.aggregator.categories)

    @app.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_transaction(transaction_id: str, session: LedgerSession = Depends(current_session)) -> Response:
        session.delete_transaction(transaction_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ---- settings ----
    @app.get("/budget-goals", response_model=List[BudgetGoalOut])
    def budget_goals(session: LedgerSession = Depends(current_session)) -> List[BudgetGoalOut]:
        aggregator = session.aggregator
        return [BudgetGoalOut.from_goal(goal, aggregator.categories) for goal in aggregator.budget_goals]

    @app.put("/budget-goals/{category_id}", response_model=BudgetGoalOut)
    def update_budget_goal(
        category_id: str,
        payload: BudgetGoalUpdate,
        session: LedgerSession = Depends(current_session),
    ) -> BudgetGoalOut:
        aggregator = session.aggregator
        if category_id not in aggregator.categories:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown category: {category_id}")
        session.update_budget_goal(category_id, payload.amount)
        return BudgetGoalOut.from_goal(aggregator.get_budget_goal(category_id), aggregator.categories)

    @app.get("/starting-balance", response_model=StartingBalanceOut)
    def starting_balance(session: LedgerSession = Depends(current_session)) -> StartingBalanceOut:
        return StartingBalanceOut(value=float(session.aggregator.starting_balance))

    @app.put("/starting-balance", response_model=StartingBalanceOut)
    def update_starting_balance(payload: StartingBalanceUpdate, session: LedgerSession = Depends(current_session)) -> StartingBalanceOut:
        session.update_starting_balance(payload.value)
        return StartingBalanceOut(value=float(session.aggregator.starting_balance))

    # ---- summaries ----
    @app.get("/summary", response_model=MonthSummary)
    def summary(month: Optional[str] = Query(default=None), session: LedgerSession = Depends(current_session)) -> MonthSummary:
        aggregator = session.aggregator
        period = _parse_month(month) or aggregator.current_period()
        income = aggregator.total_income(period)
        expenses = aggregator.total_expenses(period)
        return MonthSummary(
            period=str(period),
            total_income=float(income),
            total_expenses=float(expenses),
            net=float(income - expenses),
            starting_balance=float(aggregator.starting_balance),
            current_balance=float(aggregator.current_balance()),
        )

    @app.get("/summary/categories", response_model=List[CategoryExpenseOut])
    def expenses_by_category(month: Optional[str] = Query(default=None), session: LedgerSession = Depends(current_session)) -> List[CategoryExpenseOut]:
        entries = session.aggregator.expenses_by_category(_parse_month(month))
        return [CategoryExpenseOut.from_expense(entry) for entry in entries]

    @app.get("/summary/trends", response_model=List[TrendPointOut])
    def trends(
        granularity: TrendGranularity = Query(default=TrendGranularity.MONTH),
        session: LedgerSession = Depends(current_session),
    ) -> List[TrendPointOut]:
        return [TrendPointOut.from_point(point) for point in session.aggregator.spending_over_time(granularity)]

    @app.get("/summary/budget-progress", response_model=List[BudgetProgressOut])
    def budget_progress(month: Optional[str] = Query(default=None), session: LedgerSession = Depends(current_session)) -> List[BudgetProgressOut]:
        entries = session.aggregator.budget_progress(_parse_month(month))
        return [BudgetProgressOut.from_progress(entry) for entry in entries]

    # ---- advice ----
    @app.post("/tips", response_model=FinancialTips)
    def tips(session: LedgerSession = Depends(current_session), advice_service: AdviceService = Depends(get_advice)) -> FinancialTips:
        return advice_service.tips(session.aggregator)

    @app.post("/tips/markdown", response_model=MarkdownTips)
    def markdown_tips(session: LedgerSession = Depends(current_session), advice_service: AdviceService = Depends(get_advice)) -> MarkdownTips:
        return MarkdownTips(tips=advice_service.markdown_tips(session.aggregator))

    return app


app = create_app()

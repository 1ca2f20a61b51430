from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sharedbudget.domain.helpers.dates import to_naive_utc
from sharedbudget.domain.services.budget_service import require_budget
from sharedbudget.domain.services.report_service import (
    TOTAL,
    category_totals,
    current_balance,
    income_totals,
    spending_trend,
)
from sharedbudget.presentation.deps import get_current_user, get_db

router = APIRouter(prefix="/api", tags=["reports"])


@router.get("/reports/{slug}/current-balance")
def current_balance_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
):
    budget = require_budget(db, slug, current_user.id)
    return current_balance(db, budget, to_naive_utc(date_from), to_naive_utc(date_to))


@router.get("/reports/{slug}/category-totals")
def category_totals_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    period: Literal["week", "month"] = "month",
    anchor_date: Optional[datetime] = Query(None, alias="anchorDate"),
):
    budget = require_budget(db, slug, current_user.id)
    return category_totals(db, budget, period, to_naive_utc(anchor_date))


@router.get("/reports/{slug}/income-totals")
def income_totals_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
):
    budget = require_budget(db, slug, current_user.id)
    return income_totals(db, budget, to_naive_utc(date_from), to_naive_utc(date_to))


@router.get("/budgets/{slug}/reports/spending-trend")
def spending_trend_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    period: Literal["week", "month", "year"] = "month",
    mode: Literal["single", "multiple"] = "single",
    category: str = TOTAL,
    categories: Optional[str] = Query(None, description="Comma separated category ids"),
    combine: bool = False,
    anchor_date: Optional[datetime] = Query(None, alias="anchorDate"),
):
    budget = require_budget(db, slug, current_user.id)
    return spending_trend(
        db,
        budget,
        period=period,
        mode=mode,
        category=category,
        categories=categories,
        combine=combine,
        now=to_naive_utc(anchor_date),
    )

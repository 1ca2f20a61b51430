from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from sharedbudget.domain.helpers.dates import to_naive_utc
from sharedbudget.domain.services.budget_service import require_budget
from sharedbudget.domain.services.income_service import create_income, list_incomes
from sharedbudget.presentation.deps import get_current_user, get_db
from sharedbudget.presentation.schemas import (
    CamelModel,
    Page,
    RecurringRequest,
    UserRef,
    UtcDatetime,
)

router = APIRouter(prefix="/api/budgets/{slug}/income", tags=["income"])


class CreateIncomeRequest(CamelModel):
    item_name: str = Field(..., min_length=1, max_length=191)
    amount: Decimal = Field(..., gt=0)
    received_at: Optional[UtcDatetime] = None
    received_by_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=2000)
    recurring: Optional[RecurringRequest] = None


class IncomeResponse(CamelModel):
    id: int
    budget_id: int
    item_name: str
    amount: float
    received_at: datetime
    received_by: UserRef
    notes: Optional[str] = None
    created_by_id: int
    recurring_rule_id: Optional[int] = None
    created_at: datetime

    @staticmethod
    def from_domain(i) -> "IncomeResponse":
        return IncomeResponse(
            id=i.id,
            budget_id=i.budget_id,
            item_name=i.item_name,
            amount=float(i.amount),
            received_at=i.received_at,
            received_by=UserRef.from_domain(i.received_by),
            notes=i.notes,
            created_by_id=i.created_by_id,
            recurring_rule_id=i.recurring_rule_id,
            created_at=i.created_at,
        )


class PaginatedIncomeResponse(Page):
    items: List[IncomeResponse]


@router.post("", response_model=IncomeResponse, status_code=201)
def create_income_endpoint(
    slug: str,
    req: CreateIncomeRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    income = create_income(
        db,
        budget,
        current_user.id,
        item_name=req.item_name.strip(),
        amount=req.amount,
        received_at=req.received_at,
        received_by_id=req.received_by_id,
        notes=req.notes,
        recurring=req.recurring.to_service() if req.recurring else None,
    )
    return IncomeResponse.from_domain(income)


@router.get("", response_model=PaginatedIncomeResponse)
def list_income_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
):
    budget = require_budget(db, slug, current_user.id)
    items, total = list_incomes(
        db,
        budget,
        page=page,
        page_size=page_size,
        date_from=to_naive_utc(date_from),
        date_to=to_naive_utc(date_to),
    )
    return PaginatedIncomeResponse(
        items=[IncomeResponse.from_domain(i) for i in items],
        total=total,
        page=page,
        page_size=page_size,
    )

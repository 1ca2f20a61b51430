from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field
from sqlalchemy.orm import Session

from sharedbudget.domain.helpers.dates import to_naive_utc
from sharedbudget.domain.services.budget_service import require_budget
from sharedbudget.domain.services.purchase_service import (
    create_purchase,
    delete_purchase,
    list_purchases,
    settle_purchase,
)
from sharedbudget.presentation.deps import get_current_user, get_db
from sharedbudget.presentation.schemas import (
    CamelModel,
    Page,
    RecurringRequest,
    UserRef,
    UtcDatetime,
)

router = APIRouter(prefix="/api", tags=["purchases"])


class ShareOverrideEntry(CamelModel):
    user_id: int
    percent: float


class CreatePurchaseRequest(CamelModel):
    item_name: str = Field(..., min_length=1, max_length=191)
    category_id: int
    amount: Decimal = Field(..., gt=0)
    paid_at: Optional[UtcDatetime] = None
    paid_by_id: Optional[int] = None
    shared: Optional[bool] = None
    split_percent_for_payer: Optional[float] = Field(None, ge=0, le=100)
    shares_override: Optional[List[ShareOverrideEntry]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    recurring: Optional[RecurringRequest] = None


class SettleRequest(CamelModel):
    settled: bool


class ShareResponse(CamelModel):
    user_id: int
    percent: int
    fixed_amount: Optional[float] = None
    is_settled: bool
    settled_at: Optional[datetime] = None


class PurchaseCategory(CamelModel):
    id: int
    name: str
    slug: str
    color: str


class PurchaseResponse(CamelModel):
    id: int
    budget_id: int
    item_name: str
    amount: float
    paid_at: datetime
    shared: bool
    notes: Optional[str] = None
    category: PurchaseCategory
    paid_by: UserRef
    created_by_id: int
    recurring_rule_id: Optional[int] = None
    shares: List[ShareResponse]
    created_at: datetime

    @staticmethod
    def from_domain(p) -> "PurchaseResponse":
        return PurchaseResponse(
            id=p.id,
            budget_id=p.budget_id,
            item_name=p.item_name,
            amount=float(p.amount),
            paid_at=p.paid_at,
            shared=p.shared,
            notes=p.notes,
            category=PurchaseCategory(
                id=p.category.id,
                name=p.category.name,
                slug=p.category.slug,
                color=p.category.color,
            ),
            paid_by=UserRef.from_domain(p.paid_by),
            created_by_id=p.created_by_id,
            recurring_rule_id=p.recurring_rule_id,
            shares=[
                ShareResponse(
                    user_id=s.user_id,
                    percent=s.percent,
                    fixed_amount=None if s.fixed_amount is None else float(s.fixed_amount),
                    is_settled=s.is_settled,
                    settled_at=s.settled_at,
                )
                for s in p.shares
            ],
            created_at=p.created_at,
        )


class PaginatedPurchasesResponse(Page):
    items: List[PurchaseResponse]


@router.post(
    "/budgets/{slug}/purchases", response_model=PurchaseResponse, status_code=201
)
def create_purchase_endpoint(
    slug: str,
    req: CreatePurchaseRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    purchase = create_purchase(
        db,
        budget,
        current_user.id,
        item_name=req.item_name.strip(),
        category_id=req.category_id,
        amount=req.amount,
        paid_at=req.paid_at,
        paid_by_id=req.paid_by_id,
        shared=req.shared,
        split_percent_for_payer=req.split_percent_for_payer,
        shares_override=(
            [(e.user_id, e.percent) for e in req.shares_override]
            if req.shares_override
            else None
        ),
        notes=req.notes,
        recurring=req.recurring.to_service() if req.recurring else None,
    )
    return PurchaseResponse.from_domain(purchase)


@router.get("/budgets/{slug}/purchases", response_model=PaginatedPurchasesResponse)
def list_purchases_endpoint(
    slug: str,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    q: Optional[str] = Query(None, description="Search term"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    shared: Optional[bool] = None,
    paid_by_id: Optional[int] = Query(None, alias="paidById"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    sort_by: Literal["paidAt", "amount", "itemName", "category"] = Query(
        "paidAt", alias="sortBy"
    ),
    sort_dir: Literal["asc", "desc"] = Query("desc", alias="sortDir"),
) -> PaginatedPurchasesResponse:
    budget = require_budget(db, slug, current_user.id)
    items, total = list_purchases(
        db,
        budget,
        current_user.id,
        page=page,
        page_size=page_size,
        search=q.strip() if q else None,
        category_id=category_id,
        shared=shared,
        paid_by_id=paid_by_id,
        date_from=to_naive_utc(date_from),
        date_to=to_naive_utc(date_to),
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return PaginatedPurchasesResponse(
        items=[PurchaseResponse.from_domain(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.patch("/purchases/{purchase_id}/settle", response_model=PurchaseResponse)
def settle_purchase_endpoint(
    purchase_id: int,
    req: SettleRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    purchase = settle_purchase(db, purchase_id, current_user.id, req.settled)
    return PurchaseResponse.from_domain(purchase)


@router.delete("/purchases/{purchase_id}", status_code=204)
def delete_purchase_endpoint(
    purchase_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    delete_purchase(db, purchase_id, current_user.id)
    return Response(status_code=204)

from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import Field
from sqlalchemy.orm import Session

from sharedbudget.domain.models import Role
from sharedbudget.domain.services.budget_service import (
    add_category,
    change_member_role,
    create_budget,
    list_budgets,
    remove_member,
    require_budget,
)
from sharedbudget.presentation.deps import get_current_user, get_db
from sharedbudget.presentation.schemas import CamelModel

router = APIRouter(prefix="/api/budgets", tags=["budgets"])

DEFAULT_COLOR = "100, 116, 139"


# --- Category models ---
class CategoryRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=80)
    color: str = DEFAULT_COLOR
    plan_monthly: Decimal = Field(Decimal("0"), ge=0)


class CategoryResponse(CamelModel):
    id: int
    name: str
    slug: str
    color: str
    plan_monthly: float
    sort_order: int

    @staticmethod
    def from_domain(c) -> "CategoryResponse":
        return CategoryResponse(
            id=c.id,
            name=c.name,
            slug=c.slug,
            color=c.color,
            plan_monthly=float(c.plan_monthly or 0),
            sort_order=c.sort_order,
        )


# --- Budget models ---
class CreateBudgetRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=191)
    categories: List[CategoryRequest] = []


class MemberResponse(CamelModel):
    user_id: int
    username: str
    name: str
    role: Role
    joined_at: datetime

    @staticmethod
    def from_domain(m) -> "MemberResponse":
        return MemberResponse(
            user_id=m.user_id,
            username=m.user.username,
            name=m.user.name,
            role=m.role,
            joined_at=m.joined_at,
        )


class BudgetResponse(CamelModel):
    id: int
    name: str
    slug: str
    owner_id: int
    my_role: Role
    members: List[MemberResponse]
    categories: List[CategoryResponse]

    @staticmethod
    def from_domain(b, user_id: int) -> "BudgetResponse":
        return BudgetResponse(
            id=b.id,
            name=b.name,
            slug=b.slug,
            owner_id=b.owner_id,
            my_role=b.role_of(user_id),
            members=[MemberResponse.from_domain(m) for m in b.members],
            categories=[CategoryResponse.from_domain(c) for c in b.categories],
        )


class BudgetCounts(CamelModel):
    members: int
    categories: int
    purchases: int


class BudgetSummaryResponse(CamelModel):
    id: int
    name: str
    slug: str
    role: Role
    joined_at: datetime
    counts: BudgetCounts


class ChangeRoleRequest(CamelModel):
    role: Role


@router.get("", response_model=List[BudgetSummaryResponse])
def list_budgets_endpoint(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    return [
        BudgetSummaryResponse(
            id=row["budget"].id,
            name=row["budget"].name,
            slug=row["budget"].slug,
            role=row["role"],
            joined_at=row["joined_at"],
            counts=BudgetCounts(**row["counts"]),
        )
        for row in list_budgets(db, current_user.id)
    ]


@router.post("", response_model=BudgetResponse, status_code=201)
def create_budget_endpoint(
    req: CreateBudgetRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = create_budget(
        db,
        current_user.id,
        req.name,
        [c.model_dump() for c in req.categories],
    )
    return BudgetResponse.from_domain(budget, current_user.id)


@router.get("/{slug}", response_model=BudgetResponse)
def get_budget_endpoint(
    slug: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    budget = require_budget(db, slug, current_user.id)
    return BudgetResponse.from_domain(budget, current_user.id)


@router.post("/{slug}/categories", response_model=CategoryResponse, status_code=201)
def add_category_endpoint(
    slug: str,
    req: CategoryRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    category = add_category(
        db, budget, current_user.id, req.name, req.color, req.plan_monthly
    )
    return CategoryResponse.from_domain(category)


@router.patch("/{slug}/members/{user_id}", response_model=List[MemberResponse])
def change_member_role_endpoint(
    slug: str,
    user_id: int,
    req: ChangeRoleRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    members = change_member_role(db, budget, current_user.id, user_id, req.role)
    return [MemberResponse.from_domain(m) for m in members]


@router.delete("/{slug}/members/{user_id}", response_model=List[MemberResponse])
def remove_member_endpoint(
    slug: str,
    user_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    members = remove_member(db, budget, current_user.id, user_id)
    return [MemberResponse.from_domain(m) for m in members]

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from sharedbudget.domain.models import Recurrence, RuleKind
from sharedbudget.domain.services.budget_service import require_budget
from sharedbudget.domain.services.recurring_service import (
    list_rules,
    run_due_rules,
    set_rule_active,
)
from sharedbudget.presentation.deps import get_current_user, get_db
from sharedbudget.presentation.schemas import CamelModel

router = APIRouter(prefix="/api/budgets/{slug}/recurring", tags=["recurring"])


class RecurringRuleResponse(CamelModel):
    id: int
    kind: RuleKind
    item_name: str
    amount: float
    notes: Optional[str] = None
    category_id: Optional[int] = None
    payer_id: Optional[int] = None
    receiver_id: Optional[int] = None
    recurrence: Recurrence
    interval: int
    time_zone: str
    start_at: datetime
    end_at: Optional[datetime] = None
    next_run_at: datetime
    last_run_at: Optional[datetime] = None
    active: bool

    @staticmethod
    def from_domain(r) -> "RecurringRuleResponse":
        return RecurringRuleResponse(
            id=r.id,
            kind=r.kind,
            item_name=r.item_name,
            amount=float(r.amount),
            notes=r.notes,
            category_id=r.category_id,
            payer_id=r.payer_id,
            receiver_id=r.receiver_id,
            recurrence=r.recurrence,
            interval=r.interval,
            time_zone=r.time_zone,
            start_at=r.start_at,
            end_at=r.end_at,
            next_run_at=r.next_run_at,
            last_run_at=r.last_run_at,
            active=r.active,
        )


class SetActiveRequest(CamelModel):
    active: bool


class RunDuePurchasesResponse(CamelModel):
    created_count: int
    purchase_ids: List[int]


class RunDueIncomeResponse(CamelModel):
    created_count: int
    income_ids: List[int]


@router.get("", response_model=List[RecurringRuleResponse])
def list_rules_endpoint(
    slug: str,
    kind: Optional[RuleKind] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    return [RecurringRuleResponse.from_domain(r) for r in list_rules(db, budget, kind)]


@router.patch("/{rule_id}", response_model=RecurringRuleResponse)
def set_rule_active_endpoint(
    slug: str,
    rule_id: int,
    req: SetActiveRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = require_budget(db, slug, current_user.id)
    return RecurringRuleResponse.from_domain(
        set_rule_active(db, budget, rule_id, req.active)
    )


@router.post("/run-due", response_model=RunDuePurchasesResponse)
def run_due_purchases_endpoint(
    slug: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    budget = require_budget(db, slug, current_user.id)
    result = run_due_rules(db, budget, RuleKind.EXPENSE, current_user.id)
    return RunDuePurchasesResponse(
        created_count=result.created_count, purchase_ids=result.created_ids
    )


@router.post("/run-due-income", response_model=RunDueIncomeResponse)
def run_due_income_endpoint(
    slug: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    budget = require_budget(db, slug, current_user.id)
    result = run_due_rules(db, budget, RuleKind.INCOME, current_user.id)
    return RunDueIncomeResponse(
        created_count=result.created_count, income_ids=result.created_ids
    )

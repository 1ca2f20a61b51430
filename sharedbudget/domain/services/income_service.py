import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from sharedbudget.data.repositories import income_repository as repo
from sharedbudget.data.repositories.budget_repository import BudgetORM
from sharedbudget.domain.errors import ValidationError
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.models import RuleKind
from sharedbudget.domain.services.recurring_service import create_rule

logger = logging.getLogger(__name__)


def create_income(
    db: Session,
    budget: BudgetORM,
    user_id: int,
    item_name: str,
    amount: Decimal,
    received_at: datetime | None = None,
    received_by_id: int | None = None,
    notes: str | None = None,
    recurring: Dict[str, Any] | None = None,
    now: datetime | None = None,
):
    now = now or utcnow()
    # amounts are stored in cents
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("amount must be at least 0.01")
    received_by_id = received_by_id or user_id
    if received_by_id not in budget.member_ids():
        raise ValidationError("receivedById is not a member of this budget")

    received_at = received_at or now
    rule = None
    if recurring:
        rule = create_rule(
            db,
            budget,
            RuleKind.INCOME,
            created_by_id=user_id,
            item_name=item_name,
            amount=amount,
            recurrence=recurring["recurrence"],
            interval=recurring.get("interval", 1),
            start_at=recurring.get("start_at") or received_at,
            end_at=recurring.get("end_at"),
            time_zone=recurring.get("time_zone"),
            now=now,
            receiver_id=received_by_id,
            notes=notes,
        )

    income = repo.create_income(
        db,
        budget_id=budget.id,
        item_name=item_name,
        amount=amount,
        received_at=received_at,
        received_by_id=received_by_id,
        created_by_id=user_id,
        notes=notes,
        recurring_rule_id=rule.id if rule else None,
    )
    db.commit()
    db.refresh(income)
    logger.info("Budget %s: income %s created by %s", budget.id, income.id, user_id)
    return income


def list_incomes(db: Session, budget: BudgetORM, **filters):
    return repo.list_incomes(db, budget.id, **filters)

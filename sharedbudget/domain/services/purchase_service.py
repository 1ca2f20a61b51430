import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from sharedbudget.data.repositories import purchase_repository as repo
from sharedbudget.data.repositories.budget_repository import BudgetORM, get_budget
from sharedbudget.data.repositories.purchase_repository import PurchaseORM
from sharedbudget.domain.errors import ForbiddenError, NotFoundError, ValidationError
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.helpers.shares import allocate_shares
from sharedbudget.domain.models import RuleKind, ShareMode
from sharedbudget.domain.services.budget_service import require_category
from sharedbudget.domain.services.recurring_service import create_rule

logger = logging.getLogger(__name__)


def choose_share_mode(
    member_count: int, shared: bool, has_override: bool
) -> ShareMode:
    if has_override:
        return ShareMode.OVERRIDE
    if not shared:
        return ShareMode.PERSONAL
    if member_count == 2:
        return ShareMode.TWO_PARTY
    return ShareMode.EQUAL


def create_purchase(
    db: Session,
    budget: BudgetORM,
    user_id: int,
    item_name: str,
    category_id: int,
    amount: Decimal,
    paid_at: datetime | None = None,
    paid_by_id: int | None = None,
    shared: bool | None = None,
    split_percent_for_payer: float | None = None,
    shares_override: List[Tuple[int, float]] | None = None,
    notes: str | None = None,
    recurring: Dict[str, Any] | None = None,
    now: datetime | None = None,
) -> PurchaseORM:
    """
    Record a purchase with its shares, and optionally the recurring rule that
    repeats it, in one transaction.
    """
    now = now or utcnow()
    # amounts are stored in cents
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("amount must be at least 0.01")
    require_category(db, budget, category_id)

    paid_by_id = paid_by_id or user_id
    member_ids = budget.member_ids()
    if paid_by_id not in member_ids:
        raise ValidationError("paidById is not a member of this budget")

    if len(member_ids) == 1:
        shared = False
    elif shared is None:
        shared = True

    mode = choose_share_mode(len(member_ids), shared, bool(shares_override))
    shares = allocate_shares(
        mode,
        paid_by_id,
        member_ids,
        split_percent_for_payer=split_percent_for_payer,
        override=shares_override,
    )
    if mode == ShareMode.OVERRIDE:
        shared = any(s.user_id != paid_by_id and s.percent > 0 for s in shares)

    paid_at = paid_at or now
    rule = None
    if recurring:
        rule = create_rule(
            db,
            budget,
            RuleKind.EXPENSE,
            created_by_id=user_id,
            item_name=item_name,
            amount=amount,
            recurrence=recurring["recurrence"],
            interval=recurring.get("interval", 1),
            start_at=recurring.get("start_at") or paid_at,
            end_at=recurring.get("end_at"),
            time_zone=recurring.get("time_zone"),
            now=now,
            category_id=category_id,
            payer_id=paid_by_id,
            notes=notes,
        )

    purchase = repo.create_purchase(
        db,
        budget_id=budget.id,
        category_id=category_id,
        item_name=item_name,
        amount=amount,
        paid_at=paid_at,
        shared=shared,
        paid_by_id=paid_by_id,
        created_by_id=user_id,
        shares=shares,
        notes=notes,
        recurring_rule_id=rule.id if rule else None,
    )
    db.commit()
    db.refresh(purchase)
    logger.info(
        "Budget %s: purchase %s created by %s (%s)",
        budget.id,
        purchase.id,
        user_id,
        mode.value,
    )
    return purchase


def list_purchases(db: Session, budget: BudgetORM, user_id: int, **filters):
    return repo.list_purchases(db, budget.id, user_id, **filters)


def _purchase_with_access(db: Session, purchase_id: int, user_id: int):
    purchase = repo.get_purchase(db, purchase_id)
    if purchase is None:
        raise NotFoundError("Not found")
    budget = get_budget(db, purchase.budget_id)
    if budget is None or budget.role_of(user_id) is None:
        raise NotFoundError("Not found")
    return purchase


def settle_purchase(
    db: Session, purchase_id: int, user_id: int, settled: bool, now: datetime | None = None
) -> PurchaseORM:
    purchase = _purchase_with_access(db, purchase_id, user_id)
    if not (purchase.shared or purchase.paid_by_id == user_id):
        raise ForbiddenError("Forbidden")
    count = repo.set_debtor_shares_settled(db, purchase, settled, now or utcnow())
    db.commit()
    db.refresh(purchase)
    logger.info(
        "Purchase %s: %d share(s) marked settled=%s by %s",
        purchase.id,
        count,
        settled,
        user_id,
    )
    return purchase


def delete_purchase(
    db: Session, purchase_id: int, user_id: int, now: datetime | None = None
) -> None:
    purchase = _purchase_with_access(db, purchase_id, user_id)
    if user_id not in (purchase.paid_by_id, purchase.created_by_id):
        raise ForbiddenError("Not allowed to delete this purchase")
    repo.soft_delete_purchase(db, purchase, now or utcnow())
    db.commit()
    logger.info("Purchase %s deleted by %s", purchase.id, user_id)

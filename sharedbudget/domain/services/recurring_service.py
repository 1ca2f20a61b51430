import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from sharedbudget.data.repositories import recurring_repository as repo
from sharedbudget.data.repositories.budget_repository import BudgetORM
from sharedbudget.data.repositories.income_repository import create_income
from sharedbudget.data.repositories.purchase_repository import create_purchase
from sharedbudget.data.repositories.recurring_repository import RecurringRuleORM
from sharedbudget.domain.errors import BudgetAppError, ConflictError, NotFoundError, ValidationError
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.recurrence import advance, first_run_at, normalize_interval
from sharedbudget.domain.helpers.shares import equal_shares, personal_shares
from sharedbudget.domain.models import Recurrence, RuleKind, RunDueResult

logger = logging.getLogger(__name__)

# upper bound of occurrences one rule may materialize in a single call
MAX_CATCH_UP_RUNS = 1000


def validate_time_zone(name: str | None) -> str:
    name = (name or "UTC").strip()
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown time zone: {name}")
    return name


def create_rule(
    db: Session,
    budget: BudgetORM,
    kind: RuleKind,
    created_by_id: int,
    item_name: str,
    amount: Decimal,
    recurrence: Recurrence,
    interval,
    start_at: datetime,
    now: datetime,
    time_zone: str | None = "UTC",
    end_at: datetime | None = None,
    category_id: int | None = None,
    payer_id: int | None = None,
    receiver_id: int | None = None,
    notes: str | None = None,
) -> RecurringRuleORM:
    """
    Add a rule to the session. The caller owns the transaction.
    """
    interval = normalize_interval(interval)
    recurrence = Recurrence(recurrence)
    if end_at is not None and end_at < start_at:
        raise ValidationError("Recurring endAt must not be before startAt")
    if kind == RuleKind.EXPENSE and (category_id is None or payer_id is None):
        raise ValidationError("Expense rules need a category and a payer")
    if kind == RuleKind.INCOME and receiver_id is None:
        raise ValidationError("Income rules need a receiver")
    try:
        next_run_at = first_run_at(start_at, recurrence, interval, now)
        # a rule must be able to step past its first run
        advance(next_run_at, recurrence, interval)
    except (OverflowError, ValueError):
        raise ValidationError("Recurring interval is too large")
    return repo.create_rule(
        db,
        budget_id=budget.id,
        kind=kind,
        item_name=item_name,
        amount=amount,
        recurrence=recurrence,
        interval=interval,
        start_at=start_at,
        next_run_at=next_run_at,
        created_by_id=created_by_id,
        time_zone=validate_time_zone(time_zone),
        end_at=end_at,
        category_id=category_id,
        payer_id=payer_id,
        receiver_id=receiver_id,
        notes=notes,
    )


def list_rules(db: Session, budget: BudgetORM, kind: RuleKind | None = None):
    return repo.list_rules(db, budget.id, kind)


def set_rule_active(db: Session, budget: BudgetORM, rule_id: int, active: bool):
    rule = repo.get_rule(db, budget.id, rule_id)
    if rule is None:
        raise NotFoundError("Recurring rule not found")
    rule.active = active
    db.commit()
    db.refresh(rule)
    logger.info("Recurring rule %s active=%s", rule.id, active)
    return rule


def pending_occurrences(
    rule: RecurringRuleORM, now: datetime
) -> Tuple[List[datetime], datetime]:
    """
    Every occurrence of the rule that is due at `now`, plus the first one
    that is not.
    """
    occurrences = []
    moment = rule.next_run_at
    while (
        moment <= now
        and (rule.end_at is None or moment <= rule.end_at)
        and len(occurrences) < MAX_CATCH_UP_RUNS
    ):
        occurrences.append(moment)
        try:
            moment = advance(moment, rule.recurrence, rule.interval)
        except (OverflowError, ValueError):
            # past the last representable date, the rule never fires again
            moment = datetime.max
            break
    return occurrences, moment


def _materialize(
    db: Session,
    rule: RecurringRuleORM,
    when: datetime,
    user_id: int,
    roster: List[int],
) -> int:
    if rule.kind == RuleKind.EXPENSE:
        if len(roster) > 1:
            shares = equal_shares(roster)
        else:
            shares = personal_shares(rule.payer_id)
        purchase = create_purchase(
            db,
            budget_id=rule.budget_id,
            category_id=rule.category_id,
            item_name=rule.item_name,
            amount=rule.amount,
            paid_at=when,
            shared=len(roster) > 1,
            paid_by_id=rule.payer_id,
            created_by_id=user_id,
            shares=shares,
            notes=rule.notes,
            recurring_rule_id=rule.id,
        )
        return purchase.id

    income = create_income(
        db,
        budget_id=rule.budget_id,
        item_name=rule.item_name,
        amount=rule.amount,
        received_at=when,
        received_by_id=rule.receiver_id,
        created_by_id=user_id,
        notes=rule.notes,
        recurring_rule_id=rule.id,
    )
    return income.id


def run_due_rules(
    db: Session,
    budget: BudgetORM,
    kind: RuleKind,
    user_id: int,
    now: datetime | None = None,
) -> RunDueResult:
    """
    Materialize every overdue occurrence of the budget's active rules of one
    kind and move the rules forward. All of it commits together or not at all.
    """
    now = now or utcnow()
    result = RunDueResult(kind=kind)
    roster = budget.member_ids()
    try:
        for rule in repo.get_due_rules(db, budget.id, kind, now):
            seen = rule.next_run_at
            occurrences, next_run_at = pending_occurrences(rule, now)
            if not occurrences:
                continue
            for when in occurrences:
                result.created_ids.append(_materialize(db, rule, when, user_id, roster))
            if len(occurrences) == MAX_CATCH_UP_RUNS:
                logger.warning(
                    "Rule %s hit the catch-up limit, next run stays at %s",
                    rule.id,
                    next_run_at,
                )
            updated = repo.advance_rule(
                db, rule.id, seen, last_run_at=occurrences[-1], next_run_at=next_run_at
            )
            if updated != 1:
                raise ConflictError(
                    f"Recurring rule {rule.id} was advanced by another request"
                )
        db.commit()
    except BudgetAppError as e:
        db.rollback()
        logger.warning("run-due for budget %s rolled back: %s", budget.id, e.message)
        raise
    except Exception:
        db.rollback()
        logger.exception("run-due for budget %s failed", budget.id)
        raise

    logger.info(
        "Budget %s: materialized %d %s record(s)",
        budget.id,
        result.created_count,
        kind.value.lower(),
    )
    return result

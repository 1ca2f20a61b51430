from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    or_,
)
from sqlalchemy import Enum as SAEnum

from sharedbudget.data.base import Base
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.models import Recurrence, RuleKind


class RecurringRuleORM(Base):
    __tablename__ = "recurring_rules"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(SAEnum(RuleKind), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    payer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    item_name = Column(String(191), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(Text, nullable=True)
    recurrence = Column(SAEnum(Recurrence), nullable=False)
    interval = Column(Integer, nullable=False, default=1)
    time_zone = Column(String(64), nullable=False, default="UTC")
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=True)
    next_run_at = Column(DateTime, nullable=False, index=True)
    last_run_at = Column(DateTime, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


def create_rule(
    db,
    budget_id: int,
    kind: RuleKind,
    item_name: str,
    amount: Decimal,
    recurrence: Recurrence,
    interval: int,
    start_at: datetime,
    next_run_at: datetime,
    created_by_id: int,
    time_zone: str = "UTC",
    end_at: datetime | None = None,
    category_id: int | None = None,
    payer_id: int | None = None,
    receiver_id: int | None = None,
    notes: str | None = None,
) -> RecurringRuleORM:
    rule = RecurringRuleORM(
        budget_id=budget_id,
        kind=kind,
        category_id=category_id,
        payer_id=payer_id,
        receiver_id=receiver_id,
        item_name=item_name,
        amount=to_money(amount),
        notes=notes,
        recurrence=recurrence,
        interval=interval,
        time_zone=time_zone,
        start_at=start_at,
        end_at=end_at,
        next_run_at=next_run_at,
        active=True,
        created_by_id=created_by_id,
    )
    db.add(rule)
    db.flush()
    return rule


def get_rule(db, budget_id: int, rule_id: int):
    return (
        db.query(RecurringRuleORM)
        .filter(RecurringRuleORM.budget_id == budget_id, RecurringRuleORM.id == rule_id)
        .first()
    )


def list_rules(db, budget_id: int, kind: RuleKind | None = None) -> List[RecurringRuleORM]:
    query = db.query(RecurringRuleORM).filter(RecurringRuleORM.budget_id == budget_id)
    if kind is not None:
        query = query.filter(RecurringRuleORM.kind == kind)
    return query.order_by(RecurringRuleORM.next_run_at, RecurringRuleORM.id).all()


def get_due_rules(db, budget_id: int, kind: RuleKind, now: datetime) -> List[RecurringRuleORM]:
    return (
        db.query(RecurringRuleORM)
        .filter(
            RecurringRuleORM.budget_id == budget_id,
            RecurringRuleORM.active.is_(True),
            RecurringRuleORM.kind == kind,
            RecurringRuleORM.next_run_at <= now,
            or_(RecurringRuleORM.end_at.is_(None), RecurringRuleORM.end_at >= now),
        )
        .order_by(RecurringRuleORM.next_run_at, RecurringRuleORM.id)
        .all()
    )


def advance_rule(
    db,
    rule_id: int,
    seen_next_run_at: datetime,
    last_run_at: datetime,
    next_run_at: datetime,
) -> int:
    """
    Move the rule forward only if nobody else did since we read it.
    Returns the number of updated rows (0 or 1).
    """
    return (
        db.query(RecurringRuleORM)
        .filter(
            RecurringRuleORM.id == rule_id,
            RecurringRuleORM.next_run_at == seen_next_run_at,
        )
        .update(
            {"last_run_at": last_run_at, "next_run_at": next_run_at},
            synchronize_session=False,
        )
    )

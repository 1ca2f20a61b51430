from datetime import datetime
from decimal import Decimal
from typing import Dict

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import relationship

from sharedbudget.data.base import Base
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.money import to_money


class IncomeORM(Base):
    __tablename__ = "incomes"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_name = Column(String(191), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    received_at = Column(DateTime, nullable=False, index=True)
    received_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)
    recurring_rule_id = Column(Integer, ForeignKey("recurring_rules.id"), nullable=True)

    received_by = relationship("UserORM", foreign_keys=[received_by_id])


def _received_at_filters(date_from, date_to) -> list:
    filters = []
    if date_from:
        filters.append(IncomeORM.received_at >= date_from)
    if date_to:
        filters.append(IncomeORM.received_at <= date_to)
    return filters


def create_income(
    db,
    budget_id: int,
    item_name: str,
    amount: Decimal,
    received_at: datetime,
    received_by_id: int,
    created_by_id: int,
    notes: str | None = None,
    recurring_rule_id: int | None = None,
) -> IncomeORM:
    income = IncomeORM(
        budget_id=budget_id,
        item_name=item_name,
        amount=to_money(amount),
        received_at=received_at,
        received_by_id=received_by_id,
        notes=notes,
        created_by_id=created_by_id,
        recurring_rule_id=recurring_rule_id,
    )
    db.add(income)
    db.flush()
    return income


def list_incomes(
    db,
    budget_id: int,
    page: int = 1,
    page_size: int = 10,
    date_from=None,
    date_to=None,
) -> tuple[list[IncomeORM], int]:
    query = db.query(IncomeORM).filter(
        IncomeORM.budget_id == budget_id,
        IncomeORM.deleted_at.is_(None),
        *_received_at_filters(date_from, date_to),
    )
    total = query.count()
    items = (
        query.order_by(IncomeORM.received_at.desc(), IncomeORM.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total


def sum_by_receiver(db, budget_id: int, date_from=None, date_to=None) -> Dict[int, Decimal]:
    rows = (
        db.query(IncomeORM.received_by_id, func.sum(IncomeORM.amount))
        .filter(
            IncomeORM.budget_id == budget_id,
            IncomeORM.deleted_at.is_(None),
            *_received_at_filters(date_from, date_to),
        )
        .group_by(IncomeORM.received_by_id)
        .all()
    )
    return {user_id: to_money(total) for user_id, total in rows}

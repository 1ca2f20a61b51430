from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    and_,
    func,
    or_,
)
from sqlalchemy.orm import relationship

from sharedbudget.data.base import Base
from sharedbudget.data.repositories.budget_repository import CategoryORM
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.models import ShareSpec


class PurchaseORM(Base):
    __tablename__ = "purchases"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    item_name = Column(String(191), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_at = Column(DateTime, nullable=False, index=True)
    shared = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    paid_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    deleted_at = Column(DateTime, nullable=True)
    recurring_rule_id = Column(Integer, ForeignKey("recurring_rules.id"), nullable=True)

    category = relationship("CategoryORM")
    paid_by = relationship("UserORM", foreign_keys=[paid_by_id])
    created_by = relationship("UserORM", foreign_keys=[created_by_id])
    shares = relationship(
        "PurchaseShareORM",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseShareORM.id",
    )


class PurchaseShareORM(Base):
    __tablename__ = "purchase_shares"
    id = Column(Integer, primary_key=True, autoincrement=True)
    purchase_id = Column(
        Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    percent = Column(Integer, nullable=False)
    fixed_amount = Column(Numeric(12, 2), nullable=True)
    is_settled = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime, nullable=True)

    purchase = relationship("PurchaseORM", back_populates="shares")
    user = relationship("UserORM")


SORT_COLUMNS = {
    "paidAt": PurchaseORM.paid_at,
    "amount": PurchaseORM.amount,
    "itemName": PurchaseORM.item_name,
    "category": CategoryORM.name,
}


def _paid_at_filters(date_from: datetime | None, date_to: datetime | None) -> list:
    filters = []
    if date_from:
        filters.append(PurchaseORM.paid_at >= date_from)
    if date_to:
        filters.append(PurchaseORM.paid_at <= date_to)
    return filters


def create_purchase(
    db,
    budget_id: int,
    category_id: int,
    item_name: str,
    amount: Decimal,
    paid_at: datetime,
    shared: bool,
    paid_by_id: int,
    created_by_id: int,
    shares: Iterable[ShareSpec],
    notes: str | None = None,
    recurring_rule_id: int | None = None,
) -> PurchaseORM:
    purchase = PurchaseORM(
        budget_id=budget_id,
        category_id=category_id,
        item_name=item_name,
        amount=to_money(amount),
        paid_at=paid_at,
        shared=shared,
        notes=notes,
        paid_by_id=paid_by_id,
        created_by_id=created_by_id,
        recurring_rule_id=recurring_rule_id,
    )
    for s in shares:
        purchase.shares.append(PurchaseShareORM(user_id=s.user_id, percent=s.percent))
    db.add(purchase)
    db.flush()
    return purchase


def get_purchase(db, purchase_id: int):
    return (
        db.query(PurchaseORM)
        .filter(PurchaseORM.id == purchase_id, PurchaseORM.deleted_at.is_(None))
        .first()
    )


def list_purchases(
    db,
    budget_id: int,
    viewer_id: int,
    page: int = 1,
    page_size: int = 10,
    search: str | None = None,
    category_id: int | None = None,
    shared: bool | None = None,
    paid_by_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sort_by: str = "paidAt",
    sort_dir: str = "desc",
) -> tuple[list[PurchaseORM], int]:
    query = (
        db.query(PurchaseORM)
        .join(CategoryORM, PurchaseORM.category_id == CategoryORM.id)
        .filter(
            PurchaseORM.budget_id == budget_id,
            PurchaseORM.deleted_at.is_(None),
            # shared purchases, plus my own personal ones
            or_(
                PurchaseORM.shared.is_(True),
                and_(PurchaseORM.shared.is_(False), PurchaseORM.paid_by_id == viewer_id),
            ),
        )
    )
    if search:
        query = query.filter(PurchaseORM.item_name.ilike(f"%{search}%"))
    if category_id is not None:
        query = query.filter(PurchaseORM.category_id == category_id)
    if shared is not None:
        query = query.filter(PurchaseORM.shared.is_(shared))
    if paid_by_id is not None:
        query = query.filter(PurchaseORM.paid_by_id == paid_by_id)
    query = query.filter(*_paid_at_filters(date_from, date_to))

    total = query.count()
    column = SORT_COLUMNS.get(sort_by, PurchaseORM.paid_at)
    order = column.asc() if sort_dir == "asc" else column.desc()
    items = (
        query.order_by(order, PurchaseORM.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total


def set_debtor_shares_settled(
    db, purchase: PurchaseORM, settled: bool, now: datetime
) -> int:
    """
    Flip settlement on every share that is owed to the payer
    (not the payer's own, percent above zero).
    """
    updated = (
        db.query(PurchaseShareORM)
        .filter(
            PurchaseShareORM.purchase_id == purchase.id,
            PurchaseShareORM.user_id != purchase.paid_by_id,
            PurchaseShareORM.percent > 0,
        )
        .update(
            {"is_settled": settled, "settled_at": now if settled else None},
            synchronize_session=False,
        )
    )
    db.flush()
    db.expire(purchase, ["shares"])
    return updated


def soft_delete_purchase(db, purchase: PurchaseORM, now: datetime) -> None:
    purchase.deleted_at = now
    db.flush()


def sum_paid_by_payer(
    db, budget_id: int, date_from=None, date_to=None
) -> Dict[int, Decimal]:
    rows = (
        db.query(PurchaseORM.paid_by_id, func.sum(PurchaseORM.amount))
        .filter(
            PurchaseORM.budget_id == budget_id,
            PurchaseORM.deleted_at.is_(None),
            *_paid_at_filters(date_from, date_to),
        )
        .group_by(PurchaseORM.paid_by_id)
        .all()
    )
    return {payer_id: to_money(total) for payer_id, total in rows}


def unsettled_debtor_shares(db, budget_id: int, date_from=None, date_to=None) -> list:
    """
    (debtor_id, payer_id, purchase_amount, percent, fixed_amount) for every
    open share with a positive percent.
    """
    return (
        db.query(
            PurchaseShareORM.user_id,
            PurchaseORM.paid_by_id,
            PurchaseORM.amount,
            PurchaseShareORM.percent,
            PurchaseShareORM.fixed_amount,
        )
        .join(PurchaseORM, PurchaseShareORM.purchase_id == PurchaseORM.id)
        .filter(
            PurchaseORM.budget_id == budget_id,
            PurchaseORM.deleted_at.is_(None),
            PurchaseShareORM.is_settled.is_(False),
            PurchaseShareORM.percent > 0,
            *_paid_at_filters(date_from, date_to),
        )
        .order_by(PurchaseShareORM.id)
        .all()
    )


def sum_by_category(db, budget_id: int, start: datetime, end: datetime) -> Dict[int, Decimal]:
    rows = (
        db.query(PurchaseORM.category_id, func.sum(PurchaseORM.amount))
        .filter(
            PurchaseORM.budget_id == budget_id,
            PurchaseORM.deleted_at.is_(None),
            *_paid_at_filters(start, end),
        )
        .group_by(PurchaseORM.category_id)
        .all()
    )
    return {category_id: to_money(total) for category_id, total in rows}


def purchase_points(
    db, budget_id: int, start: datetime, end: datetime, category_ids: List[int] | None = None
) -> list:
    """(paid_at, amount, category_id) rows, oldest first."""
    query = db.query(
        PurchaseORM.paid_at, PurchaseORM.amount, PurchaseORM.category_id
    ).filter(
        PurchaseORM.budget_id == budget_id,
        PurchaseORM.deleted_at.is_(None),
        *_paid_at_filters(start, end),
    )
    if category_ids:
        query = query.filter(PurchaseORM.category_id.in_(category_ids))
    return query.order_by(PurchaseORM.paid_at.asc()).all()

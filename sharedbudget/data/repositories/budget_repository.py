import re
from typing import List

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
    or_,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from sharedbudget.data.base import Base
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.models import Role


class BudgetORM(Base):
    __tablename__ = "budgets"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(191), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("UserORM")
    members = relationship(
        "BudgetMemberORM",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetMemberORM.id",
    )
    categories = relationship(
        "CategoryORM",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="CategoryORM.sort_order",
    )

    def member_ids(self) -> List[int]:
        """Owner first, then the members in join order."""
        ids = [self.owner_id]
        for m in self.members:
            if m.user_id not in ids:
                ids.append(m.user_id)
        return ids

    def role_of(self, user_id: int) -> Role | None:
        if user_id == self.owner_id:
            return Role.OWNER
        for m in self.members:
            if m.user_id == user_id:
                return m.role
        return None


class BudgetMemberORM(Base):
    __tablename__ = "budget_members"
    id = Column(Integer, primary_key=True, autoincrement=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(SAEnum(Role), nullable=False, default=Role.MEMBER)
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("budget_id", "user_id", name="uq_budget_member"),
    )

    budget = relationship("BudgetORM", back_populates="members")
    user = relationship("UserORM")


class CategoryORM(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String(80), nullable=False)
    slug = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="100, 116, 139")
    plan_monthly = Column(Numeric(12, 2), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("budget_id", "slug", name="uq_category_slug"),
    )

    budget = relationship("BudgetORM", back_populates="categories")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower())
    return slug.strip("-")[:100]


def unique_budget_slug(db, name: str) -> str:
    root = slugify(name) or "budget"
    slug = root
    n = 1
    while db.query(BudgetORM.id).filter(BudgetORM.slug == slug).first():
        n += 1
        slug = f"{root}-{n}"
    return slug


def unique_category_slug(db, budget_id: int, name: str, taken=None) -> str:
    taken = set(taken or ())
    taken.update(
        s
        for (s,) in db.query(CategoryORM.slug)
        .filter(CategoryORM.budget_id == budget_id)
        .all()
    )
    root = slugify(name) or "cat"
    slug = root
    n = 1
    while slug in taken:
        n += 1
        slug = f"{root}-{n}"
    return slug


def create_budget(db, name: str, owner_id: int) -> BudgetORM:
    budget = BudgetORM(name=name, slug=unique_budget_slug(db, name), owner_id=owner_id)
    budget.members.append(BudgetMemberORM(user_id=owner_id, role=Role.OWNER))
    db.add(budget)
    db.flush()
    return budget


def add_category(
    db, budget: BudgetORM, name: str, color: str, plan_monthly=0, sort_order=None
) -> CategoryORM:
    if sort_order is None:
        current = (
            db.query(func.max(CategoryORM.sort_order))
            .filter(CategoryORM.budget_id == budget.id)
            .scalar()
        )
        sort_order = 0 if current is None else current + 1
    category = CategoryORM(
        budget_id=budget.id,
        name=name.strip(),
        slug=unique_category_slug(db, budget.id, name),
        color=color.strip(),
        plan_monthly=plan_monthly,
        sort_order=sort_order,
    )
    db.add(category)
    db.flush()
    return category


def get_budget_by_slug(db, slug: str):
    return db.query(BudgetORM).filter(BudgetORM.slug == slug).first()


def get_budget_for_member(db, slug: str, user_id: int):
    """
    The budget, but only when user_id owns it or is a member of it.
    """
    return (
        db.query(BudgetORM)
        .filter(
            BudgetORM.slug == slug,
            or_(
                BudgetORM.owner_id == user_id,
                BudgetORM.members.any(BudgetMemberORM.user_id == user_id),
            ),
        )
        .first()
    )


def get_budget(db, budget_id: int):
    return db.query(BudgetORM).filter(BudgetORM.id == budget_id).first()


def list_memberships_for_user(db, user_id: int) -> List[BudgetMemberORM]:
    return (
        db.query(BudgetMemberORM)
        .filter(BudgetMemberORM.user_id == user_id)
        .order_by(BudgetMemberORM.joined_at.desc(), BudgetMemberORM.id.desc())
        .all()
    )


def get_member(db, budget_id: int, user_id: int):
    return (
        db.query(BudgetMemberORM)
        .filter(
            BudgetMemberORM.budget_id == budget_id, BudgetMemberORM.user_id == user_id
        )
        .first()
    )


def add_member(db, budget: BudgetORM, user_id: int, role: Role = Role.MEMBER):
    member = BudgetMemberORM(user_id=user_id, role=role)
    budget.members.append(member)
    db.flush()
    return member


def get_category(db, budget_id: int, category_id: int):
    return (
        db.query(CategoryORM)
        .filter(CategoryORM.budget_id == budget_id, CategoryORM.id == category_id)
        .first()
    )

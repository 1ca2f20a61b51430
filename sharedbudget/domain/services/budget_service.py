import logging
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharedbudget.data.repositories import budget_repository as repo
from sharedbudget.data.repositories.budget_repository import BudgetORM
from sharedbudget.data.repositories.purchase_repository import PurchaseORM
from sharedbudget.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.models import Role

logger = logging.getLogger(__name__)


def can_invite(role: Role | None) -> bool:
    return role in (Role.OWNER, Role.ADMIN)


def can_manage_role(role: Role | None, target_is_owner: bool, target_is_admin: bool) -> bool:
    if role == Role.OWNER:
        return not target_is_owner
    if role == Role.ADMIN:
        return not target_is_owner and not target_is_admin
    return False


# removal follows the same rules as role changes
can_remove = can_manage_role


def require_budget(db: Session, slug: str, user_id: int) -> BudgetORM:
    """
    Load a budget the user belongs to. Unknown slugs and foreign budgets look
    the same from the outside.
    """
    budget = repo.get_budget_for_member(db, slug, user_id)
    if budget is None:
        raise NotFoundError("Budget not found")
    return budget


def require_category(db: Session, budget: BudgetORM, category_id: int):
    category = repo.get_category(db, budget.id, category_id)
    if category is None:
        raise ValidationError("Invalid categoryId for this budget")
    return category


def list_budgets(db: Session, user_id: int) -> List[Dict[str, Any]]:
    result = []
    for membership in repo.list_memberships_for_user(db, user_id):
        budget = membership.budget
        purchases = (
            db.query(PurchaseORM)
            .filter(PurchaseORM.budget_id == budget.id, PurchaseORM.deleted_at.is_(None))
            .count()
        )
        result.append(
            {
                "budget": budget,
                "role": membership.role,
                "joined_at": membership.joined_at,
                "counts": {
                    "members": len(budget.members),
                    "categories": len(budget.categories),
                    "purchases": purchases,
                },
            }
        )
    return result


def create_budget(
    db: Session, user_id: int, name: str, categories: List[Dict[str, Any]] | None = None
) -> BudgetORM:
    name = name.strip()
    if not name:
        raise ValidationError("Budget name must not be empty")
    try:
        budget = repo.create_budget(db, name, user_id)
        for i, c in enumerate(categories or []):
            repo.add_category(
                db,
                budget,
                name=c["name"],
                color=c["color"],
                plan_monthly=to_money(c.get("plan_monthly", 0)),
                sort_order=i,
            )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A budget with this slug already exists")
    db.refresh(budget)
    logger.info("User %s created budget %s (%s)", user_id, budget.id, budget.slug)
    return budget


def add_category(
    db: Session, budget: BudgetORM, user_id: int, name: str, color: str, plan_monthly=0
):
    if not can_invite(budget.role_of(user_id)):
        raise ForbiddenError("Not allowed to add categories")
    if not name.strip():
        raise ValidationError("Category name must not be empty")
    category = repo.add_category(
        db, budget, name=name, color=color, plan_monthly=to_money(plan_monthly)
    )
    db.commit()
    db.refresh(category)
    return category


def _target_member(budget: BudgetORM, target_id: int):
    target_is_owner = budget.owner_id == target_id
    member = next((m for m in budget.members if m.user_id == target_id), None)
    if member is None and not target_is_owner:
        raise NotFoundError("Member not found")
    return member, target_is_owner


def change_member_role(
    db: Session, budget: BudgetORM, actor_id: int, target_id: int, role: Role
):
    if role == Role.OWNER:
        raise ValidationError("Cannot grant the owner role")
    member, target_is_owner = _target_member(budget, target_id)
    if target_is_owner:
        raise ValidationError("Cannot change owner role")
    target_is_admin = member.role == Role.ADMIN
    if not can_manage_role(budget.role_of(actor_id), target_is_owner, target_is_admin):
        raise ForbiddenError("Not allowed to change this role")
    member.role = role
    db.commit()
    db.refresh(budget)
    logger.info("Budget %s: user %s is now %s", budget.id, target_id, role.value)
    return budget.members


def remove_member(db: Session, budget: BudgetORM, actor_id: int, target_id: int):
    member, target_is_owner = _target_member(budget, target_id)
    if target_is_owner:
        raise ValidationError("Cannot remove the owner")
    target_is_admin = member.role == Role.ADMIN
    if not can_remove(budget.role_of(actor_id), target_is_owner, target_is_admin):
        raise ForbiddenError("Not allowed to remove this member")
    budget.members.remove(member)
    db.commit()
    db.refresh(budget)
    logger.info("Budget %s: removed user %s", budget.id, target_id)
    return budget.members

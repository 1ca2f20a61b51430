import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from sharedbudget.data.repositories import invite_repository as repo
from sharedbudget.data.repositories.budget_repository import BudgetORM, add_member
from sharedbudget.data.repositories.user_repository import UserORM, get_user_by_login
from sharedbudget.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.models import InviteStatus, NotificationType
from sharedbudget.domain.services.auth_service import EMAIL_RE
from sharedbudget.domain.services.budget_service import can_invite

logger = logging.getLogger(__name__)


def create_invite(
    db: Session,
    budget: BudgetORM,
    actor: UserORM,
    to: str,
    expiry_days: int = 14,
    now: datetime | None = None,
):
    """
    Invite a user by username or email. Known users get an INVITE
    notification; unknown email addresses get an email-only invite.
    """
    now = now or utcnow()
    if not can_invite(budget.role_of(actor.id)):
        raise ForbiddenError("Only owners and admins can invite")
    to = (to or "").strip()
    if not to:
        raise ValidationError("Invite target must not be empty")

    target = get_user_by_login(db, to)
    if target is None and not EMAIL_RE.match(to):
        raise NotFoundError("User not found")

    if target is not None:
        if budget.role_of(target.id) is not None:
            raise ConflictError("User is already a member")
        pending = repo.find_pending_invite(db, budget.id, user_id=target.id)
    else:
        pending = repo.find_pending_invite(db, budget.id, email=to.lower())
    if pending is not None:
        raise ConflictError("An invite is already pending")

    invite = repo.create_invite(
        db,
        budget_id=budget.id,
        invited_by_id=actor.id,
        expires_at=now + timedelta(days=expiry_days),
        invited_user_id=target.id if target else None,
        invited_email=None if target else to.lower(),
    )
    if target is not None:
        repo.create_notification(
            db,
            user_id=target.id,
            type_=NotificationType.INVITE,
            invite_id=invite.id,
            data={
                "inviteId": invite.id,
                "budgetSlug": budget.slug,
                "budgetName": budget.name,
                "ownerUsername": actor.username,
            },
        )
    db.commit()
    db.refresh(invite)
    logger.info("Budget %s: invite %s created by %s", budget.id, invite.id, actor.id)
    return invite


def _pending_invite_for(db: Session, invite_id: int, user: UserORM, now: datetime):
    invite = repo.get_invite(db, invite_id)
    if invite is None or invite.status != InviteStatus.PENDING:
        raise NotFoundError("Invite not found")
    if invite.expires_at < now:
        raise NotFoundError("Invite expired")
    addressed_to_me = invite.invited_user_id == user.id or (
        invite.invited_user_id is None
        and (invite.invited_email or "").lower() == user.email.lower()
    )
    if not addressed_to_me:
        raise ForbiddenError("This invite is not for you")
    return invite


def accept_invite(db: Session, invite_id: int, user: UserORM, now: datetime | None = None):
    now = now or utcnow()
    invite = _pending_invite_for(db, invite_id, user, now)
    budget = invite.budget
    if budget.role_of(user.id) is None:
        add_member(db, budget, user.id)
    invite.status = InviteStatus.ACCEPTED
    invite.invited_user_id = user.id
    repo.mark_invite_notifications_read(db, user.id, invite.id, now)
    db.commit()
    logger.info("Invite %s accepted by %s", invite.id, user.id)
    return budget


def decline_invite(db: Session, invite_id: int, user: UserORM, now: datetime | None = None):
    now = now or utcnow()
    invite = _pending_invite_for(db, invite_id, user, now)
    invite.status = InviteStatus.REVOKED
    repo.mark_invite_notifications_read(db, user.id, invite.id, now)
    db.commit()
    logger.info("Invite %s declined by %s", invite.id, user.id)
    return invite


def list_notifications(
    db: Session, user_id: int, only_unread: bool = False, page: int = 1, page_size: int = 20
):
    return repo.list_notifications(db, user_id, only_unread, page, page_size)


def mark_notification_read(
    db: Session, notification_id: int, user_id: int, now: datetime | None = None
):
    notification = repo.get_notification(db, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    if notification.read_at is None:
        notification.read_at = now or utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def unread_count(db: Session, user_id: int) -> int:
    return repo.count_unread(db, user_id)

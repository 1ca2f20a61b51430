from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship

from sharedbudget.data.base import Base
from sharedbudget.domain.helpers.dates import utcnow
from sharedbudget.domain.models import InviteStatus, NotificationType


class BudgetInviteORM(Base):
    __tablename__ = "budget_invites"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    budget_id = Column(
        Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    invited_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    invited_email = Column(String(191), nullable=True)
    invited_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(SAEnum(InviteStatus), nullable=False, default=InviteStatus.PENDING)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    budget = relationship("BudgetORM")


class NotificationORM(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(SAEnum(NotificationType), nullable=False)
    invite_id = Column(
        Integer, ForeignKey("budget_invites.id", ondelete="SET NULL"), nullable=True
    )
    data = Column(JSON, nullable=False, default=dict)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


def find_pending_invite(db, budget_id: int, user_id=None, email=None):
    query = db.query(BudgetInviteORM).filter(
        BudgetInviteORM.budget_id == budget_id,
        BudgetInviteORM.status == InviteStatus.PENDING,
    )
    if user_id is not None:
        query = query.filter(BudgetInviteORM.invited_user_id == user_id)
    else:
        query = query.filter(BudgetInviteORM.invited_email == email)
    return query.first()


def create_invite(
    db,
    budget_id: int,
    invited_by_id: int,
    expires_at: datetime,
    invited_user_id=None,
    invited_email=None,
) -> BudgetInviteORM:
    invite = BudgetInviteORM(
        budget_id=budget_id,
        invited_user_id=invited_user_id,
        invited_email=invited_email,
        invited_by_id=invited_by_id,
        status=InviteStatus.PENDING,
        expires_at=expires_at,
    )
    db.add(invite)
    db.flush()
    return invite


def get_invite(db, invite_id: int):
    return db.query(BudgetInviteORM).filter(BudgetInviteORM.id == invite_id).first()


def create_notification(
    db, user_id: int, type_: NotificationType, data: dict, invite_id=None
) -> NotificationORM:
    notification = NotificationORM(
        user_id=user_id, type=type_, data=data, invite_id=invite_id
    )
    db.add(notification)
    db.flush()
    return notification


def mark_invite_notifications_read(db, user_id: int, invite_id: int, now: datetime) -> int:
    return (
        db.query(NotificationORM)
        .filter(
            NotificationORM.user_id == user_id,
            NotificationORM.type == NotificationType.INVITE,
            NotificationORM.invite_id == invite_id,
            NotificationORM.read_at.is_(None),
        )
        .update({"read_at": now}, synchronize_session=False)
    )


def list_notifications(
    db, user_id: int, only_unread: bool = False, page: int = 1, page_size: int = 20
) -> tuple[list[NotificationORM], int]:
    query = db.query(NotificationORM).filter(NotificationORM.user_id == user_id)
    if only_unread:
        query = query.filter(NotificationORM.read_at.is_(None))
    total = query.count()
    items = (
        query.order_by(NotificationORM.created_at.desc(), NotificationORM.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return items, total


def get_notification(db, notification_id: int):
    return (
        db.query(NotificationORM).filter(NotificationORM.id == notification_id).first()
    )


def count_unread(db, user_id: int) -> int:
    return (
        db.query(NotificationORM)
        .filter(NotificationORM.user_id == user_id, NotificationORM.read_at.is_(None))
        .count()
    )

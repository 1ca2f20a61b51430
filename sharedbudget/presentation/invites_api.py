from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from sqlalchemy.orm import Session

from sharedbudget.config import Settings
from sharedbudget.domain.models import InviteStatus, NotificationType
from sharedbudget.domain.services.budget_service import require_budget
from sharedbudget.domain.services.invite_service import (
    accept_invite,
    create_invite,
    decline_invite,
    list_notifications,
    mark_notification_read,
    unread_count,
)
from sharedbudget.presentation.deps import get_current_user, get_db, get_settings
from sharedbudget.presentation.schemas import CamelModel, Page

router = APIRouter(prefix="/api", tags=["invites"])


class CreateInviteRequest(CamelModel):
    to: str = Field(..., min_length=1, description="Username or email")


class InviteResponse(CamelModel):
    id: int
    budget_id: int
    invited_user_id: Optional[int] = None
    invited_email: Optional[str] = None
    status: InviteStatus
    expires_at: datetime

    @staticmethod
    def from_domain(i) -> "InviteResponse":
        return InviteResponse(
            id=i.id,
            budget_id=i.budget_id,
            invited_user_id=i.invited_user_id,
            invited_email=i.invited_email,
            status=i.status,
            expires_at=i.expires_at,
        )


class AcceptedBudget(CamelModel):
    id: int
    slug: str
    name: str


class NotificationResponse(CamelModel):
    id: int
    type: NotificationType
    invite_id: Optional[int] = None
    data: Dict[str, Any]
    read_at: Optional[datetime] = None
    created_at: datetime

    @staticmethod
    def from_domain(n) -> "NotificationResponse":
        return NotificationResponse(
            id=n.id,
            type=n.type,
            invite_id=n.invite_id,
            data=n.data or {},
            read_at=n.read_at,
            created_at=n.created_at,
        )


class PaginatedNotificationsResponse(Page):
    items: List[NotificationResponse]


@router.post(
    "/budgets/{slug}/invites", response_model=InviteResponse, status_code=201
)
def create_invite_endpoint(
    slug: str,
    req: CreateInviteRequest,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    budget = require_budget(db, slug, current_user.id)
    invite = create_invite(
        db, budget, current_user, req.to, expiry_days=settings.invite_expiry_days
    )
    return InviteResponse.from_domain(invite)


@router.post("/invites/{invite_id}/accept", response_model=AcceptedBudget)
def accept_invite_endpoint(
    invite_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    budget = accept_invite(db, invite_id, current_user)
    return AcceptedBudget(id=budget.id, slug=budget.slug, name=budget.name)


@router.post("/invites/{invite_id}/decline", response_model=InviteResponse)
def decline_invite_endpoint(
    invite_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return InviteResponse.from_domain(decline_invite(db, invite_id, current_user))


@router.get("/notifications", response_model=PaginatedNotificationsResponse)
def list_notifications_endpoint(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    only_unread: bool = Query(False, alias="onlyUnread"),
):
    items, total = list_notifications(db, current_user.id, only_unread, page, page_size)
    return PaginatedNotificationsResponse(
        items=[NotificationResponse.from_domain(n) for n in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/notifications/unread-count")
def unread_count_endpoint(
    db: Session = Depends(get_db), current_user=Depends(get_current_user)
):
    return {"count": unread_count(db, current_user.id)}


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read_endpoint(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user),
):
    return NotificationResponse.from_domain(
        mark_notification_read(db, notification_id, current_user.id)
    )

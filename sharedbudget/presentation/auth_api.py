import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import Field
from sqlalchemy.orm import Session

from sharedbudget.config import Settings
from sharedbudget.domain.services.auth_service import (
    authenticate_user,
    create_access_token,
    register_user,
)
from sharedbudget.presentation.deps import (
    TOKEN_COOKIE,
    get_current_user,
    get_db,
    get_settings,
)
from sharedbudget.presentation.schemas import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class UserCreateRequest(CamelModel):
    username: str
    email: str
    password: str
    display_name: Optional[str] = Field(None, max_length=80)


class LoginRequest(CamelModel):
    username_or_email: str
    password: str


class UserResponse(CamelModel):
    id: int
    username: str
    email: str
    display_name: Optional[str] = None

    @staticmethod
    def from_domain(u) -> "UserResponse":
        return UserResponse(
            id=u.id, username=u.username, email=u.email, display_name=u.display_name
        )


def _issue_token(user, settings: Settings) -> str:
    return create_access_token(
        data={"sub": str(user.id)},
        secret_key=settings.secret_key,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
    )


def _login_failed():
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect username or password",
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/register", response_model=UserResponse, status_code=201)
def register_user_endpoint(req: UserCreateRequest, db: Session = Depends(get_db)):
    user = register_user(db, req.username, req.email, req.password, req.display_name)
    return UserResponse.from_domain(user)


@router.post("/login")
def login_endpoint(
    req: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = authenticate_user(db, req.username_or_email, req.password)
    if not user:
        raise _login_failed()
    access_token = _issue_token(user, settings)
    response.set_cookie(
        TOKEN_COOKIE,
        access_token,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        max_age=settings.access_token_expire_minutes * 60,
    )
    logger.info("User %s logged in", user.id)
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": UserResponse.from_domain(user),
    }


@router.post("/token")
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise _login_failed()
    return {"access_token": _issue_token(user, settings), "token_type": "bearer"}


@router.post("/logout", status_code=204)
def logout_endpoint(settings: Settings = Depends(get_settings)):
    response = Response(status_code=204)
    response.delete_cookie(
        TOKEN_COOKIE, httponly=True, samesite="lax", secure=settings.cookie_secure
    )
    return response


@router.get("/me", response_model=UserResponse)
def read_users_me(current_user=Depends(get_current_user)):
    return UserResponse.from_domain(current_user)

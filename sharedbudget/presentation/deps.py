from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from sharedbudget.config import Settings
from sharedbudget.domain.services.auth_service import user_from_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

TOKEN_COOKIE = "token"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    request: Request,
    bearer: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """The session cookie wins over an Authorization header."""
    token = request.cookies.get(TOKEN_COOKIE) or bearer
    return user_from_token(db, token, settings.secret_key)

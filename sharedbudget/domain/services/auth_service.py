import logging
import re
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sharedbudget.data.repositories.user_repository import (
    create_user,
    get_user,
    get_user_by_email,
    get_user_by_login,
    get_user_by_username,
)
from sharedbudget.domain.errors import (
    AuthenticationError,
    ConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def validate_and_normalize_username(username: str) -> str:
    username = username.strip().lower()
    if len(username) < 3:
        raise ValidationError("Username must be at least 3 characters")
    if len(username) >= 32:
        raise ValidationError("Username must be less than 32 characters")
    if not re.fullmatch(r"[a-z0-9\-]+", username):
        raise ValidationError("Username must only contain letters, numbers, and '-'")
    return username


def validate_email(email: str) -> str:
    email = email.strip()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def validate_password(password: str) -> None:
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")


def register_user(
    db: Session, username: str, email: str, password: str, display_name=None
):
    username = validate_and_normalize_username(username)
    email = validate_email(email)
    validate_password(password)
    if get_user_by_username(db, username):
        raise ConflictError("username already taken")
    if get_user_by_email(db, email):
        raise ConflictError("email already taken")
    try:
        user = create_user(
            db, username, email, get_password_hash(password), display_name
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("username or email already taken")
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate_user(db: Session, username_or_email: str, password: str):
    user = get_user_by_login(db, username_or_email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def create_access_token(
    data: dict, secret_key: str, expires_delta: timedelta | None = None
):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


def user_from_token(db: Session, token: str | None, secret_key: str):
    if not token:
        raise AuthenticationError("Not authenticated")
    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise AuthenticationError("Invalid token")
    user = get_user(db, user_id)
    if user is None:
        raise AuthenticationError("Invalid token user")
    return user

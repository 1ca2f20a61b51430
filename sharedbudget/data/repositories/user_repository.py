from sqlalchemy import Column, DateTime, Integer, String, func, or_

from sharedbudget.data.base import Base
from sharedbudget.domain.helpers.dates import utcnow


class UserORM(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(32), unique=True, index=True, nullable=False)
    email = Column(String(191), unique=True, index=True, nullable=False)
    display_name = Column(String(80), nullable=True)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def name(self) -> str:
        return self.display_name or self.username


def get_user_by_username(db, username: str):
    return db.query(UserORM).filter(UserORM.username == username).first()


def get_user_by_email(db, email: str):
    return (
        db.query(UserORM).filter(func.lower(UserORM.email) == email.lower()).first()
    )


def get_user_by_login(db, username_or_email: str):
    value = username_or_email.strip()
    return (
        db.query(UserORM)
        .filter(
            or_(
                UserORM.username == value.lower(),
                func.lower(UserORM.email) == value.lower(),
            )
        )
        .first()
    )


def create_user(
    db, username: str, email: str, hashed_password: str, display_name=None
):
    db_user = UserORM(
        username=username,
        email=email,
        hashed_password=hashed_password,
        display_name=display_name,
    )
    db.add(db_user)
    db.flush()
    return db_user


def get_user(db, user_id: int):
    return db.query(UserORM).filter(UserORM.id == user_id).first()


def get_users(db, user_ids) -> dict:
    ids = list(user_ids)
    if not ids:
        return {}
    return {u.id: u for u in db.query(UserORM).filter(UserORM.id.in_(ids)).all()}

import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fabricpos.config import settings
from fabricpos.exceptions import AppError
from fabricpos.models import PasswordReset, User
from fabricpos.security import get_password_hash, verify_password


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.lower()).first()


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.username) == username.lower()).first()


def get_user_by_login(db: Session, login: str) -> Optional[User]:
    login = login.strip().lower()
    return db.query(User).filter(
        or_(func.lower(User.email) == login, func.lower(User.username) == login)
    ).first()


def ensure_unique(db: Session, email: Optional[str] = None, username: Optional[str] = None, exclude_id: int = None):
    if email:
        existing = get_user_by_email(db, email)
        if existing and existing.id != exclude_id:
            raise AppError.conflict("A user with this email already exists")
    if username:
        existing = get_user_by_username(db, username)
        if existing and existing.id != exclude_id:
            raise AppError.conflict("This username is already taken")


def create_user(db: Session, *, email: str, username: str, password: str, first_name: str,
                last_name: Optional[str] = None, phone: Optional[str] = None) -> User:
    ensure_unique(db, email=email, username=username)
    user = User(
        email=email.lower(),
        username=username,
        password_hash=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def authenticate(db: Session, login: str, password: str) -> Optional[User]:
    user = get_user_by_login(db, login)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def set_password(user: User, new_password: str) -> None:
    user.password_hash = get_password_hash(new_password)


# --- Password reset tokens ---
def create_password_reset(db: Session, user: User) -> PasswordReset:
    # Earlier unused tokens stop working as soon as a new one is issued
    db.query(PasswordReset).filter(
        PasswordReset.user_id == user.id, PasswordReset.used == False
    ).update({PasswordReset.used: True}, synchronize_session=False)

    reset = PasswordReset(
        user_id=user.id,
        token=secrets.token_hex(32),
        expires_at=datetime.utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS),
        used=False,
    )
    db.add(reset)
    db.flush()
    return reset


def get_valid_password_reset(db: Session, token: str) -> PasswordReset:
    reset = db.query(PasswordReset).filter(PasswordReset.token == token).first()
    if not reset:
        raise AppError.not_found("Reset token")
    if reset.used:
        raise AppError.bad_request("This reset link has already been used")
    if reset.expires_at < datetime.utcnow():
        raise AppError.bad_request("This reset link has expired")
    return reset

# fabricpos/routers/auth.py
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.orm import Session

from fabricpos.config import settings
from fabricpos.crud import organizations as org_crud
from fabricpos.crud import users as user_crud
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import User
from fabricpos.schemas.auth import (
    AcceptInvitationRequest, AuthResponse, ChangePasswordRequest, ForgotPasswordRequest,
    InvitationInfo, LoginRequest, RefreshRequest, RegisterRequest, ResetPasswordRequest,
    ResetTokenInfo, Token, TokenPair,
)
from fabricpos.schemas.common import Envelope, ok
from fabricpos.schemas.users import ProfileUpdate, UserRead
from fabricpos.security import (
    REFRESH, create_access_token, create_token_pair, decode_token, get_current_user, get_optional_user,
    verify_password, token_claims,
)
from fabricpos.utils.mailer import email_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_payload(db: Session, user: User) -> dict:
    workspaces = [org_crud.workspace_payload(db, org, role) for org, role in org_crud.user_workspaces(db, user)]
    return {"user": user, "tokens": create_token_pair(user), "workspaces": workspaces}


# -----------------------------
# 1. Registration
# -----------------------------
@router.post("/register", response_model=Envelope[AuthResponse], status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    user = user_crud.create_user(
        db,
        email=data.email,
        username=data.username,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
    )
    workspace_name = data.organization_name or f"{data.first_name}'s Workspace"
    org = org_crud.create_workspace(db, user, workspace_name)
    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} registered with workspace {org.id}")

    email_service.send_welcome_email(user, org)
    return ok(_auth_payload(db, user), "Registration successful")


# -----------------------------
# 2. Login
# -----------------------------
@router.post("/login", response_model=Envelope[AuthResponse])
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = user_crud.authenticate(db, data.email, data.password)
    if not user:
        logger.warning(f"Failed login for {data.email}")
        raise AppError.unauthorized("Invalid credentials")

    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return ok(_auth_payload(db, user), "Login successful")


@router.post("/token", response_model=Token)
def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """OAuth2 password flow for the interactive docs; username may be the email."""
    user = user_crud.authenticate(db, form_data.username, form_data.password)
    if not user:
        raise AppError.unauthorized("Invalid credentials")
    user.last_login_at = datetime.utcnow()
    db.commit()
    return {"access_token": create_access_token(token_claims(user)), "token_type": "bearer"}


@router.post("/refresh", response_model=Envelope[TokenPair])
def refresh_tokens(data: RefreshRequest, db: Session = Depends(get_db)):
    try:
        payload = decode_token(data.refresh_token, REFRESH)
        user_id = int(payload["sub"])
    except (JWTError, ValueError):
        raise AppError.unauthorized("Invalid or expired refresh token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise AppError.unauthorized("User not found or inactive")
    return ok(create_token_pair(user), "Token refreshed")


@router.post("/logout", response_model=Envelope[None])
def logout(current_user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards them
    logger.info(f"User {current_user.id} logged out")
    return ok(None, "Logged out successfully")


# -----------------------------
# 3. Profile
# -----------------------------
@router.get("/verify", response_model=Envelope[UserRead])
def verify(current_user: User = Depends(get_current_user)):
    return ok(current_user, "Token is valid")


@router.get("/profile", response_model=Envelope[UserRead])
def read_profile(current_user: User = Depends(get_current_user)):
    return ok(current_user)


@router.put("/profile", response_model=Envelope[UserRead])
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("username"):
        user_crud.ensure_unique(db, username=update_data["username"], exclude_id=current_user.id)
    if "first_name" in update_data and not update_data["first_name"]:
        raise AppError.bad_request("First name cannot be empty")

    for field, value in update_data.items():
        if value is not None or field in ("last_name", "phone"):
            setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return ok(current_user, "Profile updated")


@router.post("/change-password", response_model=Envelope[None])
def change_password(
    data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(data.current_password, current_user.password_hash):
        raise AppError.bad_request("Current password is incorrect")
    if data.current_password == data.new_password:
        raise AppError.bad_request("New password must be different from the current one")
    user_crud.set_password(current_user, data.new_password)
    db.commit()
    logger.info(f"User {current_user.id} changed password")
    return ok(None, "Password changed successfully")


# -----------------------------
# 4. Password recovery
# -----------------------------
@router.post("/forgot-password", response_model=Envelope[dict])
def forgot_password(data: ForgotPasswordRequest, db: Session = Depends(get_db)):
    message = "If an account exists for this email, a reset link has been sent"
    user = user_crud.get_user_by_email(db, data.email)
    if not user or not user.is_active:
        return ok({}, message)

    reset = user_crud.create_password_reset(db, user)
    db.commit()
    link = f"{settings.FRONTEND_URL}/reset-password/{reset.token}"
    email_service.send_password_reset_email(user, link)

    payload = {} if settings.is_production else {"reset_link": link}
    return ok(payload, message)


@router.get("/reset-password/verify/{token}", response_model=Envelope[ResetTokenInfo])
def verify_reset_token(token: str, db: Session = Depends(get_db)):
    reset = user_crud.get_valid_password_reset(db, token)
    return ok({"valid": True, "email": reset.user.email, "expires_at": reset.expires_at})


@router.post("/reset-password", response_model=Envelope[None])
def reset_password(data: ResetPasswordRequest, db: Session = Depends(get_db)):
    reset = user_crud.get_valid_password_reset(db, data.token)
    user_crud.set_password(reset.user, data.new_password)
    reset.used = True
    db.commit()
    logger.info(f"Password reset completed for user {reset.user_id}")
    return ok(None, "Password has been reset")


# -----------------------------
# 5. Invitations
# -----------------------------
@router.get("/invite/verify/{token}", response_model=Envelope[InvitationInfo])
def verify_invitation(token: str, db: Session = Depends(get_db)):
    invitation = org_crud.get_valid_invitation(db, token)
    return ok({
        "email": invitation.email,
        "role": invitation.role,
        "organization_id": invitation.organization_id,
        "organization_name": invitation.organization.name,
        "expires_at": invitation.expires_at,
        "user_exists": user_crud.get_user_by_email(db, invitation.email) is not None,
    })


@router.post("/accept-invitation", response_model=Envelope[AuthResponse])
def accept_invitation(
    data: AcceptInvitationRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_optional_user),
):
    invitation = org_crud.get_valid_invitation(db, data.token)

    if current_user is not None:
        if current_user.email.lower() != invitation.email.lower():
            raise AppError.forbidden("This invitation was sent to a different email address")
        user = current_user
    else:
        if user_crud.get_user_by_email(db, invitation.email):
            raise AppError.unauthorized("Please log in to accept this invitation")
        missing = [f for f in ("username", "password", "first_name") if not getattr(data, f)]
        if missing:
            raise AppError.bad_request(f"Missing fields for new account: {', '.join(missing)}")
        user = user_crud.create_user(
            db,
            email=invitation.email,
            username=data.username,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
        )

    org_crud.add_member(db, invitation.organization_id, user.id, invitation.role)
    invitation.accepted_at = datetime.utcnow()
    user.last_login_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} joined workspace {invitation.organization_id} as {invitation.role.value}")
    return ok(_auth_payload(db, user), "Invitation accepted")

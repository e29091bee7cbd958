import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from fabricpos.config import settings
from fabricpos.database import get_db
from fabricpos.models import MemberRole, Organization, OrganizationMember, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

ACCESS = "access"
REFRESH = "refresh"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def token_claims(user: User) -> dict:
    return {"sub": str(user.id), "email": user.email, "username": user.username}


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": ACCESS})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    to_encode.update({"exp": expire, "type": REFRESH})
    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)


def create_token_pair(user: User) -> dict:
    claims = token_claims(user)
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


def decode_token(token: str, kind: str = ACCESS) -> dict:
    """Returns the payload or raises JWTError (bad signature, expired, wrong kind)."""
    key = settings.SECRET_KEY if kind == ACCESS else settings.REFRESH_SECRET_KEY
    payload = jwt.decode(token, key, algorithms=[settings.ALGORITHM])
    if payload.get("type") != kind or payload.get("sub") is None:
        raise JWTError("Invalid token type")
    return payload


def credentials_exception(detail: str = "Invalid or expired token"):
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = decode_token(token, ACCESS)
        user_id = int(payload["sub"])
    except (JWTError, ValueError):
        raise credentials_exception()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise credentials_exception("User not found")
    if not user.is_active:
        raise credentials_exception("User account is deactivated")
    return user


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    if not token:
        raise credentials_exception("Access token required")
    return _user_from_token(db, token)


async def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    if not token:
        return None
    try:
        return _user_from_token(db, token)
    except HTTPException:
        logger.debug("Ignoring invalid token on optional-auth route")
        return None


# --- Workspace context ---
@dataclass
class Workspace:
    organization: Organization
    user: User
    role: MemberRole

    @property
    def id(self) -> int:
        return self.organization.id

    @property
    def is_admin(self) -> bool:
        return self.role in (MemberRole.OWNER, MemberRole.ADMIN)


def get_workspace(
    x_organization_id: Optional[int] = Header(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Workspace:
    """Resolves the workspace from X-Organization-Id, or the caller's earliest membership."""
    query = (
        db.query(OrganizationMember)
        .join(Organization)
        .filter(OrganizationMember.user_id == current_user.id, Organization.is_active == True)
    )
    if x_organization_id is not None:
        member = query.filter(OrganizationMember.organization_id == x_organization_id).first()
        if member is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this workspace")
    else:
        member = query.order_by(OrganizationMember.joined_at, OrganizationMember.id).first()
        if member is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Organization context required")

    return Workspace(organization=member.organization, user=current_user, role=member.role)


def require_roles(*roles: MemberRole):
    allowed = set(roles)

    def checker(workspace: Workspace = Depends(get_workspace)) -> Workspace:
        if workspace.role not in allowed:
            logger.warning(
                f"User {workspace.user.id} with role {workspace.role.value} denied; needs {sorted(r.value for r in allowed)}"
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return workspace

    return checker


require_admin = require_roles(MemberRole.OWNER, MemberRole.ADMIN)
require_owner = require_roles(MemberRole.OWNER)


def check_include_inactive(workspace: Workspace, include_inactive: bool) -> bool:
    """Soft-deleted records are listed for ADMIN and OWNER only."""
    if include_inactive and not workspace.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return include_inactive

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from fabricpos.models import MemberRole
from fabricpos.schemas.common import APIModel, Password, Username
from fabricpos.schemas.organization import WorkspaceRead
from fabricpos.schemas.users import UserRead


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPair(Token):
    refresh_token: str
    expires_in: int


class RegisterRequest(APIModel):
    email: EmailStr
    username: Username
    password: Password
    first_name: str = Field(min_length=1, max_length=50)
    last_name: Optional[str] = None
    phone: Optional[str] = None
    organization_name: Optional[str] = None


class LoginRequest(APIModel):
    email: EmailStr
    password: str


class RefreshRequest(APIModel):
    refresh_token: str


class ChangePasswordRequest(APIModel):
    current_password: str
    new_password: Password


class ForgotPasswordRequest(APIModel):
    email: EmailStr


class ResetPasswordRequest(APIModel):
    token: str
    new_password: Password


class AcceptInvitationRequest(APIModel):
    """New users send their account fields; existing users only the token."""
    token: str
    username: Optional[Username] = None
    password: Optional[Password] = None
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = None


class AuthResponse(BaseModel):
    user: UserRead
    tokens: TokenPair
    workspaces: List[WorkspaceRead] = []


class InvitationInfo(BaseModel):
    email: EmailStr
    role: MemberRole
    organization_id: int
    organization_name: str
    expires_at: datetime
    user_exists: bool


class ResetTokenInfo(BaseModel):
    valid: bool
    email: EmailStr
    expires_at: datetime

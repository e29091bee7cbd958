from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from fabricpos.models import MemberRole
from fabricpos.schemas.common import APIModel


class WorkspaceCreate(APIModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Workspace name is required")
        return value


class WorkspaceUpdate(APIModel):
    name: Optional[str] = None
    description: Optional[str] = None


class WorkspaceRead(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    owner_id: int
    is_active: bool
    role: Optional[MemberRole] = None  # caller's role, when known
    member_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InviteCreate(APIModel):
    email: EmailStr
    role: MemberRole = MemberRole.MEMBER

    @field_validator("role")
    @classmethod
    def not_owner(cls, value: MemberRole) -> MemberRole:
        if value == MemberRole.OWNER:
            raise ValueError("Cannot invite a second owner")
        return value


class MemberRoleUpdate(APIModel):
    role: MemberRole


class InvitationRead(BaseModel):
    id: int
    email: EmailStr
    role: MemberRole
    organization_id: int
    invited_by_id: Optional[int] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from fabricpos.models import MemberRole
from fabricpos.schemas.common import APIModel, Password, Username


class UserRead(BaseModel):
    id: int
    email: EmailStr
    username: str
    first_name: str
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MemberRead(UserRead):
    """A user seen from inside one workspace."""
    role: MemberRole
    joined_at: Optional[datetime] = None


class UserCreate(APIModel):
    email: EmailStr
    username: Username
    password: Password
    first_name: str = Field(min_length=1, max_length=50)
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER

    @field_validator("role")
    @classmethod
    def no_second_owner(cls, value: MemberRole) -> MemberRole:
        if value == MemberRole.OWNER:
            raise ValueError("A workspace has exactly one owner")
        return value


class UserUpdate(APIModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class ProfileUpdate(APIModel):
    username: Optional[Username] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

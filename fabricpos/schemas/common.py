import re
from typing import Annotated, Any, Generic, List, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, model_validator

T = TypeVar("T")

USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{3,20}$")
SPECIAL_CHARS = "@$!%*?&#^()_+-=[]{};':\",.<>/\\|`~"


def strip_strings(value: Any) -> Any:
    """Trim every string found in nested dicts and lists."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return {k: strip_strings(v) for k, v in value.items()}
    if isinstance(value, list):
        return [strip_strings(v) for v in value]
    return value


def check_username(value: str) -> str:
    if not USERNAME_RE.match(value):
        raise ValueError("Username must be 3-20 characters of letters, numbers and underscores")
    return value


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain uppercase and lowercase letters")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain a number")
    if not any(ch in SPECIAL_CHARS for ch in value):
        raise ValueError("Password must contain a special character")
    return value


class APIModel(BaseModel):
    """Base for request bodies: whitespace is trimmed before validation."""

    @model_validator(mode="before")
    @classmethod
    def _sanitize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return strip_strings(data)
        return data


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: PageMeta


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return {"success": True, "data": data, "message": message}


Username = Annotated[str, AfterValidator(check_username)]
Password = Annotated[str, AfterValidator(check_password_strength)]

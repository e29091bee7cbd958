import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from fabricpos.crud import organizations as org_crud
from fabricpos.crud import users as user_crud
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import MemberRole, Organization, OrganizationMember, User
from fabricpos.pagination import Pagination, sanitize_query
from fabricpos.schemas.common import Envelope, Page, ok
from fabricpos.schemas.users import MemberRead, UserCreate, UserUpdate
from fabricpos.security import Workspace, get_workspace, require_admin

logger = logging.getLogger(__name__)

router = APIRouter()

USER_SORT_FIELDS = ("created_at", "first_name", "last_name", "email", "username", "last_login_at")


def _members_query(db: Session, workspace: Workspace):
    return (
        db.query(User)
        .join(OrganizationMember, OrganizationMember.user_id == User.id)
        .filter(OrganizationMember.organization_id == workspace.id)
    )


def _search(query, term: str):
    like = f"%{term}%"
    return query.filter(or_(
        User.first_name.ilike(like),
        User.last_name.ilike(like),
        User.email.ilike(like),
        User.username.ilike(like),
    ))


def _with_roles(db: Session, workspace: Workspace, users) -> list:
    ids = [u.id for u in users]
    members = {
        m.user_id: m
        for m in db.query(OrganizationMember).filter(
            OrganizationMember.organization_id == workspace.id, OrganizationMember.user_id.in_(ids)
        )
    }
    return [org_crud.member_payload(members[u.id]) for u in users]


def _get_member(db: Session, workspace: Workspace, user_id: int) -> OrganizationMember:
    member = org_crud.get_membership(db, workspace.id, user_id)
    if not member:
        raise AppError.not_found("User")
    return member


def _ensure_not_shared(db: Session, workspace: Workspace, user_id: int) -> None:
    """User fields and status are account wide, so another workspace's members are left alone."""
    elsewhere = (
        db.query(OrganizationMember.id)
        .join(Organization, Organization.id == OrganizationMember.organization_id)
        .filter(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id != workspace.id,
            Organization.is_active == True,
        )
        .first()
    )
    if elsewhere:
        raise AppError.forbidden("This account also belongs to other workspaces; only its holder can change it")


# --- 1. LIST MEMBERS ---
@router.get("/", response_model=Envelope[Page[MemberRead]])
def read_users(
    search: Optional[str] = None,
    role: Optional[MemberRole] = None,
    is_active: Optional[bool] = None,
    paging: Pagination = Depends(),
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    query = _members_query(db, workspace)
    search = sanitize_query(search)
    if search:
        query = _search(query, search)
    if role is not None:
        query = query.filter(OrganizationMember.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)

    page = paging.paginate(query, User, USER_SORT_FIELDS)
    page["items"] = _with_roles(db, workspace, page["items"])
    return ok(page)


# --- 2. SEARCH ---
@router.get("/search/{q}", response_model=Envelope[List[MemberRead]])
def search_users(q: str, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    term = sanitize_query(q)
    if not term:
        raise AppError.bad_request("Search term is required")
    users = _search(_members_query(db, workspace), term).order_by(User.first_name).limit(20).all()
    return ok(_with_roles(db, workspace, users))


# --- 3. STATS ---
@router.get("/stats/overview", response_model=Envelope[dict])
def user_stats(db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    rows = (
        db.query(OrganizationMember.role, User.is_active, func.count(User.id))
        .join(User, User.id == OrganizationMember.user_id)
        .filter(OrganizationMember.organization_id == workspace.id)
        .group_by(OrganizationMember.role, User.is_active)
        .all()
    )
    by_role = {role.value: 0 for role in MemberRole}
    active = inactive = 0
    for role, user_active, count in rows:
        by_role[role.value] += count
        if user_active:
            active += count
        else:
            inactive += count
    return ok({"total": active + inactive, "active": active, "inactive": inactive, "by_role": by_role})


# --- 4. READ BY ID ---
@router.get("/{user_id}", response_model=Envelope[MemberRead])
def read_user(user_id: int, db: Session = Depends(get_db), workspace: Workspace = Depends(get_workspace)):
    return ok(org_crud.member_payload(_get_member(db, workspace, user_id)))


# --- 5. CREATE (account + membership) ---
@router.post("/", response_model=Envelope[MemberRead], status_code=status.HTTP_201_CREATED)
def create_user(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    user = user_crud.create_user(
        db,
        email=user_in.email,
        username=user_in.username,
        password=user_in.password,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        phone=user_in.phone,
    )
    member = org_crud.add_member(db, workspace.id, user.id, user_in.role)
    db.commit()
    db.refresh(member)
    logger.info(f"User {user.id} created in workspace {workspace.id} as {user_in.role.value} by {workspace.user.id}")
    return ok(org_crud.member_payload(member), "User created successfully")


# --- 6. UPDATE ---
@router.put("/{user_id}", response_model=Envelope[MemberRead])
def update_user(
    user_id: int,
    user_in: UserUpdate,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(get_workspace),
):
    is_self = user_id == workspace.user.id
    if not (is_self or workspace.is_admin):
        raise AppError.forbidden()

    member = _get_member(db, workspace, user_id)
    update_data = user_in.model_dump(exclude_unset=True)
    if not is_self:
        _ensure_not_shared(db, workspace, user_id)

    if "is_active" in update_data:
        if not workspace.is_admin:
            raise AppError.forbidden("Only administrators can change account status")
        if update_data["is_active"] is False and (is_self or member.role == MemberRole.OWNER):
            raise AppError.bad_request("You cannot deactivate yourself or the workspace owner")
    if "first_name" in update_data and not update_data["first_name"]:
        raise AppError.bad_request("First name cannot be empty")

    for field, value in update_data.items():
        setattr(member.user, field, value)
    db.commit()
    db.refresh(member)
    return ok(org_crud.member_payload(member), "User updated successfully")


# --- 7. DEACTIVATE (soft delete) ---
@router.delete("/{user_id}", response_model=Envelope[None])
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    workspace: Workspace = Depends(require_admin),
):
    if user_id == workspace.user.id:
        raise AppError.bad_request("You cannot deactivate your own account")
    member = _get_member(db, workspace, user_id)
    if member.role == MemberRole.OWNER:
        raise AppError.bad_request("The workspace owner cannot be deactivated")
    _ensure_not_shared(db, workspace, user_id)

    member.user.is_active = False
    db.commit()
    logger.info(f"User {user_id} deactivated by {workspace.user.id}")
    return ok(None, "User deactivated successfully")

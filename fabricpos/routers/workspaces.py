import logging
from typing import List, Tuple

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fabricpos.crud import organizations as org_crud
from fabricpos.database import get_db
from fabricpos.exceptions import AppError
from fabricpos.models import Invitation, MemberRole, Organization, OrganizationMember, User
from fabricpos.schemas.common import Envelope, ok
from fabricpos.schemas.organization import (
    InvitationRead, InviteCreate, MemberRoleUpdate, WorkspaceCreate, WorkspaceRead, WorkspaceUpdate,
)
from fabricpos.schemas.users import MemberRead
from fabricpos.security import get_current_user
from fabricpos.utils.mailer import email_service

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


def _load(db: Session, workspace_id: int, user: User, roles=None) -> Tuple[Organization, OrganizationMember]:
    """Workspace addressed by path id; the caller must be a member (with one of ``roles``)."""
    org = db.query(Organization).filter(Organization.id == workspace_id, Organization.is_active == True).first()
    if not org:
        raise AppError.not_found("Workspace")
    member = org_crud.get_membership(db, org.id, user.id)
    if not member:
        raise AppError.forbidden("You are not a member of this workspace")
    if roles and member.role not in roles:
        raise AppError.forbidden()
    return org, member


def _get_invitation(db: Session, org: Organization, invitation_id: int) -> Invitation:
    invitation = db.query(Invitation).filter(
        Invitation.id == invitation_id, Invitation.organization_id == org.id
    ).first()
    if not invitation:
        raise AppError.not_found("Invitation")
    return invitation


# =============================
# Workspaces
# =============================
@router.get("/", response_model=Envelope[List[WorkspaceRead]])
def list_workspaces(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok([org_crud.workspace_payload(db, org, role) for org, role in org_crud.user_workspaces(db, current_user)])


@router.post("/", response_model=Envelope[WorkspaceRead], status_code=status.HTTP_201_CREATED)
def create_workspace(
    data: WorkspaceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org = org_crud.create_workspace(db, current_user, data.name, data.description)
    db.commit()
    db.refresh(org)
    logger.info(f"Workspace {org.id} ({org.slug}) created by user {current_user.id}")
    return ok(org_crud.workspace_payload(db, org, MemberRole.OWNER), "Workspace created successfully")


@router.get("/{workspace_id}", response_model=Envelope[WorkspaceRead])
def read_workspace(workspace_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    org, member = _load(db, workspace_id, current_user)
    return ok(org_crud.workspace_payload(db, org, member.role))


@router.patch("/{workspace_id}", response_model=Envelope[WorkspaceRead])
def update_workspace(
    workspace_id: int,
    data: WorkspaceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, member = _load(db, workspace_id, current_user, ADMIN_ROLES)
    update_data = data.model_dump(exclude_unset=True)
    if "name" in update_data:
        if not update_data["name"]:
            raise AppError.bad_request("Workspace name is required")
        org.name = update_data["name"]
    if "description" in update_data:
        org.description = update_data["description"]
    db.commit()
    db.refresh(org)
    return ok(org_crud.workspace_payload(db, org, member.role), "Workspace updated successfully")


@router.delete("/{workspace_id}", response_model=Envelope[None])
def delete_workspace(workspace_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    org, _ = _load(db, workspace_id, current_user, (MemberRole.OWNER,))
    org.is_active = False
    db.commit()
    logger.info(f"Workspace {org.id} deactivated by owner {current_user.id}")
    return ok(None, "Workspace deleted successfully")


# =============================
# Members
# =============================
@router.get("/{workspace_id}/members", response_model=Envelope[List[MemberRead]])
def list_members(workspace_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    org, _ = _load(db, workspace_id, current_user)
    members = (
        db.query(OrganizationMember)
        .filter(OrganizationMember.organization_id == org.id)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        .all()
    )
    return ok([org_crud.member_payload(m) for m in members])


@router.patch("/{workspace_id}/members/{user_id}", response_model=Envelope[MemberRead])
def change_member_role(
    workspace_id: int,
    user_id: int,
    data: MemberRoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, _ = _load(db, workspace_id, current_user, (MemberRole.OWNER,))
    target = org_crud.get_membership(db, org.id, user_id)
    if not target:
        raise AppError.not_found("Member")
    if target.role == MemberRole.OWNER:
        raise AppError.bad_request("The owner's role cannot be changed")
    if data.role == MemberRole.OWNER:
        raise AppError.bad_request("Ownership cannot be transferred by changing a role")

    target.role = data.role
    db.commit()
    db.refresh(target)
    logger.info(f"User {user_id} is now {data.role.value} in workspace {org.id}")
    return ok(org_crud.member_payload(target), "Member role updated")


@router.delete("/{workspace_id}/members/{user_id}", response_model=Envelope[None])
def remove_member(
    workspace_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, _ = _load(db, workspace_id, current_user, ADMIN_ROLES)
    target = org_crud.get_membership(db, org.id, user_id)
    if not target:
        raise AppError.not_found("Member")
    if target.role == MemberRole.OWNER:
        raise AppError.bad_request("The workspace owner cannot be removed")

    db.delete(target)
    db.commit()
    logger.info(f"User {user_id} removed from workspace {org.id} by {current_user.id}")
    return ok(None, "Member removed successfully")


# =============================
# Invitations
# =============================
@router.post("/{workspace_id}/invite", response_model=Envelope[InvitationRead], status_code=status.HTTP_201_CREATED)
def invite_member(
    workspace_id: int,
    data: InviteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, _ = _load(db, workspace_id, current_user, ADMIN_ROLES)
    invitation = org_crud.create_invitation(db, org, data.email, data.role, current_user)
    db.commit()
    db.refresh(invitation)
    email_service.send_invitation_email(invitation, org, current_user, org_crud.invitation_link(invitation))
    logger.info(f"Invitation {invitation.id} sent to {invitation.email} for workspace {org.id}")
    return ok(invitation, "Invitation sent successfully")


@router.get("/{workspace_id}/invitations", response_model=Envelope[List[InvitationRead]])
def list_invitations(workspace_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    org, _ = _load(db, workspace_id, current_user, ADMIN_ROLES)
    pending = (
        db.query(Invitation)
        .filter(Invitation.organization_id == org.id, Invitation.accepted_at.is_(None))
        .order_by(Invitation.id.desc())
        .all()
    )
    return ok(pending)


@router.post("/{workspace_id}/invitations/{invitation_id}/resend", response_model=Envelope[InvitationRead])
def resend_invitation(
    workspace_id: int,
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, _ = _load(db, workspace_id, current_user, ADMIN_ROLES)
    invitation = org_crud.refresh_invitation(_get_invitation(db, org, invitation_id))
    db.commit()
    db.refresh(invitation)
    email_service.send_invitation_email(invitation, org, current_user, org_crud.invitation_link(invitation))
    return ok(invitation, "Invitation resent successfully")


@router.delete("/{workspace_id}/invitations/{invitation_id}", response_model=Envelope[None])
def cancel_invitation(
    workspace_id: int,
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    org, _ = _load(db, workspace_id, current_user, ADMIN_ROLES)
    invitation = _get_invitation(db, org, invitation_id)
    if invitation.accepted_at is not None:
        raise AppError.bad_request("Accepted invitations cannot be cancelled")
    db.delete(invitation)
    db.commit()
    return ok(None, "Invitation cancelled")

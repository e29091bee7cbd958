import re
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from fabricpos.config import settings
from fabricpos.exceptions import AppError
from fabricpos.models import Invitation, MemberRole, Organization, OrganizationMember, User


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "workspace"


def unique_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug, n = base, 1
    while db.query(Organization.id).filter(Organization.slug == slug).first():
        n += 1
        slug = f"{base}-{n}"
    return slug


def create_workspace(db: Session, owner: User, name: str, description: Optional[str] = None) -> Organization:
    org = Organization(name=name, slug=unique_slug(db, name), description=description, owner_id=owner.id)
    db.add(org)
    db.flush()
    db.add(OrganizationMember(organization_id=org.id, user_id=owner.id, role=MemberRole.OWNER))
    db.flush()
    return org


def get_membership(db: Session, organization_id: int, user_id: int) -> Optional[OrganizationMember]:
    return db.query(OrganizationMember).filter(
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.user_id == user_id,
    ).first()


def user_workspaces(db: Session, user: User) -> List[Tuple[Organization, MemberRole]]:
    rows = (
        db.query(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .filter(OrganizationMember.user_id == user.id, Organization.is_active == True)
        .order_by(OrganizationMember.joined_at, OrganizationMember.id)
        .all()
    )
    return rows


def workspace_payload(db: Session, org: Organization, role: Optional[MemberRole] = None) -> dict:
    member_count = db.query(func.count(OrganizationMember.id)).filter(
        OrganizationMember.organization_id == org.id
    ).scalar()
    return {
        "id": org.id,
        "name": org.name,
        "slug": org.slug,
        "description": org.description,
        "owner_id": org.owner_id,
        "is_active": org.is_active,
        "role": role,
        "member_count": member_count,
        "created_at": org.created_at,
    }


def add_member(db: Session, organization_id: int, user_id: int, role: MemberRole) -> OrganizationMember:
    if get_membership(db, organization_id, user_id):
        raise AppError.conflict("User is already a member of this workspace")
    member = OrganizationMember(organization_id=organization_id, user_id=user_id, role=role)
    db.add(member)
    db.flush()
    return member


def member_payload(member: OrganizationMember) -> dict:
    user = member.user
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "is_active": user.is_active,
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
        "role": member.role,
        "joined_at": member.joined_at,
    }


# --- Invitations ---
def _new_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def create_invitation(db: Session, org: Organization, email: str, role: MemberRole, invited_by: User) -> Invitation:
    email = email.lower()
    existing_user = db.query(User).filter(func.lower(User.email) == email).first()
    if existing_user and get_membership(db, org.id, existing_user.id):
        raise AppError.conflict("This user is already a member of the workspace")

    pending = db.query(Invitation).filter(
        Invitation.organization_id == org.id,
        func.lower(Invitation.email) == email,
        Invitation.accepted_at.is_(None),
        Invitation.expires_at > datetime.utcnow(),
    ).first()
    if pending:
        raise AppError.conflict("An invitation is already pending for this email")

    invitation = Invitation(
        email=email,
        organization_id=org.id,
        role=role,
        token=_new_invitation_token(),
        invited_by_id=invited_by.id,
        expires_at=datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
    )
    db.add(invitation)
    db.flush()
    return invitation


def refresh_invitation(invitation: Invitation) -> Invitation:
    if invitation.accepted_at is not None:
        raise AppError.bad_request("Invitation has already been accepted")
    invitation.token = _new_invitation_token()
    invitation.expires_at = datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS)
    return invitation


def get_valid_invitation(db: Session, token: str) -> Invitation:
    invitation = db.query(Invitation).filter(Invitation.token == token).first()
    if not invitation:
        raise AppError.not_found("Invitation")
    if invitation.accepted_at is not None:
        raise AppError.bad_request("Invitation has already been accepted")
    if invitation.expires_at < datetime.utcnow():
        raise AppError.bad_request("Invitation has expired")
    if not invitation.organization.is_active:
        raise AppError.bad_request("This workspace is no longer active")
    return invitation


def invitation_link(invitation: Invitation) -> str:
    return f"{settings.FRONTEND_URL}/invite/{invitation.token}"

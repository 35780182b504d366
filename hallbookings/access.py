from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from hallbookings.errors import AccessDeniedError
from hallbookings.models import UserRole

STAFF_ROLES = {UserRole.HALL_OWNER, UserRole.SUB_USER}


@dataclass
class Actor:
    """An authenticated caller with role and parent loaded from the users table."""

    id: UUID
    email: str | None
    role: UserRole
    parent_user_id: UUID | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def resolve_effective_owner(actor: Actor, claimed_owner_id: UUID | None = None) -> UUID:
    """
    Return the hall-owner id the actor operates as, or raise AccessDeniedError.

    Hall owners act as themselves; sub-users act as their parent. When
    `claimed_owner_id` is given (the owner of the target record) it must match.
    Every other role is rejected.
    """
    if actor.role == UserRole.HALL_OWNER:
        if claimed_owner_id is not None and claimed_owner_id != actor.id:
            raise AccessDeniedError(
                "Access denied. You can only access your own records."
            )
        return actor.id

    if actor.role == UserRole.SUB_USER:
        if actor.parent_user_id is None:
            raise AccessDeniedError("Access denied. Sub-user has no parent hall owner.")
        if claimed_owner_id is not None and claimed_owner_id != actor.parent_user_id:
            raise AccessDeniedError(
                "Access denied. You can only access your parent hall owner's records."
            )
        return actor.parent_user_id

    raise AccessDeniedError(
        "Access denied. Only hall owners and sub-users can perform this action."
    )


def require_hall_owner(actor: Actor, claimed_owner_id: UUID) -> UUID:
    """Owner-only variant: sub-users are refused even when their parent matches."""
    if actor.role != UserRole.HALL_OWNER:
        raise AccessDeniedError("Access denied. Only hall owners can perform this action.")
    return resolve_effective_owner(actor, claimed_owner_id)

"""
Branch scoping for queries.

Appends ``branch_id == user.branch_id`` to a select unless the user is a
super admin. This narrows what a handler returns; it does not replace the
role checks done in the route dependencies.
"""

from typing import Optional

from sqlalchemy import Select, false

from core.exceptions import PermissionDeniedError
from models.organization import User


def apply_branch_filter(
    query: Select,
    model,
    user: User,
    branch_id: Optional[str] = None
) -> Select:
    """
    Restrict ``query`` to the rows of ``model`` visible to ``user``.

    Super admins see every branch, or only ``branch_id`` when given. Other
    users see their own branch; without one they see nothing.
    """
    if user.is_super_admin:
        if branch_id:
            return query.where(model.branch_id == branch_id)
        return query

    if not user.branch_id:
        return query.where(false())

    return query.where(model.branch_id == user.branch_id)


def ensure_branch_access(user: User, branch_id: Optional[str]) -> None:
    """Raise if a non super admin touches a branch other than their own."""
    if user.is_super_admin:
        return
    if branch_id is None or branch_id != user.branch_id:
        raise PermissionDeniedError(
            "Access to this branch is not allowed",
            context={"user_id": user.id, "role": user.role, "branch_id": branch_id},
        )


def resolve_branch_id(user: User, requested: Optional[str] = None) -> Optional[str]:
    """
    Branch a write should target: super admins may pick any (or global with
    ``None``), everyone else is pinned to their own branch.
    """
    if user.is_super_admin:
        return requested
    if requested is not None:
        ensure_branch_access(user, requested)
    return user.branch_id

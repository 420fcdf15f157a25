"""
Assignment Filter - which UIDs a (user, role) pair may see and act on.

Visibility is default-deny for staff:
- admin sees every UID
- assessor sees UIDs whose assigned_assessor_id is the user
- moderator sees UIDs whose assigned_moderator_id is the user
- anything else (unknown role, missing user id, unassigned UID) sees nothing

There is no "no filter means everything" fallback: an admin has to assign a
UID before staff can find it.
"""

from sqlalchemy import false

from trainingflow.models.uid_record import UidRecord
from trainingflow.services.vocabulary import Role

_BINDING_COLUMNS = {
    Role.ASSESSOR: "assigned_assessor_id",
    Role.MODERATOR: "assigned_moderator_id",
}


def _as_role(role):
    try:
        return Role(role)
    except ValueError:
        return None


def is_visible(record: UidRecord, user_id: str, role) -> bool:
    """True if the user, acting in the given role, may see the UID."""
    role = _as_role(role)
    if role == Role.ADMIN:
        return True
    column = _BINDING_COLUMNS.get(role)
    if column is None or not user_id:
        return False
    return getattr(record, column) == user_id


def apply_assignment_filter(query, user_id: str, role):
    """Restrict a UidRecord query to the rows visible to (user_id, role)."""
    role = _as_role(role)
    if role == Role.ADMIN:
        return query
    column = _BINDING_COLUMNS.get(role)
    if column is None or not user_id:
        return query.filter(false())
    return query.filter(getattr(UidRecord, column) == user_id)


def is_bound(record: UidRecord, role, user_id: str) -> bool:
    """
    True if a staff actor is the one assigned to the UID for its role.
    Non-staff roles are not subject to bindings.
    """
    role = _as_role(role)
    if role not in _BINDING_COLUMNS:
        return True
    return bool(user_id) and getattr(record, _BINDING_COLUMNS[role]) == user_id

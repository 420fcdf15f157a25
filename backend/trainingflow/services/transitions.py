"""
Transition Engine - the only code that writes a `status` column.

Validation order for every requested change:
1. the edge exists in the vocabulary graph        -> InvalidTransition
2. the actor's role may trigger that edge          -> Forbidden
3. a staff actor is assigned to the UID            -> Forbidden
4. student and UID statuses stay stage-compatible  -> InvalidTransition

Validation is pure and runs before anything is touched, so a rejected
request leaves the records exactly as they were. Applying a transition only
mutates the in-session ORM object; committing and broadcasting belong to the
workflow layer (services/workflow.py).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from trainingflow.errors import Forbidden, InvalidTransition
from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord
from trainingflow.services.assignment import is_bound
from trainingflow.services.vocabulary import (
    Role, StudentStatus, UidStatus, STUDENT_STAGE_COMPATIBILITY,
    uid_edge_roles, student_edge_roles,
)
from trainingflow.logging_config import get_logger, log_with_context

logger = get_logger("workflow")


@dataclass(frozen=True)
class Actor:
    """The already-authenticated caller of a workflow operation."""
    role: Role
    user_id: Optional[str] = None


SYSTEM_ACTOR = Actor(role=Role.SYSTEM)


@dataclass(frozen=True)
class Transition:
    """A committed-to-be status change, handed to the broadcaster after commit."""
    entity_type: str        # "uid" | "student"
    entity_id: str
    old_status: str
    new_status: str


def _check_actor(record: UidRecord, actor: Actor, allowed_roles, entity, current, target):
    if actor.role not in allowed_roles:
        raise Forbidden(
            "Role '{}' may not move {} from '{}' to '{}'".format(actor.role.value, entity, current, target),
            {"role": actor.role.value, "allowed": sorted(r.value for r in allowed_roles)}
        )
    if not is_bound(record, actor.role, actor.user_id):
        raise Forbidden(
            "UID {} is not assigned to {} '{}'".format(record.uid, actor.role.value, actor.user_id or ""),
            {"uid": record.uid, "role": actor.role.value}
        )


def check_uid_transition(record: UidRecord, student_statuses: Iterable[str],
                         target: UidStatus, actor: Actor) -> None:
    """Raise if the UID may not move to `target`; return None otherwise."""
    current = UidStatus(record.status)
    target = UidStatus(target)
    allowed = uid_edge_roles(current, target)
    if allowed is None:
        raise InvalidTransition("UID " + record.uid, current.value, target.value)
    _check_actor(record, actor, allowed, "UID " + record.uid, current.value, target.value)

    blocking = sorted({
        status for status in student_statuses
        if target not in STUDENT_STAGE_COMPATIBILITY[StudentStatus(status)]
    })
    if blocking:
        raise InvalidTransition(
            "UID " + record.uid, current.value, target.value,
            "students still at {}".format(", ".join(blocking))
        )


def check_student_transition(uid_record: UidRecord, student: StudentRecord,
                             target: StudentStatus, actor: Actor) -> None:
    """Raise if the student may not move to `target`; return None otherwise."""
    entity = "student " + student.student_id
    current = StudentStatus(student.status)
    target = StudentStatus(target)
    allowed = student_edge_roles(current, target)
    if allowed is None:
        raise InvalidTransition(entity, current.value, target.value)
    _check_actor(uid_record, actor, allowed, entity, current.value, target.value)

    if UidStatus(uid_record.status) not in STUDENT_STAGE_COMPATIBILITY[target]:
        raise InvalidTransition(
            entity, current.value, target.value,
            "UID {} is at '{}'".format(uid_record.uid, uid_record.status)
        )


_UID_MILESTONES = {
    UidStatus.ASSESSOR_STARTED: "attendance_saved_at",
    UidStatus.READY_FOR_MODERATION: "sent_to_moderator_at",
    UidStatus.SENT_TO_ADMIN: "sent_to_admin_at",
    UidStatus.APPROVED: "approved_at",
}

_STUDENT_MILESTONES = {
    StudentStatus.PENDING_MODERATION: "reviewed_at",
    StudentStatus.MODERATED: "moderated_at",
    StudentStatus.APPROVED: "decided_at",
    StudentStatus.REJECTED: "decided_at",
}


def transition_uid(record: UidRecord, student_statuses: Iterable[str],
                   target: UidStatus, actor: Actor) -> Transition:
    """Validate and apply a UID status change to the in-session record."""
    target = UidStatus(target)
    check_uid_transition(record, list(student_statuses), target, actor)

    old_status = record.status
    record.status = target.value
    milestone = _UID_MILESTONES.get(target)
    if milestone:
        setattr(record, milestone, datetime.now(timezone.utc))

    log_with_context(logger, "INFO",
        "UID {} {} -> {}".format(record.uid, old_status, target.value),
        context={"uid": record.uid, "actor_role": actor.role.value, "actor_id": actor.user_id})
    return Transition("uid", record.uid, old_status, target.value)


def transition_student(uid_record: UidRecord, student: StudentRecord,
                       target: StudentStatus, actor: Actor) -> Transition:
    """Validate and apply a student status change to the in-session record."""
    target = StudentStatus(target)
    check_student_transition(uid_record, student, target, actor)

    old_status = student.status
    student.status = target.value
    milestone = _STUDENT_MILESTONES.get(target)
    if milestone:
        setattr(student, milestone, datetime.now(timezone.utc))

    log_with_context(logger, "INFO",
        "Student {} {} -> {}".format(student.student_id, old_status, target.value),
        context={"uid": uid_record.uid, "student_id": student.student_id,
                 "actor_role": actor.role.value, "actor_id": actor.user_id})
    return Transition("student", student.student_id, old_status, target.value)


def derive_uid_status(uid_status: str, student_statuses: Iterable[str]) -> Optional[UidStatus]:
    """
    UID status implied by the statuses of its students, or None if the UID
    should stay where it is. Called after every student mutation.

    - the first submitted student moves pending/assessor_started to user_submitted
    - once no student is left in pending_review, user_submitted becomes
      assessor_reviewed
    """
    statuses = [StudentStatus(s) for s in student_statuses]
    if not statuses:
        return None
    current = UidStatus(uid_status)
    if current in (UidStatus.PENDING, UidStatus.ASSESSOR_STARTED):
        return UidStatus.USER_SUBMITTED
    if current == UidStatus.USER_SUBMITTED and StudentStatus.PENDING_REVIEW not in statuses:
        return UidStatus.ASSESSOR_REVIEWED
    return None


def apply_derived_uid_status(record: UidRecord, student_statuses: Iterable[str]) -> Optional[Transition]:
    """Run derive_uid_status and apply the result as a system transition."""
    student_statuses = list(student_statuses)
    target = derive_uid_status(record.status, student_statuses)
    if target is None:
        return None
    return transition_uid(record, student_statuses, target, SYSTEM_ACTOR)

"""
Workflow operations - the role-specific actions behind every dashboard
button.

Every operation follows the same sequence:
1. take the UID lock (same-UID writes are linearized)
2. load the records and let the transition engine validate + apply
3. append an activity log row
4. commit (a lost race surfaces as ConcurrentModification)
5. release the lock and publish exactly one event

Nothing is published for a failed operation, and a publish problem never
reaches the caller.
"""

import time
from typing import Optional

from sqlalchemy.orm import Session

from trainingflow.errors import AllocationConflict, Forbidden, InvalidTransition
from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord
from trainingflow.services import store
from trainingflow.services.assignment import is_bound
from trainingflow.services.broadcaster import Event, broadcaster
from trainingflow.services.transitions import (
    Actor, apply_derived_uid_status, transition_student, transition_uid,
)
from trainingflow.services.vocabulary import (
    ACCEPTING_SUBMISSIONS, EventName, Role, StudentStatus, UidStatus, UID_STATUS_EVENTS,
)
from trainingflow.logging_config import get_logger, log_with_context

logger = get_logger("workflow")

ALLOCATION_ATTEMPTS = 3


def _require_role(actor: Actor, *roles: Role):
    if actor.role not in roles:
        raise Forbidden(
            "Role '{}' may not perform this action".format(actor.role.value),
            {"role": actor.role.value, "allowed": [r.value for r in roles]}
        )


def _finish(db: Session, uid: str, event: Event, actor: Actor, details: dict = None):
    store.record_activity(db, uid, event.name.value, actor.role.value, actor.user_id,
                          details or event.data)
    store.commit(db)


def _publish(event: Event):
    try:
        broadcaster.publish(event)
    except Exception as e:
        log_with_context(logger, "WARNING", "Broadcast of {} failed: {}".format(event.name.value, e),
                         context={"uid": event.data.get("uid")})


# ── UID lifecycle ────────────────────────────────────────────

def create_uid(db: Session, actor: Actor, assessor_name: str = "", assessor_number: str = "",
               assessor_age: Optional[int] = None) -> UidRecord:
    """
    Allocate a new pending UID, retrying allocation races a few times. The
    allocation lock covers the commit, so in-process creators never collide.
    """
    _require_role(actor, Role.ADMIN)
    for attempt in range(1, ALLOCATION_ATTEMPTS + 1):
        try:
            with store.allocation_lock:
                record = store.create_uid(db, assessor_name, assessor_number, assessor_age)
                event = Event(EventName.UID_CREATED, {"uid": record.uid, "status": record.status})
                _finish(db, record.uid, event, actor)
            break
        except AllocationConflict:
            if attempt == ALLOCATION_ATTEMPTS:
                raise
            log_with_context(logger, "WARNING", "Retrying UID allocation",
                             extra_data={"attempt": attempt})
    _publish(event)
    return record


def assign_uid(db: Session, uid: str, actor: Actor, assessor_id: Optional[str] = None,
               moderator_id: Optional[str] = None, clear: bool = False) -> UidRecord:
    """
    Bind an assessor and/or moderator to the UID (last write wins). Fields
    left as None are untouched unless `clear` is set.
    """
    _require_role(actor, Role.ADMIN)
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        if assessor_id is not None or clear:
            record.assigned_assessor_id = assessor_id or None
        if moderator_id is not None or clear:
            record.assigned_moderator_id = moderator_id or None
        event = Event(EventName.UID_ASSIGNED, {
            "uid": uid,
            "assigned_assessor_id": record.assigned_assessor_id,
            "assigned_moderator_id": record.assigned_moderator_id,
        })
        _finish(db, uid, event, actor)
    _publish(event)
    return record


def delete_uid(db: Session, uid: str, actor: Actor) -> dict:
    """Remove the UID and everything attached to it, atomically."""
    _require_role(actor, Role.ADMIN)
    with store.uid_locks.hold(uid):
        store.get_uid(db, uid)
        event = Event(EventName.UID_DELETED, {"uid": uid})
        store.record_activity(db, uid, event.name.value, actor.role.value, actor.user_id)
        removed = store.delete_uid(db, uid)
    _publish(event)
    return removed


def update_uid_status(db: Session, uid: str, target: UidStatus, actor: Actor,
                      event_name: EventName = None) -> UidRecord:
    """Move the UID along one graph edge and publish the matching event."""
    target = UidStatus(target)
    start_time = time.time()
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        change = transition_uid(record, store.student_statuses(db, uid), target, actor)
        event = Event(event_name or UID_STATUS_EVENTS[target], {"uid": uid, "status": record.status})
        _finish(db, uid, event, actor, {"from": change.old_status, "to": change.new_status})
    _publish(event)

    log_with_context(logger, "INFO", "UID {} now {}".format(uid, target.value),
                     context={"uid": uid},
                     extra_data={"duration_ms": round((time.time() - start_time) * 1000, 2)})
    return record


def save_attendance(db: Session, uid: str, payload: dict, actor: Actor) -> UidRecord:
    """
    Store the attendance sheet. The first save moves a pending UID to
    assessor_started; later saves only overwrite the sheet.
    """
    _require_role(actor, Role.ASSESSOR)
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        details = {}
        if record.status == UidStatus.PENDING.value:
            change = transition_uid(record, [], UidStatus.ASSESSOR_STARTED, actor)
            details = {"from": change.old_status, "to": change.new_status}
        elif not is_bound(record, actor.role, actor.user_id):
            raise Forbidden("UID {} is not assigned to assessor '{}'".format(uid, actor.user_id or ""),
                            {"uid": uid})
        store.save_attendance(db, uid, payload)
        event = Event(EventName.ATTENDANCE_SAVED, {"uid": uid, "status": record.status})
        _finish(db, uid, event, actor, details)
    _publish(event)
    return record


def send_to_moderator(db: Session, uid: str, actor: Actor) -> UidRecord:
    return update_uid_status(db, uid, UidStatus.READY_FOR_MODERATION, actor)


def save_moderation(db: Session, uid: str, payload: dict, actor: Actor) -> UidRecord:
    """Store the moderation document and mark moderation complete."""
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        change = transition_uid(record, store.student_statuses(db, uid),
                                UidStatus.MODERATION_COMPLETE, actor)
        store.save_moderation(db, uid, payload)
        event = Event(EventName.MODERATION_SAVED, {"uid": uid, "status": record.status})
        _finish(db, uid, event, actor, {"from": change.old_status, "to": change.new_status})
    _publish(event)
    return record


def send_to_admin(db: Session, uid: str, actor: Actor) -> UidRecord:
    return update_uid_status(db, uid, UidStatus.SENT_TO_ADMIN, actor)


def approve_uid(db: Session, uid: str, actor: Actor) -> UidRecord:
    return update_uid_status(db, uid, UidStatus.APPROVED, actor)


# ── Students ─────────────────────────────────────────────────

def submit_form(db: Session, uid: str, form_data: dict, form_version: int = 1) -> StudentRecord:
    """
    Public learner submission: create a pending_review student and let the
    UID status follow (pending/assessor_started -> user_submitted).
    """
    actor = Actor(role=Role.LEARNER)
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        if UidStatus(record.status) not in ACCEPTING_SUBMISSIONS:
            raise InvalidTransition("UID " + uid, record.status, record.status,
                                    "no longer accepting learner submissions")
        student = store.insert_student(db, record, form_data, form_version)
        apply_derived_uid_status(record, store.student_statuses(db, uid))
        event = Event(EventName.USER_FORM_SAVED, {
            "uid": uid,
            "student_id": student.student_id,
            "student_count": record.student_count,
            "status": record.status,
        })
        _finish(db, uid, event, actor, {"student_id": student.student_id, "learner_name": student.learner_name})
    _publish(event)
    return student


def _move_student(db: Session, uid: str, student_id: str, target: StudentStatus,
                  actor: Actor, event_name: EventName):
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        student = store.get_student(db, uid, student_id)
        change = transition_student(record, student, target, actor)
        db.flush()
        apply_derived_uid_status(record, store.student_statuses(db, uid))
        event = Event(event_name, {
            "uid": uid,
            "student_id": student_id,
            "status": student.status,
            "uid_status": record.status,
        })
        _finish(db, uid, event, actor, {"student_id": student_id,
                                        "from": change.old_status, "to": change.new_status})
    _publish(event)
    return student


def edit_student_form(db: Session, uid: str, student_id: str, form_data: dict,
                      actor: Actor) -> StudentRecord:
    """
    Assessor corrections to a submitted form before it is marked reviewed.
    Overwrites the form and re-derives the learner/company names; no status
    changes.
    """
    _require_role(actor, Role.ASSESSOR)
    with store.uid_locks.hold(uid):
        record = store.get_uid(db, uid)
        if not is_bound(record, actor.role, actor.user_id):
            raise Forbidden("UID {} is not assigned to assessor '{}'".format(uid, actor.user_id or ""),
                            {"uid": uid})
        student = store.get_student(db, uid, student_id)
        if student.status != StudentStatus.PENDING_REVIEW.value:
            raise InvalidTransition("student " + student_id, student.status, student.status,
                                    "only forms awaiting review can be edited")
        store.write_student_form(student, form_data)
        event = Event(EventName.ASSESSOR_EDITED, {
            "uid": uid,
            "student_id": student_id,
            "status": student.status,
            "uid_status": record.status,
        })
        _finish(db, uid, event, actor, {"student_id": student_id, "learner_name": student.learner_name})
    _publish(event)
    return student


def complete_review(db: Session, uid: str, student_id: str, actor: Actor) -> StudentRecord:
    """Assessor marks one student reviewed; the last one makes the UID assessor_reviewed."""
    return _move_student(db, uid, student_id, StudentStatus.PENDING_MODERATION, actor,
                         EventName.ASSESSOR_REVIEW_COMPLETE)


def update_student_status(db: Session, uid: str, student_id: str, target: StudentStatus,
                          actor: Actor) -> StudentRecord:
    """Move one student along its pipeline (moderation and admin decisions)."""
    target = StudentStatus(target)
    event_name = EventName.STUDENT_STATUS_UPDATED
    if target == StudentStatus.PENDING_MODERATION:
        event_name = EventName.ASSESSOR_REVIEW_COMPLETE
    return _move_student(db, uid, student_id, target, actor, event_name)

"""
State Store - persistence of UID and student records.

Consistency rules:
- Every mutation of a UID (including its students and documents) runs while
  holding that UID's lock from `uid_locks`. Different UIDs never contend.
- Readers never take locks.
- Each UID/student row carries a version counter; a write that lost a race
  against another process surfaces as ConcurrentModification instead of a
  lost update.
- UID allocation is serialized in-process by `allocation_lock`, held from
  reading max(uid) until the insert is committed, and backed by the primary
  key, so only a cross-process collision surfaces as AllocationConflict.
- Deleting a UID removes its students and documents in one transaction.
"""

import json
import threading
import time
from datetime import datetime, timezone
from collections import defaultdict
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from trainingflow.errors import (
    AllocationConflict, CascadeFailure, ConcurrentModification, Forbidden, NotFound,
)
from trainingflow.models.activity_log import ActivityLog
from trainingflow.models.documents import AttendanceSheet, ModerationDocument
from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord
from trainingflow.services.assignment import apply_assignment_filter, is_visible
from trainingflow.services.vocabulary import StudentStatus, UidStatus
from trainingflow.logging_config import get_logger, log_with_context

logger = get_logger("db")

FIRST_UID = 1001

# Dependents removed before the UID row itself, in this order
CASCADE_MODELS = [StudentRecord, AttendanceSheet, ModerationDocument]


class KeyedLocks:
    """
    One re-entrant lock per key, created on first use and dropped once the
    last holder or waiter lets go.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}
        self._users = defaultdict(int)

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._users[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


uid_locks = KeyedLocks()
allocation_lock = threading.Lock()


def commit(db: Session) -> None:
    """Commit the session, rolling back and translating write races."""
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentModification(
            "Record changed by another writer; re-fetch and retry", {"error": str(e)}
        )
    except SQLAlchemyError:
        db.rollback()
        raise


# ── UIDs ─────────────────────────────────────────────────────

def get_uid(db: Session, uid: str) -> UidRecord:
    record = db.query(UidRecord).filter(UidRecord.uid == uid).first()
    if record is None:
        raise NotFound("UID {} not found".format(uid), {"uid": uid})
    return record


def get_visible_uid(db: Session, uid: str, user_id: Optional[str], role) -> UidRecord:
    """Like get_uid, but Forbidden unless (user_id, role) may see the UID."""
    record = get_uid(db, uid)
    if not is_visible(record, user_id, role):
        raise Forbidden("UID {} is not visible to this user".format(uid),
                        {"uid": uid, "role": getattr(role, "value", role)})
    return record


def list_uids(db: Session, user_id: Optional[str], role) -> List[UidRecord]:
    """All UIDs visible to (user_id, role), newest first."""
    query = apply_assignment_filter(db.query(UidRecord), user_id, role)
    return query.order_by(cast(UidRecord.uid, Integer).desc()).all()


def next_uid(db: Session) -> str:
    """Next sequential identifier: highest existing UID + 1, starting at 1001."""
    highest = db.query(func.max(cast(UidRecord.uid, Integer))).scalar()
    return str(highest + 1 if highest else FIRST_UID)


def create_uid(db: Session, assessor_name: str = "", assessor_number: str = "",
               assessor_age: Optional[int] = None) -> UidRecord:
    """
    Allocate the next UID and insert it as `pending`. The caller holds
    `allocation_lock` until it has committed.

    Raises AllocationConflict if another writer inserted the same id first.
    """
    uid = next_uid(db)
    record = UidRecord(
        uid=uid,
        status=UidStatus.PENDING.value,
        assessor_name=assessor_name or "",
        assessor_number=assessor_number or "",
        assessor_age=assessor_age,
        student_count=0,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        log_with_context(logger, "WARNING", "UID allocation collided on {}".format(uid),
                         context={"uid": uid})
        raise AllocationConflict("UID {} was allocated concurrently".format(uid), {"uid": uid})

    log_with_context(logger, "INFO", "Allocated UID {}".format(uid), context={"uid": uid})
    return record


def _purge(db: Session, model, uid: str) -> int:
    return db.query(model).filter(model.uid == uid).delete(synchronize_session=False)


def delete_uid(db: Session, uid: str) -> dict:
    """
    Delete a UID with its students, attendance sheet and moderation document,
    all-or-nothing. Commits on success.

    Returns per-table counts of removed rows.
    """
    get_uid(db, uid)
    start_time = time.time()
    removed = {}
    try:
        for model in CASCADE_MODELS:
            removed[model.__tablename__] = _purge(db, model, uid)
        removed[UidRecord.__tablename__] = _purge(db, UidRecord, uid)
        db.commit()
    except Exception as e:
        db.rollback()
        log_with_context(logger, "ERROR", "Cascade delete of UID {} rolled back: {}".format(uid, e),
                         context={"uid": uid}, extra_data={"removed_before_failure": removed},
                         exc_info=True)
        raise CascadeFailure("Deleting UID {} failed and was rolled back".format(uid),
                             {"uid": uid, "error": str(e)})
    db.expire_all()

    log_with_context(logger, "INFO", "Deleted UID {} with dependents".format(uid),
                     context={"uid": uid},
                     extra_data={"removed": removed,
                                 "duration_ms": round((time.time() - start_time) * 1000, 2)})
    return removed


# ── Students ─────────────────────────────────────────────────

def get_student(db: Session, uid: str, student_id: str) -> StudentRecord:
    student = db.query(StudentRecord).filter(
        StudentRecord.uid == uid,
        StudentRecord.student_id == student_id
    ).first()
    if student is None:
        raise NotFound("Student {} not found under UID {}".format(student_id, uid),
                       {"uid": uid, "student_id": student_id})
    return student


def get_students(db: Session, status: Optional[str] = None, uid: Optional[str] = None,
                 viewer=None) -> List[StudentRecord]:
    """
    Students, optionally filtered by status and/or owning UID, newest first.
    With a `viewer` (anything with `user_id` and `role`) only students of
    UIDs visible to it are returned.
    """
    query = db.query(StudentRecord)
    if viewer is not None:
        query = apply_assignment_filter(
            query.join(UidRecord, StudentRecord.uid == UidRecord.uid),
            viewer.user_id, viewer.role
        )
    if status:
        query = query.filter(StudentRecord.status == StudentStatus(status).value)
    if uid:
        query = query.filter(StudentRecord.uid == uid)
    return query.order_by(StudentRecord.created_at.desc()).all()


def student_statuses(db: Session, uid: str) -> List[str]:
    rows = db.query(StudentRecord.status).filter(StudentRecord.uid == uid).all()
    return [row[0] for row in rows]


def insert_student(db: Session, record: UidRecord, form_data: dict,
                   form_version: int = 1) -> StudentRecord:
    """
    Attach a new pending_review student to the UID and bump its cached count.
    The caller holds the UID lock and commits.
    """
    sequence = db.query(func.count(StudentRecord.student_id)).filter(
        StudentRecord.uid == record.uid
    ).scalar() + 1
    student = StudentRecord(
        uid=record.uid,
        student_id="{}-{}".format(record.uid, sequence),
        status=StudentStatus.PENDING_REVIEW.value,
        form_version=form_version,
    )
    write_student_form(student, form_data)
    db.add(student)
    record.student_count = sequence
    db.flush()
    return student


def write_student_form(student: StudentRecord, form_data: dict) -> StudentRecord:
    """Store the form and re-derive the learner/company names from its first page."""
    page1 = form_data.get("page1") if isinstance(form_data.get("page1"), dict) else {}
    student.form_data = json.dumps(form_data)
    student.learner_name = page1.get("learnerName", "") or ""
    student.company_name = page1.get("companyName", "") or ""
    return student


# ── Documents ────────────────────────────────────────────────

def get_attendance(db: Session, uid: str) -> Optional[AttendanceSheet]:
    return db.query(AttendanceSheet).filter(AttendanceSheet.uid == uid).first()


def get_moderation(db: Session, uid: str) -> Optional[ModerationDocument]:
    return db.query(ModerationDocument).filter(ModerationDocument.uid == uid).first()


def save_attendance(db: Session, uid: str, payload: dict) -> AttendanceSheet:
    """Insert or overwrite the UID's attendance sheet. The caller commits."""
    sheet = get_attendance(db, uid)
    if sheet is None:
        sheet = AttendanceSheet(uid=uid)
        db.add(sheet)
    sheet.payload = json.dumps(payload)
    sheet.saved_at = datetime.now(timezone.utc)
    return sheet


def save_moderation(db: Session, uid: str, payload: dict) -> ModerationDocument:
    """Insert or overwrite the UID's moderation document. The caller commits."""
    document = get_moderation(db, uid)
    if document is None:
        document = ModerationDocument(uid=uid)
        db.add(document)
    document.form_data = json.dumps(payload)
    document.status = "completed"
    document.submitted_at = datetime.now(timezone.utc)
    return document


# ── Activity log ─────────────────────────────────────────────

def record_activity(db: Session, uid: str, action: str, actor_role: str,
                    actor_id: Optional[str] = None, details: dict = None) -> ActivityLog:
    entry = ActivityLog(
        uid=uid,
        action=action,
        actor_role=actor_role,
        actor_id=actor_id,
        details=json.dumps(details or {}),
    )
    db.add(entry)
    return entry


def get_activity(db: Session, uid: str) -> List[ActivityLog]:
    return db.query(ActivityLog).filter(ActivityLog.uid == uid).order_by(
        ActivityLog.created_at.asc()
    ).all()

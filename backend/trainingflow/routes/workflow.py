"""
Workflow API routes - the role-specific actions that move a UID through its
lifecycle: attendance, learner forms, assessor review, moderation and admin
approval.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from trainingflow.database import get_db
from trainingflow.routes.deps import get_actor
from trainingflow.serializers import (
    serialize_attendance, serialize_moderation, serialize_student, serialize_uid,
)
from trainingflow.services import store, workflow
from trainingflow.services.transitions import Actor

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class AttendanceRequest(BaseModel):
    """Attendance sheet; the page layout belongs to the frontend."""
    data: Dict[str, Any]


class UserFormRequest(BaseModel):
    """Learner submission: multi-page form data keyed by page."""
    form_data: Dict[str, Any]
    form_version: int = 1


class AssessorEditRequest(BaseModel):
    """Corrected learner form, same shape as the original submission."""
    form_data: Dict[str, Any]


class ModerationRequest(BaseModel):
    form_data: Dict[str, Any]


# ── Attendance ───────────────────────────────────────────────

@router.get("/api/attendance/{uid}")
def get_attendance(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    store.get_visible_uid(db, uid, actor.user_id, actor.role)
    return {"uid": uid, "attendance": serialize_attendance(store.get_attendance(db, uid))}


@router.post("/api/attendance/{uid}")
def save_attendance(
    uid: str,
    body: AttendanceRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Save the attendance sheet; the first save starts the assessor stage."""
    record = workflow.save_attendance(db, uid, body.data, actor)
    return serialize_uid(record)


# ── Learner form ─────────────────────────────────────────────

@router.post("/api/user_form/{uid}", status_code=201)
def submit_user_form(uid: str, body: UserFormRequest, db: Session = Depends(get_db)):
    """
    Public learner submission. Needs no actor headers: the learner reached
    the form through the UID's link.
    """
    student = workflow.submit_form(db, uid, body.form_data, body.form_version)
    record = store.get_uid(db, uid)
    return {"student": serialize_student(student), "uid_status": record.status,
            "student_count": record.student_count}


# ── Assessor review ──────────────────────────────────────────

@router.put("/api/assessor-review/{uid}/{student_id}")
def edit_student_form(
    uid: str,
    student_id: str,
    body: AssessorEditRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Save the assigned assessor's corrections to a form awaiting review."""
    student = workflow.edit_student_form(db, uid, student_id, body.form_data, actor)
    return {"student": serialize_student(student, include_form=True)}


@router.post("/api/assessor-review/{uid}/{student_id}/complete")
def complete_review(
    uid: str,
    student_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    student = workflow.complete_review(db, uid, student_id, actor)
    record = store.get_uid(db, uid)
    return {"student": serialize_student(student), "uid_status": record.status}


@router.post("/api/send_to_moderator/{uid}")
def send_to_moderator(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    return serialize_uid(workflow.send_to_moderator(db, uid, actor))


# ── Moderation ───────────────────────────────────────────────

@router.get("/api/moderation/{uid}")
def get_moderation(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    store.get_visible_uid(db, uid, actor.user_id, actor.role)
    return {"uid": uid, "moderation": serialize_moderation(store.get_moderation(db, uid))}


@router.post("/api/moderation/{uid}")
def save_moderation(
    uid: str,
    body: ModerationRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Submit the moderation document and mark moderation complete."""
    return serialize_uid(workflow.save_moderation(db, uid, body.form_data, actor))


# ── Admin ────────────────────────────────────────────────────

@router.post("/api/send_to_admin/{uid}")
def send_to_admin(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    return serialize_uid(workflow.send_to_admin(db, uid, actor))


@router.post("/api/admin_approve/{uid}")
def admin_approve(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    return serialize_uid(workflow.approve_uid(db, uid, actor))

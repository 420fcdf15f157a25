"""
Student API routes - per-learner records created by form submissions.

Reads go through the assignment filter: staff only see students of the UIDs
assigned to them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from trainingflow.database import get_db
from trainingflow.routes.deps import get_actor
from trainingflow.serializers import serialize_student
from trainingflow.services import store, workflow
from trainingflow.services.transitions import Actor
from trainingflow.services.vocabulary import StudentStatus
from trainingflow.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


class StudentStatusRequest(BaseModel):
    status: str


def _parse_status(value: str) -> StudentStatus:
    try:
        return StudentStatus(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown student status '{}'".format(value))


@router.get("/api/students/pending-moderation")
def list_pending_moderation(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Shortcut for the moderator queue."""
    students = store.get_students(db, status=StudentStatus.PENDING_MODERATION.value, viewer=actor)
    return {"data": [serialize_student(s) for s in students], "total": len(students)}


@router.get("/api/students")
def list_students(
    status: Optional[str] = Query(None, description="Filter by student status"),
    uid: Optional[str] = Query(None, description="Filter by owning UID"),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    if status:
        status = _parse_status(status).value
    students = store.get_students(db, status=status, uid=uid, viewer=actor)

    log_with_context(logger, "INFO", "Listed {} students".format(len(students)),
                     extra_data={"filters": {"status": status, "uid": uid},
                                 "role": actor.role.value})

    return {"data": [serialize_student(s) for s in students], "total": len(students)}


@router.get("/api/student/{uid}/{student_id}")
def get_student(
    uid: str,
    student_id: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Student detail including the submitted form."""
    store.get_visible_uid(db, uid, actor.user_id, actor.role)
    return serialize_student(store.get_student(db, uid, student_id), include_form=True)


@router.post("/api/student/{uid}/{student_id}/status")
def update_student_status(
    uid: str,
    student_id: str,
    body: StudentStatusRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Move one student along its pipeline; the owning UID may follow."""
    target = _parse_status(body.status)
    student = workflow.update_student_status(db, uid, student_id, target, actor)
    record = store.get_uid(db, uid)
    return {"student": serialize_student(student), "uid_status": record.status}

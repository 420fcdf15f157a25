"""
UID API routes - creation, listing, assignment and deletion of training
sessions, plus the generic status transition.

Provides endpoints for:
- Creating a UID (admin)
- Listing UIDs as seen by the calling actor
- Viewing a UID with its students and documents (assigned staff or admin)
- Assigning staff, transitioning and deleting (admin)
- Reading the activity log
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from trainingflow.database import get_db
from trainingflow.routes.deps import get_actor
from trainingflow.serializers import (
    serialize_activity, serialize_attendance, serialize_moderation, serialize_uid,
)
from trainingflow.services import store, workflow
from trainingflow.services.transitions import Actor
from trainingflow.services.vocabulary import Role, UidStatus
from trainingflow.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class CreateUidRequest(BaseModel):
    """Assessor details captured when the admin creates a session."""
    assessor_name: str = ""
    assessor_number: str = ""
    assessor_age: Optional[int] = None


class AssignRequest(BaseModel):
    """Staff binding; omitted fields stay as they are unless `clear` is set."""
    assessor_id: Optional[str] = None
    moderator_id: Optional[str] = None
    clear: bool = False


class StatusRequest(BaseModel):
    status: str


# ── Routes ───────────────────────────────────────────────────

@router.post("/api/uid", status_code=201)
def create_uid(
    body: CreateUidRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Allocate the next sequential UID in `pending`."""
    record = workflow.create_uid(db, actor, body.assessor_name, body.assessor_number,
                                 body.assessor_age)
    return serialize_uid(record)


@router.get("/api/uids")
def list_uids(
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    List UIDs through the assignment filter, as seen by the calling actor.

    Admins see everything; assessors and moderators only the UIDs bound to
    their user id. A staff caller without a user id sees nothing.
    """
    records = store.list_uids(db, actor.user_id, actor.role)

    log_with_context(logger, "INFO", "Listed {} UIDs".format(len(records)),
                     extra_data={"role": actor.role.value, "user_id": actor.user_id})

    return {"data": [serialize_uid(r) for r in records], "total": len(records)}


@router.get("/api/uid/{uid}")
def get_uid(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Get one UID with its students, attendance sheet and moderation document."""
    record = store.get_visible_uid(db, uid, actor.user_id, actor.role)
    result = serialize_uid(record, include_students=True)
    result["attendance"] = serialize_attendance(record.attendance)
    result["moderation"] = serialize_moderation(record.moderation)
    return result


@router.delete("/api/uid/{uid}")
def delete_uid(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Delete the UID and all dependent records in one transaction."""
    removed = workflow.delete_uid(db, uid, actor)
    return {"deleted": uid, "removed": removed}


@router.put("/api/uid/{uid}/assign")
def assign_uid(
    uid: str,
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    record = workflow.assign_uid(db, uid, actor, body.assessor_id, body.moderator_id, body.clear)
    return serialize_uid(record)


@router.put("/api/uid/{uid}/status")
def update_uid_status(
    uid: str,
    body: StatusRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """Move the UID along one edge of the status graph."""
    try:
        target = UidStatus(body.status)
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown UID status '{}'".format(body.status))
    record = workflow.update_uid_status(db, uid, target, actor)
    return serialize_uid(record)


@router.get("/api/uid/{uid}/activity")
def get_activity(
    uid: str,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db)
):
    """
    Activity log for the UID, oldest first. Survives UID deletion; the log
    of a deleted UID is readable by admins only.
    """
    if actor.role != Role.ADMIN:
        store.get_visible_uid(db, uid, actor.user_id, actor.role)
    entries = store.get_activity(db, uid)
    return {"uid": uid, "data": [serialize_activity(e) for e in entries], "total": len(entries)}

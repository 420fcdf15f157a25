"""Serialize ORM records into API response dicts."""

from trainingflow.models.activity_log import ActivityLog
from trainingflow.models.documents import AttendanceSheet, ModerationDocument
from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord


def _iso(value):
    return value.isoformat() if value else None


def serialize_student(student: StudentRecord, include_form: bool = False) -> dict:
    result = {
        "uid": student.uid,
        "student_id": student.student_id,
        "learner_name": student.learner_name,
        "company_name": student.company_name,
        "status": student.status,
        "created_at": _iso(student.created_at),
        "reviewed_at": _iso(student.reviewed_at),
        "moderated_at": _iso(student.moderated_at),
        "decided_at": _iso(student.decided_at),
    }
    if include_form:
        result["form_version"] = student.form_version
        result["form_data"] = student.form_data_dict
    return result


def serialize_uid(record: UidRecord, include_students: bool = False) -> dict:
    result = {
        "uid": record.uid,
        "status": record.status,
        "created_at": _iso(record.created_at),
        "assessor": {
            "name": record.assessor_name,
            "number": record.assessor_number,
            "age": record.assessor_age,
        },
        "assigned_assessor_id": record.assigned_assessor_id,
        "assigned_moderator_id": record.assigned_moderator_id,
        "student_count": record.student_count,
        "attendance_saved_at": _iso(record.attendance_saved_at),
        "sent_to_moderator_at": _iso(record.sent_to_moderator_at),
        "sent_to_admin_at": _iso(record.sent_to_admin_at),
        "approved_at": _iso(record.approved_at),
    }
    if include_students:
        result["students"] = [serialize_student(s) for s in record.students]
    return result


def serialize_attendance(sheet: AttendanceSheet) -> dict:
    if sheet is None:
        return None
    return {"uid": sheet.uid, "payload": sheet.payload_dict, "saved_at": _iso(sheet.saved_at)}


def serialize_moderation(document: ModerationDocument) -> dict:
    if document is None:
        return None
    return {
        "uid": document.uid,
        "status": document.status,
        "form_data": document.form_data_dict,
        "submitted_at": _iso(document.submitted_at),
    }


def serialize_activity(entry: ActivityLog) -> dict:
    return {
        "id": entry.id,
        "uid": entry.uid,
        "action": entry.action,
        "actor_role": entry.actor_role,
        "actor_id": entry.actor_id,
        "details": entry.details_dict,
        "created_at": _iso(entry.created_at),
    }

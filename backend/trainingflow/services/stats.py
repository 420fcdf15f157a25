"""
Aggregation Engine - live dashboard statistics.

Counts are recomputed from the status columns on every call; nothing is
cached, so a snapshot always reflects the latest committed state.

Combined metrics:
- with_assessor_count  = assessor_started + user_submitted + assessor_reviewed
  (the assessor has started and not yet handed the UID to moderation)
- with_moderator_count = ready_for_moderation + moderation_complete
  (sent_to_admin and approved are never included)
"""

import time
from collections import Counter
from typing import Iterable

from sqlalchemy.orm import Session

from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord
from trainingflow.services.vocabulary import StudentStatus, UidStatus
from trainingflow.logging_config import get_logger, log_with_context

logger = get_logger("db")

WITH_ASSESSOR_STATUSES = (
    UidStatus.ASSESSOR_STARTED,
    UidStatus.USER_SUBMITTED,
    UidStatus.ASSESSOR_REVIEWED,
)
WITH_MODERATOR_STATUSES = (
    UidStatus.READY_FOR_MODERATION,
    UidStatus.MODERATION_COMPLETE,
)


def tally(uid_statuses: Iterable[str], student_statuses: Iterable[str]) -> dict:
    """Build a statistics snapshot from plain status lists."""
    uid_counts = Counter(uid_statuses)
    student_counts = Counter(student_statuses)

    uid_status_counts = {s.value: uid_counts.get(s.value, 0) for s in UidStatus}
    student_status_counts = {s.value: student_counts.get(s.value, 0) for s in StudentStatus}

    snapshot = {
        "total_uids": sum(uid_counts.values()),
        "uid_status_counts": uid_status_counts,
        "with_assessor_count": sum(uid_status_counts[s.value] for s in WITH_ASSESSOR_STATUSES),
        "with_moderator_count": sum(uid_status_counts[s.value] for s in WITH_MODERATOR_STATUSES),
        "total_students": sum(student_counts.values()),
        "student_status_counts": student_status_counts,
    }
    for status, count in uid_status_counts.items():
        snapshot["{}_count".format(status)] = count
    for status, count in student_status_counts.items():
        snapshot["students_{}".format(status)] = count
    return snapshot


def compute_stats(db: Session) -> dict:
    """Read every UID and student status and tally them. Never writes."""
    start_time = time.time()

    uid_statuses = [row[0] for row in db.query(UidRecord.status).all()]
    student_statuses = [row[0] for row in db.query(StudentRecord.status).all()]
    snapshot = tally(uid_statuses, student_statuses)

    log_with_context(logger, "DEBUG",
        "Stats computed: {} UIDs, {} students".format(snapshot["total_uids"], snapshot["total_students"]),
        extra_data={"duration_ms": round((time.time() - start_time) * 1000, 2)})
    return snapshot

from trainingflow.models.uid_record import UidRecord
from trainingflow.models.student import StudentRecord
from trainingflow.models.documents import AttendanceSheet, ModerationDocument
from trainingflow.models.activity_log import ActivityLog

__all__ = ["UidRecord", "StudentRecord", "AttendanceSheet", "ModerationDocument", "ActivityLog"]

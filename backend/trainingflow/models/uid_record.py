"""
UidRecord model - one training engagement, identified by a sequential UID.

The UID is the top-level unit of the workflow. It owns its student
submissions, its attendance sheet and its moderation document; deleting the
UID removes all of them.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, Index
from sqlalchemy.orm import relationship
from trainingflow.database import Base


class UidRecord(Base):
    """
    SQLAlchemy model for the uids table.

    `status` is only ever written by the transition engine. `version` is the
    mapper's version counter: an UPDATE that finds a different version than
    the one it loaded raises StaleDataError instead of silently overwriting.
    """
    __tablename__ = "uids"

    uid = Column(String(16), primary_key=True,
                 doc="Sequential engagement identifier, e.g. '1001'")
    status = Column(Text, nullable=False, default="pending",
                    doc="UID pipeline status (see services/vocabulary.py)")
    assessor_name = Column(Text, nullable=False, default="",
                           doc="Assessor profile captured at creation")
    assessor_number = Column(Text, nullable=False, default="")
    assessor_age = Column(Integer, nullable=True)
    assigned_assessor_id = Column(Text, nullable=True,
                                  doc="User allowed to act as assessor on this UID")
    assigned_moderator_id = Column(Text, nullable=True,
                                   doc="User allowed to act as moderator on this UID")
    student_count = Column(Integer, nullable=False, default=0,
                           doc="Cached number of attached student records")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    attendance_saved_at = Column(DateTime, nullable=True)
    sent_to_moderator_at = Column(DateTime, nullable=True)
    sent_to_admin_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    students = relationship("StudentRecord", back_populates="uid_record",
                            cascade="all, delete-orphan", passive_deletes=True,
                            order_by="StudentRecord.created_at")
    attendance = relationship("AttendanceSheet", back_populates="uid_record", uselist=False,
                              cascade="all, delete-orphan", passive_deletes=True)
    moderation = relationship("ModerationDocument", back_populates="uid_record", uselist=False,
                              cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_uids_status", "status"),
        Index("ix_uids_assigned_assessor_id", "assigned_assessor_id"),
        Index("ix_uids_assigned_moderator_id", "assigned_moderator_id"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<UidRecord(uid={self.uid}, status='{self.status}', students={self.student_count})>"

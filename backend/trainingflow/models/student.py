"""
StudentRecord model - one learner's form submission within a UID.

The form itself is an opaque, versioned JSON blob: the workflow never looks
inside it beyond pulling the learner and company names for display.
"""

import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, DateTime, String, ForeignKey, Index
from sqlalchemy.orm import relationship
from trainingflow.database import Base


class StudentRecord(Base):
    """
    SQLAlchemy model for the students table.

    Keyed by (uid, student_id); student ids are only unique inside their UID.
    """
    __tablename__ = "students"

    uid = Column(String(16), ForeignKey("uids.uid", ondelete="CASCADE"), primary_key=True,
                 doc="Owning UID")
    student_id = Column(String(32), primary_key=True,
                        doc="Identifier scoped to the owning UID, e.g. '1001-3'")
    learner_name = Column(Text, nullable=False, default="")
    company_name = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False, default="pending_review",
                    doc="Student pipeline status (see services/vocabulary.py)")
    form_data = Column(Text, nullable=False, default="{}",
                       doc="Learner form payload as JSON")
    form_version = Column(Integer, nullable=False, default=1,
                          doc="Schema version tag of form_data")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    reviewed_at = Column(DateTime, nullable=True,
                         doc="Set when the assessor review completes")
    moderated_at = Column(DateTime, nullable=True)
    decided_at = Column(DateTime, nullable=True,
                        doc="Set when an admin approves or rejects")
    version = Column(Integer, nullable=False, default=1)

    uid_record = relationship("UidRecord", back_populates="students")

    __table_args__ = (
        Index("ix_students_status", "status"),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def form_data_dict(self):
        """Parse form_data JSON string to dict."""
        if isinstance(self.form_data, dict):
            return self.form_data
        try:
            return json.loads(self.form_data) if self.form_data else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<StudentRecord(uid={self.uid}, student_id={self.student_id}, status='{self.status}')>"

"""
Per-UID documents: the assessor's attendance sheet and the moderator's
moderation pages. Both are stored as opaque JSON and exist at most once per
UID (saving again overwrites).
"""

import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, ForeignKey
from sqlalchemy.orm import relationship
from trainingflow.database import Base


def _parse_json(value):
    """Parse JSON from string or return dict as-is."""
    if isinstance(value, dict):
        return value
    try:
        return json.loads(value) if value else {}
    except (json.JSONDecodeError, TypeError):
        return {}


class AttendanceSheet(Base):
    """SQLAlchemy model for the attendance table (one row per UID)."""
    __tablename__ = "attendance"

    uid = Column(String(16), ForeignKey("uids.uid", ondelete="CASCADE"), primary_key=True)
    payload = Column(Text, nullable=False, default="{}",
                     doc="Attendance sheet content as JSON")
    saved_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    uid_record = relationship("UidRecord", back_populates="attendance")

    @property
    def payload_dict(self):
        return _parse_json(self.payload)

    def __repr__(self):
        return f"<AttendanceSheet(uid={self.uid})>"


class ModerationDocument(Base):
    """SQLAlchemy model for the moderation_pages table (one row per UID)."""
    __tablename__ = "moderation_pages"

    uid = Column(String(16), ForeignKey("uids.uid", ondelete="CASCADE"), primary_key=True)
    form_data = Column(Text, nullable=False, default="{}",
                       doc="Moderation pages content as JSON")
    status = Column(Text, nullable=False, default="completed")
    submitted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    uid_record = relationship("UidRecord", back_populates="moderation")

    @property
    def form_data_dict(self):
        return _parse_json(self.form_data)

    def __repr__(self):
        return f"<ModerationDocument(uid={self.uid}, status='{self.status}')>"

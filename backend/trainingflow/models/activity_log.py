"""
ActivityLog model - append-only audit trail of workflow actions.

Rows reference the UID by value, not by foreign key, so the trail of a
deleted UID (including the deletion itself) survives the cascade.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Index
from trainingflow.database import Base


class ActivityLog(Base):
    """SQLAlchemy model for the activity_log table."""
    __tablename__ = "activity_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    uid = Column(String(16), nullable=False)
    action = Column(Text, nullable=False,
                    doc="Event name of the committed operation")
    actor_role = Column(Text, nullable=False)
    actor_id = Column(Text, nullable=True)
    details = Column(Text, nullable=True,
                     doc="Action details as JSON (old/new status, student id)")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_activity_log_uid", "uid"),
    )

    @property
    def details_dict(self):
        try:
            return json.loads(self.details) if self.details else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<ActivityLog(uid={self.uid}, action='{self.action}', actor='{self.actor_role}')>"

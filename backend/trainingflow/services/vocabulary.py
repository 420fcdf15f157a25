"""
Status Vocabulary - the fixed states, roles, edges and event names of the
training assessment workflow.

UID pipeline (forward only, approved is terminal):

    pending -> assessor_started -> user_submitted -> assessor_reviewed
      -> ready_for_moderation -> moderation_complete -> sent_to_admin
      -> approved

Student pipeline (independent per learner):

    pending_review -> pending_moderation -> moderated -> sent_to_admin
      -> approved | rejected

The tables below are the only source of truth for what may happen. They are
deliberately small literals: adding a status means revisiting every table
here and the combined metrics in services/stats.py.
"""

from enum import Enum


class UidStatus(str, Enum):
    PENDING = "pending"
    ASSESSOR_STARTED = "assessor_started"
    USER_SUBMITTED = "user_submitted"
    ASSESSOR_REVIEWED = "assessor_reviewed"
    READY_FOR_MODERATION = "ready_for_moderation"
    MODERATION_COMPLETE = "moderation_complete"
    SENT_TO_ADMIN = "sent_to_admin"
    APPROVED = "approved"


class StudentStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    PENDING_MODERATION = "pending_moderation"
    MODERATED = "moderated"
    SENT_TO_ADMIN = "sent_to_admin"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    ADMIN = "admin"
    ASSESSOR = "assessor"
    MODERATOR = "moderator"
    LEARNER = "learner"     # public form submitter
    SYSTEM = "system"       # transitions derived by the server itself


class EventName(str, Enum):
    UID_CREATED = "uid_created"
    ATTENDANCE_SAVED = "attendance_saved"
    USER_FORM_SAVED = "user_form_saved"
    SEND_TO_MODERATOR = "send_to_moderator"
    MODERATION_SAVED = "moderation_saved"
    SENT_TO_ADMIN = "sent_to_admin"
    UID_APPROVED = "uid_approved"
    STUDENT_STATUS_UPDATED = "student_status_updated"
    UID_DELETED = "uid_deleted"
    ASSESSOR_REVIEW_COMPLETE = "assessor_review_complete"
    ASSESSOR_EDITED = "assessor_edited"
    UID_ASSIGNED = "uid_assigned"


# (from, to) -> roles allowed to trigger the edge
UID_TRANSITIONS = {
    (UidStatus.PENDING, UidStatus.ASSESSOR_STARTED): frozenset({Role.ASSESSOR}),
    (UidStatus.PENDING, UidStatus.USER_SUBMITTED): frozenset({Role.SYSTEM}),
    (UidStatus.ASSESSOR_STARTED, UidStatus.USER_SUBMITTED): frozenset({Role.SYSTEM}),
    # Attendance-only engagements go straight to sign-off
    (UidStatus.ASSESSOR_STARTED, UidStatus.SENT_TO_ADMIN): frozenset({Role.ASSESSOR}),
    (UidStatus.USER_SUBMITTED, UidStatus.ASSESSOR_REVIEWED): frozenset({Role.ASSESSOR, Role.SYSTEM}),
    (UidStatus.ASSESSOR_REVIEWED, UidStatus.READY_FOR_MODERATION): frozenset({Role.ASSESSOR}),
    (UidStatus.READY_FOR_MODERATION, UidStatus.MODERATION_COMPLETE): frozenset({Role.MODERATOR}),
    (UidStatus.MODERATION_COMPLETE, UidStatus.SENT_TO_ADMIN): frozenset({Role.MODERATOR}),
    (UidStatus.SENT_TO_ADMIN, UidStatus.APPROVED): frozenset({Role.ADMIN}),
}

STUDENT_TRANSITIONS = {
    (StudentStatus.PENDING_REVIEW, StudentStatus.PENDING_MODERATION): frozenset({Role.ASSESSOR}),
    (StudentStatus.PENDING_MODERATION, StudentStatus.MODERATED): frozenset({Role.MODERATOR}),
    (StudentStatus.MODERATED, StudentStatus.SENT_TO_ADMIN): frozenset({Role.MODERATOR}),
    (StudentStatus.SENT_TO_ADMIN, StudentStatus.APPROVED): frozenset({Role.ADMIN}),
    (StudentStatus.SENT_TO_ADMIN, StudentStatus.REJECTED): frozenset({Role.ADMIN}),
}

_MODERATION_STAGES = frozenset({
    UidStatus.READY_FOR_MODERATION,
    UidStatus.MODERATION_COMPLETE,
    UidStatus.SENT_TO_ADMIN,
})

# Student status -> UID statuses in which a student may hold it
STUDENT_STAGE_COMPATIBILITY = {
    StudentStatus.PENDING_REVIEW: frozenset({
        UidStatus.PENDING, UidStatus.ASSESSOR_STARTED, UidStatus.USER_SUBMITTED,
    }),
    StudentStatus.PENDING_MODERATION: frozenset({
        UidStatus.USER_SUBMITTED, UidStatus.ASSESSOR_REVIEWED,
        UidStatus.READY_FOR_MODERATION, UidStatus.MODERATION_COMPLETE,
    }),
    StudentStatus.MODERATED: _MODERATION_STAGES,
    StudentStatus.SENT_TO_ADMIN: _MODERATION_STAGES,
    StudentStatus.APPROVED: frozenset({UidStatus.SENT_TO_ADMIN, UidStatus.APPROVED}),
    StudentStatus.REJECTED: frozenset({UidStatus.SENT_TO_ADMIN, UidStatus.APPROVED}),
}

ACCEPTING_SUBMISSIONS = frozenset({
    UidStatus.PENDING, UidStatus.ASSESSOR_STARTED, UidStatus.USER_SUBMITTED,
})

# Event emitted when a UID reaches a status through the generic status endpoint
UID_STATUS_EVENTS = {
    UidStatus.ASSESSOR_STARTED: EventName.ATTENDANCE_SAVED,
    UidStatus.USER_SUBMITTED: EventName.USER_FORM_SAVED,
    UidStatus.ASSESSOR_REVIEWED: EventName.ASSESSOR_REVIEW_COMPLETE,
    UidStatus.READY_FOR_MODERATION: EventName.SEND_TO_MODERATOR,
    UidStatus.MODERATION_COMPLETE: EventName.MODERATION_SAVED,
    UidStatus.SENT_TO_ADMIN: EventName.SENT_TO_ADMIN,
    UidStatus.APPROVED: EventName.UID_APPROVED,
}


def uid_edge_roles(current, target):
    """Roles allowed on the UID edge current -> target, or None if no such edge."""
    return UID_TRANSITIONS.get((UidStatus(current), UidStatus(target)))


def student_edge_roles(current, target):
    """Roles allowed on the student edge current -> target, or None if no such edge."""
    return STUDENT_TRANSITIONS.get((StudentStatus(current), StudentStatus(target)))


def pipeline_index(status) -> int:
    """Position of a UID status in the pipeline (0 for pending)."""
    return list(UidStatus).index(UidStatus(status))

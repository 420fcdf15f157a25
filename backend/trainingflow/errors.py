"""
Workflow error taxonomy.

Every failure the state store or the transition engine can report is one of
these classes. Services raise them unmodified; the exception handler in
main.py maps each one onto its HTTP status code and a JSON body:

    {"detail": "<human readable>", "error": "<code>"}
"""


class WorkflowError(Exception):
    """Base class for all workflow failures surfaced to callers."""

    status_code = 400
    code = "workflow_error"

    def __init__(self, message: str, context: dict = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NotFound(WorkflowError):
    """Referenced UID, student or document does not exist. Not retryable."""

    status_code = 404
    code = "not_found"


class InvalidTransition(WorkflowError):
    """Requested status is not reachable from the current status."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str, reason: str = None):
        message = "Cannot move {} from '{}' to '{}'".format(entity, current, target)
        if reason:
            message = "{}: {}".format(message, reason)
        super().__init__(message, {"entity": entity, "current": current, "target": target})
        self.current = current
        self.target = target


class Forbidden(WorkflowError):
    """Actor role or identity is not permitted to perform the action."""

    status_code = 403
    code = "forbidden"


class ConcurrentModification(WorkflowError):
    """Entity changed between read and write. Re-fetch, then retry the intent."""

    status_code = 409
    code = "concurrent_modification"


class AllocationConflict(WorkflowError):
    """Two creators derived the same next UID. Retry creation."""

    status_code = 409
    code = "allocation_conflict"


class CascadeFailure(WorkflowError):
    """UID deletion cascade failed and was rolled back. Needs attention."""

    status_code = 500
    code = "cascade_failure"

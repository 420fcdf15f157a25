"""
Dashboard cache reducer - how a connected dashboard folds pushed events into
its local view.

A dashboard loads a full snapshot on mount (or reconnect) and afterwards
only applies events through `apply_event`. The reducer is pure and every
event overwrites values by key, so it is idempotent: applying the same event
twice leaves the cache as applying it once. Events carry no ordering
guarantee; anything the reducer cannot patch locally sets `needs_reload`.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Tuple

from trainingflow.services.broadcaster import Event
from trainingflow.services.vocabulary import EventName, StudentStatus

StudentKey = Tuple[str, str]

_EMPTY_UID = {
    "status": None,
    "student_count": 0,
    "assigned_assessor_id": None,
    "assigned_moderator_id": None,
}


@dataclass(frozen=True)
class DashboardCache:
    """Local view: UID -> fields, (uid, student_id) -> status. Treated as immutable."""
    uids: Dict[str, dict] = field(default_factory=dict)
    students: Dict[StudentKey, str] = field(default_factory=dict)
    needs_reload: bool = False

    @classmethod
    def from_snapshot(cls, uids: Iterable[dict], students: Iterable[dict]) -> "DashboardCache":
        """Build the cache from the list endpoints' JSON (full reload)."""
        uid_map = {
            u["uid"]: {
                "status": u["status"],
                "student_count": u.get("student_count", 0),
                "assigned_assessor_id": u.get("assigned_assessor_id"),
                "assigned_moderator_id": u.get("assigned_moderator_id"),
            }
            for u in uids
        }
        student_map = {(s["uid"], s["student_id"]): s["status"] for s in students}
        return cls(uids=uid_map, students=student_map)


def _patch_uid(cache: DashboardCache, uid: str, **fields) -> Dict[str, dict]:
    uids = dict(cache.uids)
    entry = dict(uids.get(uid, _EMPTY_UID))
    entry.update(fields)
    uids[uid] = entry
    return uids


def apply_event(cache: DashboardCache, event: Event) -> DashboardCache:
    """Return the cache with `event` applied. Never mutates `cache`."""
    try:
        name = EventName(event.name)
    except ValueError:
        return cache
    data = event.data
    uid = data.get("uid")
    if uid is None:
        return replace(cache, needs_reload=True)

    if name == EventName.UID_DELETED:
        return replace(
            cache,
            uids={k: v for k, v in cache.uids.items() if k != uid},
            students={k: v for k, v in cache.students.items() if k[0] != uid},
        )

    if name == EventName.UID_ASSIGNED:
        return replace(cache, uids=_patch_uid(
            cache, uid,
            assigned_assessor_id=data.get("assigned_assessor_id"),
            assigned_moderator_id=data.get("assigned_moderator_id"),
        ))

    if name == EventName.USER_FORM_SAVED:
        students = dict(cache.students)
        students[(uid, data["student_id"])] = StudentStatus.PENDING_REVIEW.value
        return replace(
            cache,
            uids=_patch_uid(cache, uid, status=data["status"], student_count=data["student_count"]),
            students=students,
        )

    if "student_id" in data:
        # assessor_review_complete, assessor_edited and student_status_updated
        students = dict(cache.students)
        students[(uid, data["student_id"])] = data["status"]
        return replace(
            cache,
            uids=_patch_uid(cache, uid, status=data["uid_status"]),
            students=students,
        )

    # uid_created and the plain UID status events
    return replace(cache, uids=_patch_uid(cache, uid, status=data["status"]))

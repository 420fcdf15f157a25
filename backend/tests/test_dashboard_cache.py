"""Dashboard cache reducer: events are folded idempotently into the local view."""
from trainingflow.services.broadcaster import Event
from trainingflow.services.dashboard_cache import DashboardCache, apply_event
from trainingflow.services.vocabulary import EventName


def _cache():
    return DashboardCache.from_snapshot(
        uids=[
            {'uid': '1001', 'status': 'user_submitted', 'student_count': 2},
            {'uid': '1002', 'status': 'pending', 'student_count': 0},
        ],
        students=[
            {'uid': '1001', 'student_id': '1001-1', 'status': 'pending_review'},
            {'uid': '1001', 'student_id': '1001-2', 'status': 'pending_moderation'},
        ],
    )


def test_student_status_update_is_idempotent():
    event = Event(EventName.STUDENT_STATUS_UPDATED, {
        'uid': '1001', 'student_id': '1001-2', 'status': 'moderated',
        'uid_status': 'ready_for_moderation',
    })
    once = apply_event(_cache(), event)
    twice = apply_event(once, event)
    assert once == twice
    assert once.students[('1001', '1001-2')] == 'moderated'
    assert once.uids['1001']['status'] == 'ready_for_moderation'


def test_form_submission_sets_count_instead_of_incrementing():
    event = Event(EventName.USER_FORM_SAVED, {
        'uid': '1002', 'student_id': '1002-1', 'student_count': 1, 'status': 'user_submitted',
    })
    twice = apply_event(apply_event(_cache(), event), event)
    assert twice.uids['1002']['student_count'] == 1
    assert twice.students[('1002', '1002-1')] == 'pending_review'


def test_apply_does_not_mutate_the_input():
    cache = _cache()
    apply_event(cache, Event(EventName.SENT_TO_ADMIN, {'uid': '1001', 'status': 'sent_to_admin'}))
    assert cache.uids['1001']['status'] == 'user_submitted'


def test_delete_drops_uid_and_its_students():
    cache = apply_event(_cache(), Event(EventName.UID_DELETED, {'uid': '1001'}))
    assert '1001' not in cache.uids
    assert not any(uid == '1001' for uid, _ in cache.students)
    assert apply_event(cache, Event(EventName.UID_DELETED, {'uid': '1001'})) == cache


def test_unknown_uid_is_added():
    cache = apply_event(_cache(), Event(EventName.UID_CREATED, {'uid': '1003', 'status': 'pending'}))
    assert cache.uids['1003']['status'] == 'pending'
    assert cache.uids['1003']['student_count'] == 0


def test_assignment_event_updates_binding():
    cache = apply_event(_cache(), Event(EventName.UID_ASSIGNED, {
        'uid': '1002', 'assigned_assessor_id': 'a-1', 'assigned_moderator_id': None,
    }))
    assert cache.uids['1002']['assigned_assessor_id'] == 'a-1'
    assert cache.uids['1002']['status'] == 'pending'


def test_event_without_uid_requests_reload():
    cache = apply_event(_cache(), Event(EventName.UID_APPROVED, {}))
    assert cache.needs_reload
    assert cache.uids == _cache().uids


def test_assessor_edit_keeps_student_awaiting_review():
    event = Event(EventName.ASSESSOR_EDITED, {
        'uid': '1001', 'student_id': '1001-1', 'status': 'pending_review',
        'uid_status': 'user_submitted',
    })
    cache = _cache()
    edited = apply_event(apply_event(cache, event), event)
    assert edited == cache

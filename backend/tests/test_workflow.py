"""Workflow operations: commit then publish, derived UID statuses, permissions."""
import asyncio

import pytest

from trainingflow.errors import Forbidden, InvalidTransition, NotFound
from trainingflow.services import store, workflow
from trainingflow.services.broadcaster import broadcaster
from trainingflow.services.transitions import Actor
from trainingflow.services.vocabulary import EventName, Role


def _drain(subscription):
    events = []
    while not subscription.queue.empty():
        events.append(subscription.queue.get_nowait())
    return events


@pytest.fixture
def subscription():
    loop = asyncio.new_event_loop()
    sub = broadcaster.subscribe(loop=loop)
    yield sub
    broadcaster.unsubscribe(sub)
    loop.close()


def _published(subscription):
    # run the loop once so call_soon_threadsafe callbacks land in the queue
    subscription.loop.run_until_complete(asyncio.sleep(0))
    return _drain(subscription)


def test_create_is_admin_only(db, assessor):
    with pytest.raises(Forbidden):
        workflow.create_uid(db, assessor)
    assert store.list_uids(db, None, 'admin') == []


def test_first_attendance_starts_the_assessor_stage(db, assigned_uid, assessor, subscription):
    _published(subscription)
    record = workflow.save_attendance(db, assigned_uid, {'present': ['a']}, assessor)
    assert record.status == 'assessor_started'
    assert record.attendance_saved_at is not None

    events = _published(subscription)
    assert [e.name for e in events] == [EventName.ATTENDANCE_SAVED]
    assert events[0].data == {'uid': assigned_uid, 'status': 'assessor_started'}


def test_attendance_resave_keeps_status(db, assigned_uid, assessor):
    workflow.save_attendance(db, assigned_uid, {'present': ['a']}, assessor)
    record = workflow.save_attendance(db, assigned_uid, {'present': ['a', 'b']}, assessor)
    assert record.status == 'assessor_started'
    assert store.get_attendance(db, assigned_uid).payload_dict == {'present': ['a', 'b']}


def test_attendance_resave_by_other_assessor_is_forbidden(db, assigned_uid, assessor):
    workflow.save_attendance(db, assigned_uid, {'present': ['a']}, assessor)
    with pytest.raises(Forbidden):
        workflow.save_attendance(db, assigned_uid, {}, Actor(Role.ASSESSOR, 'assessor-2'))


def test_submission_moves_uid_to_user_submitted(db, assigned_uid, assessor, learner_form):
    workflow.save_attendance(db, assigned_uid, {}, assessor)
    student = workflow.submit_form(db, assigned_uid, learner_form())
    assert student.status == 'pending_review'
    assert student.learner_name == 'Thandi Mokoena'
    assert store.get_uid(db, assigned_uid).status == 'user_submitted'


def test_submission_before_attendance_also_counts(db, assigned_uid, learner_form):
    workflow.submit_form(db, assigned_uid, learner_form())
    assert store.get_uid(db, assigned_uid).status == 'user_submitted'


def test_last_review_makes_uid_reviewed(db, assigned_uid, assessor, learner_form, subscription):
    first = workflow.submit_form(db, assigned_uid, learner_form('A'))
    second = workflow.submit_form(db, assigned_uid, learner_form('B'))

    workflow.complete_review(db, assigned_uid, first.student_id, assessor)
    assert store.get_uid(db, assigned_uid).status == 'user_submitted'

    _published(subscription)
    workflow.complete_review(db, assigned_uid, second.student_id, assessor)
    assert store.get_uid(db, assigned_uid).status == 'assessor_reviewed'

    events = _published(subscription)
    assert len(events) == 1
    assert events[0].name == EventName.ASSESSOR_REVIEW_COMPLETE
    assert events[0].data['uid_status'] == 'assessor_reviewed'


def test_cannot_send_to_moderation_before_reviews(db, assigned_uid, assessor, learner_form):
    workflow.submit_form(db, assigned_uid, learner_form())
    with pytest.raises(InvalidTransition):
        workflow.send_to_moderator(db, assigned_uid, assessor)
    assert store.get_uid(db, assigned_uid).status == 'user_submitted'


def test_submissions_close_after_review(db, assigned_uid, assessor, learner_form):
    student = workflow.submit_form(db, assigned_uid, learner_form())
    workflow.complete_review(db, assigned_uid, student.student_id, assessor)
    with pytest.raises(InvalidTransition):
        workflow.submit_form(db, assigned_uid, learner_form('Late'))
    assert store.get_uid(db, assigned_uid).student_count == 1


def test_failed_operation_publishes_nothing(db, assigned_uid, admin, subscription):
    _published(subscription)
    with pytest.raises(InvalidTransition):
        workflow.update_uid_status(db, assigned_uid, 'approved', admin)
    assert _published(subscription) == []
    assert store.get_uid(db, assigned_uid).status == 'pending'


def test_full_pipeline(db, assigned_uid, admin, assessor, moderator, learner_form):
    uid = assigned_uid
    workflow.save_attendance(db, uid, {'present': ['A']}, assessor)
    student_id = workflow.submit_form(db, uid, learner_form('A')).student_id
    workflow.complete_review(db, uid, student_id, assessor)
    workflow.send_to_moderator(db, uid, assessor)
    workflow.update_student_status(db, uid, student_id, 'moderated', moderator)
    workflow.save_moderation(db, uid, {'outcome': 'competent'}, moderator)
    workflow.update_student_status(db, uid, student_id, 'sent_to_admin', moderator)
    workflow.send_to_admin(db, uid, moderator)
    workflow.update_student_status(db, uid, student_id, 'approved', admin)
    record = workflow.approve_uid(db, uid, admin)

    assert record.status == 'approved'
    assert store.get_student(db, uid, student_id).status == 'approved'
    assert store.get_moderation(db, uid).status == 'completed'
    actions = [entry.action for entry in store.get_activity(db, uid)]
    assert actions.count('student_status_updated') == 3
    assert actions[-1] == 'uid_approved'


def test_moderation_by_unassigned_moderator(db, assigned_uid, assessor, learner_form):
    student_id = workflow.submit_form(db, assigned_uid, learner_form()).student_id
    workflow.complete_review(db, assigned_uid, student_id, assessor)
    workflow.send_to_moderator(db, assigned_uid, assessor)
    with pytest.raises(Forbidden):
        workflow.save_moderation(db, assigned_uid, {}, Actor(Role.MODERATOR, 'moderator-9'))
    assert store.get_moderation(db, assigned_uid) is None


def test_delete_publishes_uid_deleted(db, assigned_uid, admin, subscription):
    _published(subscription)
    workflow.delete_uid(db, assigned_uid, admin)
    events = _published(subscription)
    assert [e.name for e in events] == [EventName.UID_DELETED]
    with pytest.raises(NotFound):
        store.get_uid(db, assigned_uid)


def test_assign_can_clear_bindings(db, assigned_uid, admin):
    record = workflow.assign_uid(db, assigned_uid, admin, moderator_id='moderator-2')
    assert record.assigned_assessor_id == 'assessor-1'
    assert record.assigned_moderator_id == 'moderator-2'
    record = workflow.assign_uid(db, assigned_uid, admin, clear=True)
    assert record.assigned_assessor_id is None
    assert record.assigned_moderator_id is None


def test_assessor_edit_rederives_names(db, assigned_uid, assessor, learner_form, subscription):
    student_id = workflow.submit_form(db, assigned_uid, learner_form()).student_id
    _published(subscription)

    student = workflow.edit_student_form(db, assigned_uid, student_id,
                                         learner_form('Thandi Mokoena-Dlamini', 'Acme'), assessor)

    assert student.learner_name == 'Thandi Mokoena-Dlamini'
    assert student.company_name == 'Acme'
    assert student.status == 'pending_review'
    assert store.get_uid(db, assigned_uid).status == 'user_submitted'
    events = _published(subscription)
    assert [e.name for e in events] == [EventName.ASSESSOR_EDITED]
    assert store.get_activity(db, assigned_uid)[-1].action == 'assessor_edited'


def test_assessor_edit_needs_the_assigned_assessor(db, assigned_uid, moderator, learner_form):
    student_id = workflow.submit_form(db, assigned_uid, learner_form()).student_id
    with pytest.raises(Forbidden):
        workflow.edit_student_form(db, assigned_uid, student_id, learner_form('X'),
                                   Actor(Role.ASSESSOR, 'assessor-2'))
    with pytest.raises(Forbidden):
        workflow.edit_student_form(db, assigned_uid, student_id, learner_form('X'), moderator)
    assert store.get_student(db, assigned_uid, student_id).learner_name == 'Thandi Mokoena'

"""Transition engine: graph edges, role gating, staff binding and derived statuses."""
import pytest

from trainingflow.errors import Forbidden, InvalidTransition
from trainingflow.models.student import StudentRecord
from trainingflow.models.uid_record import UidRecord
from trainingflow.services.transitions import (
    Actor, SYSTEM_ACTOR, derive_uid_status, transition_student, transition_uid,
)
from trainingflow.services.vocabulary import (
    Role, StudentStatus, UidStatus, UID_TRANSITIONS, pipeline_index, uid_edge_roles,
)

ADMIN = Actor(Role.ADMIN, 'admin-1')
ASSESSOR = Actor(Role.ASSESSOR, 'assessor-1')
MODERATOR = Actor(Role.MODERATOR, 'moderator-1')


def make_uid(status, assessor='assessor-1', moderator='moderator-1'):
    return UidRecord(uid='1001', status=status.value,
                     assigned_assessor_id=assessor, assigned_moderator_id=moderator,
                     student_count=0)


def make_student(status):
    return StudentRecord(uid='1001', student_id='1001-1', status=status.value)


def test_every_edge_moves_forward():
    for current, target in UID_TRANSITIONS:
        assert pipeline_index(target) > pipeline_index(current)


def test_happy_path_visits_pipeline_in_order():
    record = make_uid(UidStatus.PENDING)
    steps = [
        (UidStatus.ASSESSOR_STARTED, [], ASSESSOR),
        (UidStatus.USER_SUBMITTED, ['pending_review'], SYSTEM_ACTOR),
        (UidStatus.ASSESSOR_REVIEWED, ['pending_moderation'], SYSTEM_ACTOR),
        (UidStatus.READY_FOR_MODERATION, ['pending_moderation'], ASSESSOR),
        (UidStatus.MODERATION_COMPLETE, ['moderated'], MODERATOR),
        (UidStatus.SENT_TO_ADMIN, ['sent_to_admin'], MODERATOR),
        (UidStatus.APPROVED, ['approved'], ADMIN),
    ]
    visited = [pipeline_index(record.status)]
    for target, students, actor in steps:
        change = transition_uid(record, students, target, actor)
        assert change.new_status == target.value
        visited.append(pipeline_index(record.status))
    assert visited == sorted(visited)
    assert record.approved_at is not None


def test_edge_outside_graph_is_invalid_and_leaves_status():
    record = make_uid(UidStatus.PENDING)
    with pytest.raises(InvalidTransition):
        transition_uid(record, [], UidStatus.APPROVED, ADMIN)
    assert record.status == 'pending'


def test_no_self_loops():
    for status in UidStatus:
        assert uid_edge_roles(status, status) is None


def test_backward_move_is_invalid():
    record = make_uid(UidStatus.MODERATION_COMPLETE)
    with pytest.raises(InvalidTransition):
        transition_uid(record, [], UidStatus.READY_FOR_MODERATION, MODERATOR)
    assert record.status == 'moderation_complete'


def test_approved_is_terminal():
    record = make_uid(UidStatus.APPROVED)
    for target in UidStatus:
        with pytest.raises(InvalidTransition):
            transition_uid(record, [], target, ADMIN)


def test_assessor_cannot_approve():
    record = make_uid(UidStatus.SENT_TO_ADMIN)
    with pytest.raises(Forbidden):
        transition_uid(record, [], UidStatus.APPROVED, ASSESSOR)
    assert record.status == 'sent_to_admin'


def test_every_edge_rejects_roles_outside_its_set():
    callers = [ADMIN, ASSESSOR, MODERATOR, SYSTEM_ACTOR, Actor(Role.LEARNER)]
    for (current, target), allowed in UID_TRANSITIONS.items():
        for actor in callers:
            if actor.role in allowed:
                continue
            record = make_uid(current)
            with pytest.raises(Forbidden):
                transition_uid(record, [], target, actor)
            assert record.status == current.value


def test_unassigned_staff_is_forbidden():
    record = make_uid(UidStatus.PENDING, assessor='assessor-2')
    with pytest.raises(Forbidden):
        transition_uid(record, [], UidStatus.ASSESSOR_STARTED, ASSESSOR)

    record = make_uid(UidStatus.PENDING, assessor=None)
    with pytest.raises(Forbidden):
        transition_uid(record, [], UidStatus.ASSESSOR_STARTED, ASSESSOR)
    assert record.status == 'pending'


def test_students_behind_the_uid_block_the_move():
    record = make_uid(UidStatus.MODERATION_COMPLETE)
    with pytest.raises(InvalidTransition) as exc:
        transition_uid(record, ['moderated', 'pending_moderation'], UidStatus.SENT_TO_ADMIN, MODERATOR)
    assert 'pending_moderation' in exc.value.message
    assert record.status == 'moderation_complete'
    assert record.sent_to_admin_at is None


def test_student_pipeline_and_milestones():
    record = make_uid(UidStatus.USER_SUBMITTED)
    student = make_student(StudentStatus.PENDING_REVIEW)
    transition_student(record, student, StudentStatus.PENDING_MODERATION, ASSESSOR)
    assert student.status == 'pending_moderation'
    assert student.reviewed_at is not None


def test_student_move_needs_compatible_uid_stage():
    # moderated students only exist once the UID is in moderation
    record = make_uid(UidStatus.ASSESSOR_REVIEWED)
    student = make_student(StudentStatus.PENDING_MODERATION)
    with pytest.raises(InvalidTransition):
        transition_student(record, student, StudentStatus.MODERATED, MODERATOR)
    assert student.status == 'pending_moderation'


def test_student_decision_is_admin_only():
    record = make_uid(UidStatus.SENT_TO_ADMIN)
    student = make_student(StudentStatus.SENT_TO_ADMIN)
    with pytest.raises(Forbidden):
        transition_student(record, student, StudentStatus.REJECTED, MODERATOR)
    transition_student(record, student, StudentStatus.REJECTED, ADMIN)
    assert student.status == 'rejected'
    assert student.decided_at is not None


def test_rejected_student_is_terminal():
    record = make_uid(UidStatus.SENT_TO_ADMIN)
    student = make_student(StudentStatus.REJECTED)
    with pytest.raises(InvalidTransition):
        transition_student(record, student, StudentStatus.APPROVED, ADMIN)


@pytest.mark.parametrize('uid_status,students,expected', [
    ('pending', [], None),
    ('pending', ['pending_review'], UidStatus.USER_SUBMITTED),
    ('assessor_started', ['pending_review'], UidStatus.USER_SUBMITTED),
    ('user_submitted', ['pending_review', 'pending_moderation'], None),
    ('user_submitted', ['pending_moderation', 'pending_moderation'], UidStatus.ASSESSOR_REVIEWED),
    ('assessor_reviewed', ['pending_moderation'], None),
    ('ready_for_moderation', ['moderated'], None),
])
def test_derive_uid_status(uid_status, students, expected):
    assert derive_uid_status(uid_status, students) == expected

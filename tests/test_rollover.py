from datetime import date

import pytest

from app.core.errors import InputValidationError, InvalidStateError, NotFoundError
from app.models.audit_log import AuditLog
from app.models.task import Task, TaskStatus, TaskVolunteer
from app.services.rollover_service import rollover_open_tasks
from app.services.task_service import defer_task


@pytest.fixture
def next_week(factory, parish):
    return factory.week(parish, date(2024, 6, 19))


def _copies(db, week_id):
    return db.query(Task).filter(Task.week_id == week_id).order_by(Task.rolled_from_task_id).all()


def test_rollover_copies_unfinished_tasks(db, factory, parish, week, next_week, leader, member):
    open_task = factory.task(parish, week, leader, title="Bulletins", owner_id=member.id, estimated_hours=1)
    started = factory.task(parish, week, leader, title="Flowers", status=TaskStatus.IN_PROGRESS.value)
    factory.task(parish, week, leader, title="Done", status=TaskStatus.DONE.value)
    factory.task(parish, week, leader, title="Archived", status=TaskStatus.ARCHIVED.value)

    created = rollover_open_tasks(db, parish.id, week.id, next_week.id, actor_id=leader.id)
    assert created == 2

    copies = _copies(db, next_week.id)
    assert [copy.rolled_from_task_id for copy in copies] == [open_task.id, started.id]
    assert [copy.title for copy in copies] == ["Bulletins", "Flowers"]
    # la copie repart de zéro
    assert all(copy.status == TaskStatus.OPEN.value for copy in copies)
    assert copies[0].owner_id == member.id
    assert copies[0].estimated_hours == 1


def test_rollover_is_idempotent(db, factory, parish, week, next_week, leader):
    factory.task(parish, week, leader)
    factory.task(parish, week, leader, title="Second")

    assert rollover_open_tasks(db, parish.id, week.id, next_week.id) == 2
    assert rollover_open_tasks(db, parish.id, week.id, next_week.id) == 0
    assert len(_copies(db, next_week.id)) == 2


def test_rollover_does_not_copy_volunteers(db, factory, parish, week, next_week, leader, member):
    task = factory.task(parish, week, leader, volunteers_needed=3)
    db.add(TaskVolunteer(task_id=task.id, user_id=member.id))
    db.commit()

    rollover_open_tasks(db, parish.id, week.id, next_week.id)
    copy = _copies(db, next_week.id)[0]
    assert copy.volunteers_needed == 3
    assert db.query(TaskVolunteer).filter(TaskVolunteer.task_id == copy.id).count() == 0


def test_rollover_ignores_other_parishes(db, factory, parish, week, next_week, leader):
    other_parish = factory.parish("Other")
    other_week = factory.week(other_parish)
    other_leader = factory.user(other_parish)
    factory.task(other_parish, other_week, other_leader)

    assert rollover_open_tasks(db, parish.id, week.id, next_week.id) == 0


def test_rollover_same_week_is_invalid(db, parish, week):
    with pytest.raises(InputValidationError):
        rollover_open_tasks(db, parish.id, week.id, week.id)


def test_rollover_unknown_week(db, factory, parish, week):
    other_week = factory.week(factory.parish("Other"))
    with pytest.raises(NotFoundError):
        rollover_open_tasks(db, parish.id, week.id, other_week.id)


def test_rollover_is_audited_without_actor(db, factory, parish, week, next_week, leader):
    factory.task(parish, week, leader)
    rollover_open_tasks(db, parish.id, week.id, next_week.id)

    audit = db.query(AuditLog).filter(AuditLog.action == "tasks.rolled_over").one()
    assert audit.actor_id is None
    assert audit.details["created"] == 1


def test_rollover_endpoint_is_leader_only(client, factory, parish, week, next_week, leader, member):
    factory.task(parish, week, leader)
    body = {"from_week_id": week.id, "to_week_id": next_week.id}

    response = client.post("/tasks/rollover", headers=factory.headers(member), json=body)
    assert response.status_code == 403

    response = client.post("/tasks/rollover", headers=factory.headers(leader), json=body)
    assert response.status_code == 200
    assert response.json() == {"created": 1}


def test_defer_copy_into_week_already_holding_a_copy(client, db, factory, parish, week, next_week, leader):
    """Reporter une copie vers une semaine qui a déjà la copie de la même source"""
    third_week = factory.week(parish, date(2024, 6, 26))
    source = factory.task(parish, week, leader)
    rollover_open_tasks(db, parish.id, week.id, next_week.id)
    rollover_open_tasks(db, parish.id, week.id, third_week.id)
    copy = _copies(db, next_week.id)[0]

    with pytest.raises(InvalidStateError) as exc:
        defer_task(db, copy.id, factory.ctx(parish, leader), third_week.id)
    assert exc.value.code == "already_rolled_over"

    response = client.post(f"/tasks/{copy.id}/defer", headers=factory.headers(leader), json={"week_id": third_week.id})
    assert response.status_code == 409
    assert response.json()["code"] == "already_rolled_over"

    db.refresh(copy)
    assert copy.week_id == next_week.id
    assert [task.rolled_from_task_id for task in _copies(db, third_week.id)] == [source.id]

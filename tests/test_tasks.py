from datetime import date

from app.models.hours_entry import HoursEntry
from app.models.parish import GroupRole


# ========== TEST CREATE TASK ==========

def test_create_task_success(client, factory, parish, week, member):
    """Tester la création d'une tâche privée"""
    response = client.post("/tasks", headers=factory.headers(member), json={
        "title": "Ma première tâche",
        "week_id": week.id,
        "visibility": "PRIVATE",
        "estimated_hours": 1.5
    })
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Ma première tâche"
    assert data["status"] == "OPEN"
    assert data["approval_status"] == "APPROVED"
    assert data["owner_id"] == member.id
    assert data["created_by_id"] == member.id


def test_create_pool_task_has_no_owner(client, factory, parish, week, leader):
    response = client.post("/tasks", headers=factory.headers(leader), json={
        "title": "Parking crew",
        "week_id": week.id,
        "volunteers_needed": 4,
        "open_to_volunteers": True
    })
    assert response.status_code == 201
    assert response.json()["owner_id"] is None


def test_create_task_without_title(client, factory, week, member):
    response = client.post("/tasks", headers=factory.headers(member), json={"week_id": week.id, "title": ""})
    assert response.status_code == 422


def test_create_task_in_foreign_group_is_forbidden(client, factory, parish, week, member):
    group = factory.group(parish)
    response = client.post("/tasks", headers=factory.headers(member), json={
        "title": "Choir setup", "week_id": week.id, "group_id": group.id
    })
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


def test_create_task_assigning_other_requires_coordinator(client, factory, parish, week, member, other_member):
    group = factory.group(parish)
    factory.join_group(group, member)
    factory.join_group(group, other_member)
    body = {"title": "Choir setup", "week_id": week.id, "group_id": group.id, "owner_id": other_member.id}

    response = client.post("/tasks", headers=factory.headers(member), json=body)
    assert response.status_code == 403

    coordinator = factory.user(parish)
    factory.join_group(group, coordinator, role=GroupRole.COORDINATOR.value)
    response = client.post("/tasks", headers=factory.headers(coordinator), json=body)
    assert response.status_code == 201
    assert response.json()["owner_id"] == other_member.id


# ========== TEST VISIBILITY ==========

def test_private_task_is_not_found_for_others(client, factory, parish, week, leader, member):
    task = factory.task(parish, week, member, visibility="PRIVATE")

    response = client.get(f"/tasks/{task.id}", headers=factory.headers(leader))
    assert response.status_code == 404

    response = client.get(f"/tasks/{task.id}", headers=factory.headers(member))
    assert response.status_code == 200
    assert response.json()["capabilities"]["can_manage"] is True


def test_task_from_other_parish_is_not_found(client, factory, member):
    other_parish = factory.parish("Other")
    other_week = factory.week(other_parish)
    stranger = factory.user(other_parish)
    task = factory.task(other_parish, other_week, stranger)

    response = client.get(f"/tasks/{task.id}", headers=factory.headers(member))
    assert response.status_code == 404


# ========== TEST LIST ==========

def test_list_tasks_filters_and_summary(client, factory, parish, week, leader, member):
    factory.task(parish, week, leader, title="Open one")
    factory.task(parish, week, leader, title="Started", status="IN_PROGRESS", owner_id=member.id)
    factory.task(parish, week, leader, title="Finished", status="DONE")
    factory.task(parish, week, leader, title="Old", status="ARCHIVED")
    factory.task(parish, week, leader, title="Secret", visibility="PRIVATE")
    headers = factory.headers(member)

    data = client.get(f"/tasks?week_id={week.id}", headers=headers).json()
    assert data["summary"] == {"total": 3, "open": 1, "in_progress": 1, "done": 1}
    assert sorted(item["task"]["title"] for item in data["tasks"]) == ["Finished", "Open one", "Started"]

    data = client.get(f"/tasks?week_id={week.id}&status_filter=open", headers=headers).json()
    assert [item["task"]["title"] for item in data["tasks"]] == ["Open one"]

    data = client.get(f"/tasks?week_id={week.id}&ownership=mine", headers=headers).json()
    assert [item["task"]["title"] for item in data["tasks"]] == ["Started"]

    data = client.get(f"/tasks?week_id={week.id}&q=fini", headers=headers).json()
    assert data["filtered_count"] == 1


def test_list_tasks_reports_pool_state(client, factory, parish, week, leader, member):
    task = factory.task(parish, week, leader, volunteers_needed=3)
    headers = factory.headers(member)
    client.post(f"/tasks/{task.id}/volunteers", headers=headers)

    item = client.get(f"/tasks?week_id={week.id}", headers=headers).json()["tasks"][0]
    assert item["has_volunteered"] is True
    assert item["volunteer_count"] == 1
    assert item["capabilities"]["can_manage_status"] is True


# ========== TEST WORKFLOW ==========

def test_pool_workflow(client, factory, parish, week, leader, member, other_member):
    """Créer, rejoindre, compléter : les heures sont créditées aux bénévoles"""
    task = client.post("/tasks", headers=factory.headers(leader), json={
        "title": "Fall festival",
        "week_id": week.id,
        "volunteers_needed": 2,
        "estimated_hours": 3,
        "open_to_volunteers": True
    }).json()

    assert client.post(f"/tasks/{task['id']}/volunteers", headers=factory.headers(member)).status_code == 201
    assert client.post(f"/tasks/{task['id']}/volunteers", headers=factory.headers(other_member)).status_code == 201

    late = factory.user(parish)
    response = client.post(f"/tasks/{task['id']}/volunteers", headers=factory.headers(late))
    assert response.status_code == 409
    assert response.json()["code"] == "pool_full"

    response = client.post(f"/tasks/{task['id']}/complete", headers=factory.headers(member), json={})
    assert response.status_code == 200
    data = response.json()
    assert data["task"]["status"] == "DONE"
    assert sorted((e["user_id"], e["hours"]) for e in data["hours_entries"]) == sorted(
        [(member.id, 3.0), (other_member.id, 3.0)]
    )


def test_status_errors_are_mapped(client, factory, parish, week, member, other_member):
    task = factory.task(parish, week, member, owner_id=member.id)

    response = client.post(f"/tasks/{task.id}/start", headers=factory.headers(other_member))
    assert response.status_code == 403

    assert client.post(f"/tasks/{task.id}/start", headers=factory.headers(member)).status_code == 200
    response = client.post(f"/tasks/{task.id}/start", headers=factory.headers(member))
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_complete_manual_requires_hours(client, factory, parish, week, member):
    task = factory.task(parish, week, member, owner_id=member.id)
    response = client.post(f"/tasks/{task.id}/complete", headers=factory.headers(member), json={"mode": "manual"})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_claim_and_unassign(client, factory, parish, week, leader, member):
    task = factory.task(parish, week, leader)
    headers = factory.headers(member)

    response = client.post(f"/tasks/{task.id}/claim", headers=headers)
    assert response.status_code == 200
    assert response.json()["owner_id"] == member.id

    response = client.post(f"/tasks/{task.id}/unassign", headers=headers)
    assert response.status_code == 200
    assert response.json()["owner_id"] is None


# ========== TEST UPDATE / DEFER / DELETE ==========

def test_update_volunteers_needed_below_pool_size(client, factory, parish, week, leader, member, other_member):
    task = factory.task(parish, week, leader, volunteers_needed=3)
    client.post(f"/tasks/{task.id}/volunteers", headers=factory.headers(member))
    client.post(f"/tasks/{task.id}/volunteers", headers=factory.headers(other_member))

    response = client.put(f"/tasks/{task.id}", headers=factory.headers(leader), json={"volunteers_needed": 1})
    assert response.status_code == 409
    assert response.json()["code"] == "pool_too_small"

    response = client.put(f"/tasks/{task.id}", headers=factory.headers(leader), json={"volunteers_needed": 2})
    assert response.status_code == 200
    assert response.json()["volunteers_needed"] == 2


def test_defer_task(client, factory, parish, week, member):
    next_week = factory.week(parish, date(2024, 6, 19))
    task = factory.task(parish, week, member, owner_id=member.id)

    response = client.post(f"/tasks/{task.id}/defer", headers=factory.headers(member), json={"week_id": next_week.id})
    assert response.status_code == 200
    assert response.json()["week_id"] == next_week.id


def test_delete_task(client, factory, parish, week, member, other_member):
    task = factory.task(parish, week, member, owner_id=member.id)

    assert client.delete(f"/tasks/{task.id}", headers=factory.headers(other_member)).status_code == 403
    assert client.delete(f"/tasks/{task.id}", headers=factory.headers(member)).status_code == 204
    assert client.get(f"/tasks/{task.id}", headers=factory.headers(member)).status_code == 404


def test_delete_task_with_hours_is_refused(client, factory, db, parish, week, member):
    task = factory.task(parish, week, member, owner_id=member.id)
    db.add(HoursEntry(parish_id=parish.id, week_id=week.id, task_id=task.id, user_id=member.id,
                      hours=1.0, mode="manual", batch_id="batch"))
    db.commit()

    response = client.delete(f"/tasks/{task.id}", headers=factory.headers(member))
    assert response.status_code == 409
    assert response.json()["code"] == "has_hours"


# ========== TEST COMMENTS / ACTIVITY ==========

def test_comments_and_activity(client, factory, parish, week, leader, member, other_member):
    task = factory.task(parish, week, leader)
    headers = factory.headers(member)

    response = client.post(f"/tasks/{task.id}/comments", headers=headers, json={"body": "I can bring tables"})
    assert response.status_code == 201
    comment_id = response.json()["id"]

    # seul l'auteur (ou un gestionnaire) peut supprimer
    response = client.delete(f"/tasks/{task.id}/comments/{comment_id}", headers=factory.headers(other_member))
    assert response.status_code == 403
    response = client.delete(f"/tasks/{task.id}/comments/{comment_id}", headers=headers)
    assert response.status_code == 204

    client.post(f"/tasks/{task.id}/claim", headers=headers)
    detail = client.get(f"/tasks/{task.id}", headers=headers).json()
    assert detail["comments"] == []
    assert [a["action"] for a in detail["activities"]] == ["claimed"]

    activity = client.get(f"/tasks/{task.id}/activity", headers=headers).json()
    assert activity[0]["actor_id"] == member.id


def test_empty_comment_is_rejected(client, factory, parish, week, leader, member):
    task = factory.task(parish, week, leader)
    response = client.post(f"/tasks/{task.id}/comments", headers=factory.headers(member), json={"body": "   "})
    assert response.status_code == 422


# ========== TEST WEEKS ==========

def test_current_week_starts_on_monday(client, factory, member):
    response = client.get("/weeks/current?day=2024-06-13", headers=factory.headers(member))
    assert response.status_code == 200
    data = response.json()
    assert data["starts_on"] == "2024-06-10"
    assert data["label"] == "Week of Jun 10, 2024"

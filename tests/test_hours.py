from datetime import date, datetime

import pytest

from app.core.errors import InputValidationError
from app.models.hours_entry import HoursEntry
from app.services.hours_service import (
    compute_estimated_credits,
    get_user_ytd_hours,
    get_week_hours_summary,
    get_week_leaderboard,
    round_hours,
    validate_hours_request,
)


# ============ TESTS calcul ============

@pytest.mark.parametrize("value, expected", [
    (0.1, 0.0),
    (0.125, 0.25),
    (0.6667, 0.75),
    (1.3, 1.25),
    (2.375, 2.5),
])
def test_round_hours_to_quarter(value, expected):
    assert round_hours(value) == expected


def test_round_hours_custom_step():
    assert round_hours(1.3, step=0.5) == 1.5


def test_estimated_credits_split_total_budget():
    # 2h × 5 bénévoles demandés = 10h à répartir entre 2 participants
    assert compute_estimated_credits(2, 5, [7, 8]) == [(7, 5.0), (8, 5.0)]


def test_estimated_credits_without_estimate():
    assert compute_estimated_credits(None, 3, [7]) == []
    assert compute_estimated_credits(2, 3, []) == []


def test_validate_hours_request():
    validate_hours_request("estimated", None, None, [])
    validate_hours_request("manual", 0, None, [1])
    validate_hours_request("manual", 2, 1, [1])

    with pytest.raises(InputValidationError):
        validate_hours_request("bonus", None, None, [])
    with pytest.raises(InputValidationError):
        validate_hours_request("manual", None, None, [1])
    with pytest.raises(InputValidationError):
        validate_hours_request("manual", 2, 9, [1])


# ============ TESTS reporting ============

def _entry(db, task, user, hours, group=None, created_at=None):
    entry = HoursEntry(
        parish_id=task.parish_id,
        week_id=task.week_id,
        group_id=group.id if group else None,
        task_id=task.id,
        user_id=user.id,
        hours=hours,
        mode="estimated",
        batch_id="batch",
        created_at=created_at or datetime.utcnow()
    )
    db.add(entry)
    db.commit()
    return entry


@pytest.fixture
def task(factory, parish, week, leader):
    return factory.task(parish, week, leader)


def test_week_summary_by_group(db, factory, parish, week, task, member, other_member):
    music = factory.group(parish, "Music")
    hospitality = factory.group(parish, "Hospitality")
    _entry(db, task, member, 2.0, music)
    _entry(db, task, other_member, 1.5, hospitality)
    _entry(db, task, other_member, 3.0, music)
    _entry(db, task, member, 0.5)

    summary = get_week_hours_summary(db, parish.id, week.id)
    assert summary["total"] == 7.0
    assert [(g["group_name"], g["hours"]) for g in summary["groups"]] == [("Music", 5.0), ("Hospitality", 1.5)]


def test_week_leaderboard(db, factory, parish, week, task, leader, member, other_member):
    _entry(db, task, member, 2.0)
    _entry(db, task, other_member, 4.0)
    _entry(db, task, member, 1.0)

    board = get_week_leaderboard(db, parish.id, week.id, limit=1)
    assert board == [{"user_id": other_member.id, "name": "Carla", "hours": 4.0}]


def test_user_ytd_hours(db, factory, parish, week, task, member):
    _entry(db, task, member, 2.0, created_at=datetime(2024, 3, 1))
    _entry(db, task, member, 1.25, created_at=datetime(2024, 6, 12))
    _entry(db, task, member, 8.0, created_at=datetime(2023, 12, 31))

    assert get_user_ytd_hours(db, parish.id, member.id, today=date(2024, 6, 14)) == 3.25


def test_hours_endpoints(client, factory, db, parish, week, task, member):
    _entry(db, task, member, 2.0)
    headers = factory.headers(member)

    response = client.get(f"/hours/weeks/{week.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["total"] == 2.0

    response = client.get(f"/hours/weeks/{week.id}/leaderboard", headers=headers)
    assert response.json()[0]["user_id"] == member.id

    response = client.get("/hours/me", headers=headers)
    assert response.json()["hours"] == 2.0

import os
import sys
import uuid
from datetime import date
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

# SQLite pour les tests, AVANT d'importer app (engine créé à l'import)
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

import pytest

from app.core import database
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.main import app
from app.models.parish import (
    Group,
    GroupMembership,
    GroupMembershipStatus,
    GroupRole,
    Membership,
    Parish,
    ParishRole,
)
from app.models.task import ApprovalStatus, Task, TaskStatus, TaskVisibility
from app.models.user import User
from app.services.membership_service import get_membership
from app.services.week_service import get_or_create_week

TestingSessionLocal = database.SessionLocal


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_teardown():
    """Crée et nettoie la DB avant/après chaque test"""
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def client():
    """Client de test FastAPI"""
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def db():
    """Session DB pour les tests"""
    db = TestingSessionLocal()
    yield db
    db.close()


class Factory:
    """Helpers pour créer paroisse, membres, groupes et tâches"""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def parish(self, name="Saint Paul"):
        unique_id = str(uuid.uuid4())[:8]
        return self._save(Parish(name=name, slug=f"parish-{unique_id}"))

    def user(self, parish=None, role=ParishRole.MEMBER.value, name=None):
        unique_id = str(uuid.uuid4())[:8]
        user = User(
            email=f"user{unique_id}@test.com",
            username=f"user{unique_id}",
            name=name,
            active_parish_id=parish.id if parish else None
        )
        user.set_password("password123")
        self._save(user)
        if parish is not None:
            self._save(Membership(parish_id=parish.id, user_id=user.id, role=role))
        return user

    def group(self, parish, name="Hospitality"):
        return self._save(Group(parish_id=parish.id, name=name))

    def join_group(self, group, user, role=GroupRole.MEMBER.value, status=GroupMembershipStatus.ACTIVE.value):
        return self._save(GroupMembership(group_id=group.id, user_id=user.id, role=role, status=status))

    def week(self, parish, day=None):
        return get_or_create_week(self.db, parish.id, day or date(2024, 6, 12))

    def task(self, parish, week, creator, **fields):
        values = {
            "title": "Set up chairs",
            "status": TaskStatus.OPEN.value,
            "visibility": TaskVisibility.PUBLIC.value,
            "approval_status": ApprovalStatus.APPROVED.value,
            "volunteers_needed": 1,
            "open_to_volunteers": True,
        }
        values.update(fields)
        return self._save(Task(parish_id=parish.id, week_id=week.id, created_by_id=creator.id, **values))

    def ctx(self, parish, user):
        return get_membership(self.db, parish.id, user.id)

    def headers(self, user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def parish(factory):
    return factory.parish()


@pytest.fixture
def week(factory, parish):
    return factory.week(parish)


@pytest.fixture
def leader(factory, parish):
    return factory.user(parish, role=ParishRole.SHEPHERD.value, name="Pastor Ann")


@pytest.fixture
def member(factory, parish):
    return factory.user(parish, name="Bob")


@pytest.fixture
def other_member(factory, parish):
    return factory.user(parish, name="Carla")

"""
Report hebdomadaire des tâches non terminées.

Chaque tâche OPEN / IN_PROGRESS de la semaine source est copiée dans la
semaine cible avec rolled_from_task_id. L'idempotence repose sur la
contrainte unique (rolled_from_task_id, week_id) et un INSERT ... ON
CONFLICT DO NOTHING : deux exécutions concurrentes ne créent jamais de
doublon.
"""

import logging
from typing import Optional

from sqlalchemy import exists
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, aliased

from app.core.database import transaction
from app.core.errors import InputValidationError, NotFoundError
from app.models.task import Task, TaskStatus
from app.models.week import Week
from app.services.audit_service import record_audit

logger = logging.getLogger(__name__)

ROLLOVER_STATUSES = (TaskStatus.OPEN.value, TaskStatus.IN_PROGRESS.value)

# champs recopiés dans la nouvelle tâche
COPIED_FIELDS = (
    "group_id",
    "title",
    "notes",
    "estimated_hours",
    "volunteers_needed",
    "visibility",
    "approval_status",
    "open_to_volunteers",
    "owner_id",
    "coordinator_id",
    "created_by_id",
)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_ignoring_duplicates(db: Session, values: dict) -> int:
    dialect = db.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Rollover is not supported on {dialect}")

    stmt = insert(Task.__table__).values(**values).on_conflict_do_nothing(
        index_elements=["rolled_from_task_id", "week_id"]
    )
    return db.execute(stmt).rowcount


def _check_week(db: Session, parish_id: int, week_id: int) -> None:
    found = db.query(Week.id).filter(Week.id == week_id, Week.parish_id == parish_id).first()
    if not found:
        raise NotFoundError("Week not found")


def rollover_open_tasks(
    db: Session,
    parish_id: int,
    from_week_id: int,
    to_week_id: int,
    actor_id: Optional[int] = None
) -> int:
    """Retourne le nombre de tâches créées (0 si déjà reporté)"""
    if from_week_id == to_week_id:
        raise InputValidationError("Source and target weeks must differ.")
    _check_week(db, parish_id, from_week_id)
    _check_week(db, parish_id, to_week_id)

    rolled = aliased(Task)
    already_rolled = exists().where(
        rolled.rolled_from_task_id == Task.id,
        rolled.week_id == to_week_id
    )
    candidates = db.query(Task).filter(
        Task.parish_id == parish_id,
        Task.week_id == from_week_id,
        Task.status.in_(ROLLOVER_STATUSES),
        Task.archived_at.is_(None),
        ~already_rolled
    ).order_by(Task.id.asc()).all()

    created = 0
    with transaction(db):
        for source in candidates:
            values = {field: getattr(source, field) for field in COPIED_FIELDS}
            values.update(
                parish_id=parish_id,
                week_id=to_week_id,
                status=TaskStatus.OPEN.value,
                rolled_from_task_id=source.id,
            )
            created += _insert_ignoring_duplicates(db, values)

    logger.info(f"Rollover parish={parish_id} {from_week_id}->{to_week_id}: {created} tasks created")
    record_audit(actor_id, "tasks.rolled_over", None, {
        "parish_id": parish_id,
        "from_week_id": from_week_id,
        "to_week_id": to_week_id,
        "created": created,
    })
    return created

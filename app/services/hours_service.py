"""
Crédit et reporting des heures de bénévolat.

Règles du crédit à la complétion (mode "estimated") :
    budget total = heures estimées × bénévoles demandés
    chaque participant (owner + bénévoles du pool, sans doublon) reçoit
    budget total / nombre de participants

Ex: 2h estimées, 5 bénévoles demandés, 2 participants réels → 5h chacun.
Les montants sont arrondis au pas HOURS_ROUNDING_STEP (0.25h par défaut),
arrondi "half up". Une part arrondie à 0 ne crée pas d'entrée.
En mode "manual" la valeur saisie est créditée telle quelle ; 0 ne crée rien.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InputValidationError
from app.models.hours_entry import HoursEntry
from app.models.parish import Group
from app.models.task import Task
from app.models.user import User

HOURS_MODES = ("estimated", "manual", "skip")


def round_hours(value: float, step: float = None) -> float:
    step = Decimal(str(step or settings.HOURS_ROUNDING_STEP))
    quantized = (Decimal(str(value)) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(quantized * step)


def get_participant_ids(task: Task, volunteer_ids: List[int]) -> List[int]:
    participants = []
    for user_id in [task.owner_id, *volunteer_ids]:
        if user_id is not None and user_id not in participants:
            participants.append(user_id)
    return participants


def validate_hours_request(
    mode: str,
    manual_hours: Optional[float],
    credited_user_id: Optional[int],
    allowed_user_ids: List[int]
) -> None:
    """Valide la demande AVANT toute mutation"""
    if mode not in HOURS_MODES:
        raise InputValidationError(f"Unknown hours mode '{mode}'.")
    if mode != "manual":
        return
    if manual_hours is None:
        raise InputValidationError("Hours are required in manual mode.")
    if manual_hours < 0:
        raise InputValidationError("Hours must be 0 or more.")
    if credited_user_id is not None and credited_user_id not in allowed_user_ids:
        raise InputValidationError("Hours can only be credited to a participant of the task.")


def compute_estimated_credits(
    estimated_hours: Optional[float],
    volunteers_needed: int,
    participant_ids: List[int]
) -> List[tuple]:
    """Retourne [(user_id, heures)] pour le mode estimated"""
    if not estimated_hours or not participant_ids:
        return []
    total = Decimal(str(estimated_hours)) * max(volunteers_needed or 1, 1)
    share = round_hours(float(total / len(participant_ids)))
    if share <= 0:
        return []
    return [(user_id, share) for user_id in participant_ids]


def credit_hours(
    db: Session,
    task: Task,
    actor_id: int,
    volunteer_ids: List[int],
    mode: str = "estimated",
    manual_hours: Optional[float] = None,
    credited_user_id: Optional[int] = None
) -> List[HoursEntry]:
    """
    Écrit un nouveau lot d'HoursEntry pour cette complétion.

    Appelé par la machine à états dans la transaction de complétion ; chaque
    complétion produit un lot distinct (batch_id), jamais fusionné avec un
    lot précédent.
    """
    if mode == "skip":
        return []

    if mode == "manual":
        # saisie explicite : enregistrée telle quelle, sans arrondi
        hours = float(manual_hours)
        credits = [(credited_user_id or actor_id, hours)] if hours > 0 else []
    else:
        participants = get_participant_ids(task, volunteer_ids) or [actor_id]
        credits = compute_estimated_credits(task.estimated_hours, task.volunteers_needed, participants)

    batch_id = uuid.uuid4().hex
    entries = [
        HoursEntry(
            parish_id=task.parish_id,
            week_id=task.week_id,
            group_id=task.group_id,
            task_id=task.id,
            user_id=user_id,
            hours=hours,
            mode=mode,
            batch_id=batch_id
        )
        for user_id, hours in credits
    ]
    db.add_all(entries)
    return entries


# ============ REPORTING ============

def get_week_hours_summary(db: Session, parish_id: int, week_id: int) -> dict:
    total = db.query(func.coalesce(func.sum(HoursEntry.hours), 0.0)).filter(
        HoursEntry.parish_id == parish_id,
        HoursEntry.week_id == week_id
    ).scalar()

    rows = db.query(
        HoursEntry.group_id, Group.name, func.sum(HoursEntry.hours)
    ).join(Group, Group.id == HoursEntry.group_id).filter(
        HoursEntry.parish_id == parish_id,
        HoursEntry.week_id == week_id
    ).group_by(HoursEntry.group_id, Group.name).all()

    breakdown = sorted(
        ({"group_id": group_id, "group_name": name, "hours": hours or 0.0} for group_id, name, hours in rows),
        key=lambda item: item["hours"],
        reverse=True
    )

    return {"week_id": week_id, "total": float(total or 0.0), "groups": breakdown}


def get_week_leaderboard(db: Session, parish_id: int, week_id: int, limit: int = 5) -> List[dict]:
    total_hours = func.sum(HoursEntry.hours).label("hours")
    rows = db.query(User.id, User.name, User.email, total_hours).join(
        HoursEntry, HoursEntry.user_id == User.id
    ).filter(
        HoursEntry.parish_id == parish_id,
        HoursEntry.week_id == week_id
    ).group_by(User.id, User.name, User.email).order_by(total_hours.desc(), User.id.asc()).limit(limit).all()

    return [
        {"user_id": user_id, "name": name or email.split("@")[0], "hours": hours or 0.0}
        for user_id, name, email, hours in rows
    ]


def get_user_ytd_hours(db: Session, parish_id: int, user_id: int, today: date = None) -> float:
    today = today or date.today()
    start_of_year = datetime(today.year, 1, 1)

    total = db.query(func.coalesce(func.sum(HoursEntry.hours), 0.0)).filter(
        HoursEntry.parish_id == parish_id,
        HoursEntry.user_id == user_id,
        HoursEntry.created_at >= start_of_year
    ).scalar()
    return float(total or 0.0)

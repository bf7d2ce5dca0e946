"""Semaines de service (lundi -> lundi suivant)"""

from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.week import Week


def get_week_start_monday(day: date) -> date:
    return day - timedelta(days=day.weekday())


def get_week_label(starts_on: date) -> str:
    return f"Week of {starts_on.strftime('%b')} {starts_on.day}, {starts_on.year}"


def get_or_create_week(db: Session, parish_id: int, day: date = None) -> Week:
    starts_on = get_week_start_monday(day or date.today())

    week = db.query(Week).filter(Week.parish_id == parish_id, Week.starts_on == starts_on).first()
    if week:
        return week

    week = Week(
        parish_id=parish_id,
        starts_on=starts_on,
        ends_on=starts_on + timedelta(days=7),
        label=get_week_label(starts_on)
    )
    db.add(week)
    try:
        db.commit()
    except IntegrityError:
        # créée entre-temps par une autre requête
        db.rollback()
        return db.query(Week).filter(Week.parish_id == parish_id, Week.starts_on == starts_on).one()
    db.refresh(week)
    return week

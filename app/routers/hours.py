from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from app.core.database import get_db
from app.routers.deps import get_membership_context
from app.schemas.hours import LeaderboardEntry, UserHoursResponse, WeekHoursSummary
from app.services.hours_service import get_user_ytd_hours, get_week_hours_summary, get_week_leaderboard
from app.services.membership_service import MembershipContext

router = APIRouter(prefix="/hours", tags=["hours"])


@router.get("/me", response_model=UserHoursResponse)
def my_hours(
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    today = date.today()
    return UserHoursResponse(
        user_id=ctx.user_id,
        year=today.year,
        hours=get_user_ytd_hours(db, ctx.parish_id, ctx.user_id, today)
    )


@router.get("/weeks/{week_id}", response_model=WeekHoursSummary)
def week_summary(
    week_id: int,
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return get_week_hours_summary(db, ctx.parish_id, week_id)


@router.get("/weeks/{week_id}/leaderboard", response_model=List[LeaderboardEntry])
def week_leaderboard(
    week_id: int,
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    return get_week_leaderboard(db, ctx.parish_id, week_id, limit=limit)

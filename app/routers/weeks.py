from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.routers.deps import get_membership_context
from app.schemas.week import WeekResponse
from app.services.membership_service import MembershipContext
from app.services.week_service import get_or_create_week

router = APIRouter(prefix="/weeks", tags=["weeks"])


@router.get("/current", response_model=WeekResponse)
def current_week(
    day: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    ctx: MembershipContext = Depends(get_membership_context)
):
    # semaine contenant `day` (aujourd'hui par défaut)
    return get_or_create_week(db, ctx.parish_id, day)

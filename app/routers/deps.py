from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.core.security import get_current_user
from app.models.user import User
from app.services.membership_service import MembershipContext, get_membership


def get_membership_context(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> MembershipContext:
    """Contexte résolu une fois par requête pour la paroisse active"""
    if current_user.active_parish_id is None:
        raise UnauthorizedError("No active parish selected.")
    return get_membership(db, current_user.active_parish_id, current_user.id).require_member()

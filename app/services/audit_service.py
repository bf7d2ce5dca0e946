"""
Journal d'audit des mutations du moteur.

Écrit dans sa propre session, APRÈS le commit de la transaction principale :
un échec d'écriture est loggé et ne remonte jamais à l'appelant.
"""

import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core import database
from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    actor_id: int,
    action: str,
    target_id: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None
) -> bool:
    db = database.SessionLocal()
    try:
        db.add(AuditLog(
            actor_id=actor_id,
            action=action,
            target_id=target_id,
            details=metadata or {}
        ))
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Audit write failed for {action} on {target_id}: {e}")
        return False
    finally:
        db.close()

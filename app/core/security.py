from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.models.user import User


def _encode(user_id: int, email: str, token_type: str, expire_min: int) -> str:
    payload = {
        "user_id": user_id,
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=expire_min),
        "type": token_type
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def create_access_token(user_id: int, email: str) -> str:
    # token d'accès JWT de 15 minutes
    return _encode(user_id, email, "access", settings.JWT_EXPIRE_MIN)


def create_refresh_token(user_id: int, email: str) -> str:
    # token de rafraîchissement JWT, 30 jours
    return _encode(user_id, email, "refresh", settings.JWT_REFRESH_EXPIRE_MIN)


def verify_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
    except JWTError:
        return None


def decode_token(token: str) -> Optional[int]:
    payload = verify_token(token)
    if payload is None or payload.get("type") != "access":
        return None
    return payload.get("user_id")


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(None)
) -> User:
    """
    Récupère l'utilisateur depuis le JWT token.

    Extrait le token du header Authorization, le valide, et retourne l'user.
    """
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    token = authorization.replace("Bearer ", "")
    user_id = decode_token(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return user

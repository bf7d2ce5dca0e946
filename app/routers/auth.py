from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.security import create_access_token, create_refresh_token, get_current_user, verify_token
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse, LoginRequest, TokenResponse, ActiveParishRequest
from app.services.membership_service import is_parish_member

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/signup", response_model=UserResponse)
def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Créer un nouvel utilisateur"""

    # Vérifie si l'email existe déjà
    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="Email déjà utilisé")

    # Vérifie si le username existe déjà
    existing_username = db.query(User).filter(User.username == user_data.username).first()
    if existing_username:
        raise HTTPException(status_code=400, detail="Username déjà utilisé")

    new_user = User(email=user_data.email, username=user_data.username, name=user_data.name)
    new_user.set_password(user_data.password)

    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    return new_user

@router.post("/login", response_model=TokenResponse)
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """Se connecter et recevoir les tokens"""

    user = db.query(User).filter(User.email == credentials.email).first()
    if not user or not user.verify_password(credentials.password):
        raise HTTPException(status_code=401, detail="Email ou password incorrect")

    return {
        "access_token": create_access_token(user.id, user.email),
        "refresh_token": create_refresh_token(user.id, user.email),
        "token_type": "bearer"
    }

@router.post("/refresh", response_model=TokenResponse)
def refresh(refresh_token: str, db: Session = Depends(get_db)):
    """Utiliser un refresh_token pour obtenir un nouvel access_token"""

    payload = verify_token(refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    user = db.query(User).filter(User.id == payload.get("user_id")).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return {
        "access_token": create_access_token(user.id, user.email),
        "refresh_token": refresh_token,
        "token_type": "bearer"
    }

@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user

@router.post("/active-parish", response_model=UserResponse)
def set_active_parish(
    request: ActiveParishRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Choisir la paroisse sur laquelle on travaille"""
    if not is_parish_member(db, request.parish_id, current_user.id):
        raise HTTPException(status_code=403, detail="Not a member of this parish")

    current_user.active_parish_id = request.parish_id
    db.commit()
    db.refresh(current_user)
    return current_user

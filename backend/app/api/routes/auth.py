import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import get_settings
from app.core.errors import ConflictError, UnauthenticatedError, ValidationError
from app.core.rate_limit import rate_limit
from app.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
)
from app.db.session import get_db
from app.models.profile import ClientProfile, CoachProfile, CoachStatus
from app.models.user import User, UserRole
from app.schemas import auth as auth_schema
from app.schemas.user import UserPublic
from app.services.identity import authenticate_token

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_pair(user: User) -> auth_schema.TokenPair:
    return auth_schema.TokenPair(
        access_token=create_access_token(user.id, user.role),
        refresh_token=create_refresh_token(user.id, user.role),
    )


@router.post("/register", response_model=auth_schema.TokenPair, status_code=status.HTTP_201_CREATED)
def register_user(
    payload: auth_schema.RegisterRequest,
    db: Session = Depends(get_db),
) -> auth_schema.TokenPair:
    existing = db.query(User).filter(User.email == payload.email).first()
    if existing:
        raise ConflictError("Email already registered")
    if payload.account_type == "coach" and not payload.discipline:
        raise ValidationError("discipline: Discipline is required for coach accounts")

    user = User(
        email=payload.email,
        name=payload.name,
        hashed_password=get_password_hash(payload.password),
        role=UserRole.COACH.value if payload.account_type == "coach" else UserRole.PROSPECT.value,
    )
    db.add(user)
    db.flush()
    if payload.account_type == "coach":
        # New coaches wait for admin approval before prospects can reach them
        db.add(
            CoachProfile(
                user_id=user.id,
                discipline=payload.discipline,
                bio=payload.bio,
                status=CoachStatus.PENDING.value,
            )
        )
    else:
        db.add(ClientProfile(user_id=user.id, goals=payload.goals))
    db.commit()
    db.refresh(user)
    logger.info(f"Registered {user.role} account {user.id}")
    return _token_pair(user)


@router.post(
    "/login",
    response_model=auth_schema.TokenPair,
    dependencies=[Depends(rate_limit("login", get_settings().login_rate_limit))],
)
def login_user(
    payload: auth_schema.LoginRequest,
    db: Session = Depends(get_db),
) -> auth_schema.TokenPair:
    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        raise UnauthenticatedError("Incorrect email or password")
    return _token_pair(user)


@router.post("/refresh", response_model=auth_schema.TokenPair)
def refresh_token(
    payload: auth_schema.RefreshRequest,
    db: Session = Depends(get_db),
) -> auth_schema.TokenPair:
    user = authenticate_token(db, payload.refresh_token, token_type="refresh")
    return _token_pair(user)


@router.get("/me", response_model=UserPublic)
def read_current_user(
    current_user: User = Depends(deps.get_current_user),
) -> UserPublic:
    return UserPublic(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        coach_profile_id=current_user.coach_profile.id if current_user.coach_profile else None,
        client_profile_id=current_user.client_profile.id if current_user.client_profile else None,
        created_at=current_user.created_at,
    )

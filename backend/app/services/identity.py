from sqlalchemy.orm import Session

from app.core.errors import UnauthenticatedError
from app.core.security import decode_token
from app.models.profile import ClientProfile, CoachProfile
from app.models.user import User, UserRole


def authenticate_token(db: Session, token: str | None, token_type: str = "access") -> User:
    """Validate a bearer credential and load its user."""
    if not token:
        raise UnauthenticatedError()
    try:
        data = decode_token(token)
        if data.get("type") != token_type:
            raise ValueError(f"Expected {token_type} token")
        user_id = int(data["sub"])
    except (ValueError, KeyError) as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UnauthenticatedError("User not found")
    return user


def resolve_profile_id(db: Session, user: User) -> int | None:
    """Role-profile id used to address the user in chat channels.

    Coaches resolve to their coach profile, prospects to their client profile,
    every other role to None.
    """
    if user.role == UserRole.COACH.value:
        profile = db.query(CoachProfile.id).filter(CoachProfile.user_id == user.id).first()
    elif user.role == UserRole.PROSPECT.value:
        profile = db.query(ClientProfile.id).filter(ClientProfile.user_id == user.id).first()
    else:
        return None
    return profile.id if profile else None

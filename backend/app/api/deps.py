from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.user import User
from app.realtime.factory import get_realtime_transport
from app.realtime.transport import RealtimeTransport
from app.services.identity import authenticate_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_bearer_token(token: str | None = Depends(oauth2_scheme)) -> str | None:
    return token


def get_current_user(
    token: str | None = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> User:
    return authenticate_token(db, token)


def get_transport() -> RealtimeTransport:
    return get_realtime_transport()

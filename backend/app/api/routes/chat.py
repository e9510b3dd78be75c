from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import get_settings
from app.core.rate_limit import rate_limit
from app.db.session import get_db
from app.models.user import User
from app.realtime.transport import RealtimeTransport
from app.schemas.chat import (
    ChatDetail,
    ChatPublic,
    InitiateChatRequest,
    MessageHistory,
    MessagePublic,
    SendMessageRequest,
)
from app.services import chat as chat_service

router = APIRouter()


@router.post("", response_model=ChatPublic)
def initiate_chat(
    payload: InitiateChatRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> ChatPublic:
    chat = chat_service.initiate_chat(db, current_user, payload.coach_id)
    return chat_service.serialize_chat(chat)


@router.get("", response_model=list[ChatPublic])
def list_chats(
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> list[ChatPublic]:
    return [chat_service.serialize_chat(chat) for chat in chat_service.list_chats(db, current_user)]


@router.get("/{chat_id}", response_model=ChatDetail)
def get_chat(
    chat_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> ChatDetail:
    chat = chat_service.get_chat_for_participant(db, current_user, chat_id)
    return chat_service.serialize_chat_detail(chat)


@router.post(
    "/{chat_id}/messages",
    response_model=MessagePublic,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("send_message", get_settings().send_message_rate_limit))],
)
def send_message(
    chat_id: int,
    payload: SendMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
    transport: RealtimeTransport = Depends(deps.get_transport),
) -> MessagePublic:
    return chat_service.send_message(db, transport, current_user, chat_id, payload.content)


@router.get("/{chat_id}/messages", response_model=MessageHistory)
def get_messages(
    chat_id: int,
    limit: int = Query(default=chat_service.DEFAULT_HISTORY_LIMIT, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_user),
) -> MessageHistory:
    return chat_service.get_history(db, current_user, chat_id, limit=limit, offset=offset)

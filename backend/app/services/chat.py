import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, NotFoundError, ValidationError
from app.models.chat import Chat, Message
from app.models.profile import ClientProfile, CoachProfile, CoachStatus
from app.models.user import User, UserRole
from app.realtime.channels import chat_channel_name
from app.realtime.publisher import broadcast_new_message
from app.realtime.transport import RealtimeTransport
from app.schemas.chat import (
    MAX_MESSAGE_LENGTH,
    ChatDetail,
    ChatParticipant,
    ChatPublic,
    MessageHistory,
    MessagePublic,
)
from app.schemas.user import UserSummary

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 100


def serialize_message(message: Message) -> MessagePublic:
    return MessagePublic.model_validate(message)


def serialize_chat(chat: Chat) -> ChatPublic:
    return ChatPublic(
        id=chat.id,
        coach_id=chat.coach_id,
        client_id=chat.client_id,
        channel_name=chat_channel_name(chat.coach_id, chat.client_id),
        coach=ChatParticipant(
            profile_id=chat.coach_id, user=UserSummary.model_validate(chat.coach.user)
        ),
        client=ChatParticipant(
            profile_id=chat.client_id, user=UserSummary.model_validate(chat.client.user)
        ),
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


def serialize_chat_detail(chat: Chat) -> ChatDetail:
    summary = serialize_chat(chat)
    return ChatDetail(
        **summary.model_dump(),
        messages=[serialize_message(message) for message in chat.messages],
    )


def is_participant(chat: Chat, user: User) -> bool:
    return chat.coach.user_id == user.id or chat.client.user_id == user.id


def get_chat_for_participant(db: Session, user: User, chat_id: int) -> Chat:
    chat = db.query(Chat).filter(Chat.id == chat_id).first()
    if not chat:
        raise NotFoundError("Chat not found")
    if not is_participant(chat, user):
        logger.warning(f"User {user.id} is not a participant in chat {chat_id}")
        raise ForbiddenError("Not a participant in this chat")
    return chat


def initiate_chat(db: Session, user: User, coach_id: int) -> Chat:
    """Find or create the chat between a prospect and an approved coach."""
    if user.role != UserRole.PROSPECT.value:
        raise ForbiddenError("Only prospects can start a chat")
    client_profile = db.query(ClientProfile).filter(ClientProfile.user_id == user.id).first()
    if not client_profile:
        raise NotFoundError("Prospect profile not found")
    coach = db.query(CoachProfile).filter(CoachProfile.id == coach_id).first()
    if not coach:
        raise NotFoundError("Coach not found")
    if coach.status != CoachStatus.APPROVED.value:
        raise ForbiddenError("Coach not available")

    existing = _find_chat(db, coach.id, client_profile.id)
    if existing:
        return existing

    chat = Chat(coach_id=coach.id, client_id=client_profile.id)
    db.add(chat)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent first contact created the same pair
        db.rollback()
        existing = _find_chat(db, coach.id, client_profile.id)
        if existing:
            return existing
        raise
    db.refresh(chat)
    logger.info(f"Chat {chat.id} created between coach {coach.id} and client {client_profile.id}")
    return chat


def _find_chat(db: Session, coach_id: int, client_id: int) -> Chat | None:
    return (
        db.query(Chat)
        .filter(Chat.coach_id == coach_id, Chat.client_id == client_id)
        .first()
    )


def list_chats(db: Session, user: User) -> list[Chat]:
    query = db.query(Chat)
    if user.role == UserRole.COACH.value:
        query = query.join(CoachProfile, Chat.coach_id == CoachProfile.id).filter(
            CoachProfile.user_id == user.id
        )
    elif user.role == UserRole.PROSPECT.value:
        query = query.join(ClientProfile, Chat.client_id == ClientProfile.id).filter(
            ClientProfile.user_id == user.id
        )
    else:
        return []
    return query.order_by(Chat.updated_at.desc(), Chat.id.desc()).all()


def send_message(
    db: Session,
    transport: RealtimeTransport,
    user: User,
    chat_id: int,
    content: str,
) -> MessagePublic:
    """Persist a message, then broadcast it on the chat's channel.

    A failed broadcast is logged by the publisher and does not affect the
    result: the message is already stored and visible through history.
    """
    # SendMessageRequest already checks HTTP bodies; this covers direct callers
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")

    chat = get_chat_for_participant(db, user, chat_id)

    message = Message(chat_id=chat.id, sender_id=user.id, content=text)
    chat.updated_at = datetime.now(timezone.utc)
    db.add(message)
    db.add(chat)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to store message from user {user.id} in chat {chat.id}")
        raise
    db.refresh(message)

    public = serialize_message(message)
    broadcast_new_message(transport, chat, public)
    return public


def get_history(
    db: Session,
    user: User,
    chat_id: int,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
) -> MessageHistory:
    """Page of messages, oldest to newest within the page.

    Pages are counted from the newest message backwards, so offset 0 is the
    most recent page.
    """
    chat = get_chat_for_participant(db, user, chat_id)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    offset = max(0, offset)

    newest_first = (
        db.query(Message)
        .filter(Message.chat_id == chat.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    total = db.query(Message).filter(Message.chat_id == chat.id).count()
    return MessageHistory(
        messages=[serialize_message(message) for message in reversed(newest_first)],
        total=total,
        limit=limit,
        offset=offset,
    )

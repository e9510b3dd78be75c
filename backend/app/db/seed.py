from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.db.session import SessionLocal
from app.models.chat import Chat, Message
from app.models.profile import ClientProfile, CoachProfile, CoachStatus
from app.models.user import User, UserRole

DEMO_PASSWORD = "password123"


def seed_demo_data(db: Session) -> None:
    existing = db.query(User).filter(User.email == "demo@coach.com").first()
    if existing:
        return

    coach_user = User(
        email="demo@coach.com",
        name="Demo Coach",
        hashed_password=get_password_hash(DEMO_PASSWORD),
        role=UserRole.COACH.value,
    )
    prospect_user = User(
        email="demo@prospect.com",
        name="Demo Prospect",
        hashed_password=get_password_hash(DEMO_PASSWORD),
        role=UserRole.PROSPECT.value,
    )
    db.add_all([coach_user, prospect_user])
    db.flush()

    coach = CoachProfile(
        user_id=coach_user.id,
        discipline="Strength & Conditioning",
        bio="Ten years coaching amateur lifters.",
        status=CoachStatus.APPROVED.value,
    )
    client = ClientProfile(user_id=prospect_user.id, goals="First powerlifting meet")
    db.add_all([coach, client])
    db.flush()

    chat = Chat(coach_id=coach.id, client_id=client.id)
    db.add(chat)
    db.flush()
    db.add_all(
        [
            Message(chat_id=chat.id, sender_id=prospect_user.id, content="Hi! Are you taking new athletes?"),
            Message(chat_id=chat.id, sender_id=coach_user.id, content="I am. What are you training for?"),
        ]
    )
    db.commit()


if __name__ == "__main__":
    with SessionLocal() as session:
        seed_demo_data(session)

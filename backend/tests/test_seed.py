from app.db.seed import seed_demo_data
from app.models import Chat, CoachProfile, CoachStatus, Message, User


def test_seed_creates_approved_coach_and_open_chat(db):
    seed_demo_data(db)
    seed_demo_data(db)

    assert db.query(User).count() == 2
    coach = db.query(CoachProfile).one()
    assert coach.status == CoachStatus.APPROVED.value
    chat = db.query(Chat).one()
    assert [message.content for message in chat.messages][0].startswith("Hi!")
    assert db.query(Message).count() == 2

"""Shared fixtures: an isolated JSON store, fresh limiters and user helpers."""

import os
import tempfile

from cryptography.fernet import Fernet

# Settings are read once, so the environment is fixed before the app is imported
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="mintoons-test-")
os.environ["FIREBASE_CREDENTIALS_PATH"] = ""
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["GROQ_API_KEY"] = ""
os.environ["SMTP_HOST"] = ""
os.environ["DEBUG"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.security import hash_password, issue_token_pair  # noqa: E402
from app.crud.story import StoryCRUD  # noqa: E402
from app.crud.subscription import SubscriptionCRUD  # noqa: E402
from app.crud.user import UserCRUD  # noqa: E402
from app.dependencies import get_db_client  # noqa: E402
from app.main import app  # noqa: E402
from app.models.story import StoryElements, StoryModel  # noqa: E402
from app.models.user import AccountStatus, UserModel  # noqa: E402
from app.services.email.email_service import get_email_queue  # noqa: E402
from app.services.rate_limit import reset_all_limiters  # noqa: E402

PASSWORD = "Secret123"

ELEMENTS = {
    "genre": "adventure",
    "setting": "enchanted-forest",
    "character": "brave-explorer",
    "mood": "exciting",
    "conflict": "lost-treasure",
    "theme": "friendship",
}


@pytest.fixture(autouse=True)
def clean_state():
    db = get_db_client()
    db.clear()
    reset_all_limiters()
    get_email_queue().items.clear()
    yield
    db.clear()


@pytest.fixture
def db():
    return get_db_client()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    """Create an active, verified account and return the model."""
    counter = {"n": 0}

    def _make(role="child", age=10, tier=None, mentor_id=None, name="Test User", **fields):
        counter["n"] += 1
        user = UserModel(
            email=fields.pop("email", f"{role}{counter['n']}@example.com"),
            name=name,
            password_hash=hash_password(PASSWORD),
            role=role,
            age=age,
            age_group=UserModel.calculate_age_group(age),
            email_verified=True,
            account_status=fields.pop("account_status", AccountStatus.ACTIVE),
            parent_consent=fields.pop("parent_consent", True),
            mentor_id=mentor_id,
            **fields,
        )
        UserCRUD(db).create_user(user)
        if tier:
            subscriptions = SubscriptionCRUD(db)
            subscription = subscriptions.get_or_create_for_user(user.id)
            subscription.change_tier(tier)
            subscriptions.save_model(subscription)
        return user

    return _make


@pytest.fixture
def make_story(db):
    def _make(author, content="", **fields):
        story = StoryModel(
            title=fields.pop("title", "The Lost Map"),
            author_id=author.id,
            author_name=author.name,
            author_age=author.age,
            elements=StoryElements(**ELEMENTS),
            **fields,
        )
        if content:
            story.apply_content(content)
        StoryCRUD(db).create_story(story)
        return story

    return _make


def auth_headers(user):
    tokens = issue_token_pair(user.to_dict())
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def long_text(words=500):
    sentence = "The brave explorer walked through the quiet forest looking for the old map."
    per_sentence = len(sentence.split())
    return " ".join([sentence] * (words // per_sentence + 1))

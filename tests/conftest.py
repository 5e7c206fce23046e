import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-suite")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "disabled"
os.environ["DEBUG"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="chat-uploads-")

import pytest

from app.chat.schemas import User
from app.data.access import Identity

from tests.fakes import FakeDataAccess, RecordingNotifier


@pytest.fixture
def identity() -> Identity:
    return Identity(id="u1", email="agent@example.com", user_metadata={"full_name": "Agent One"})


@pytest.fixture
def data(identity) -> FakeDataAccess:
    fake = FakeDataAccess(identity=identity)
    fake.seed("users", id="u1", email="agent@example.com", full_name="Agent One")
    fake.seed("users", id="u2", email="teammate@example.com", full_name="Teammate Two")
    return fake


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def other_user() -> User:
    return User(id="u2", email="teammate@example.com", full_name="Teammate Two")

# Pytest fixtures: deterministic clock, question factories and an API client.
import importlib
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", os.getenv("TEST_DATABASE_URL", "sqlite://"))

from quizlr.question import Question, TrueFalse  # noqa: E402


class ManualClock:
    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return ManualClock()


# A seeded random source so shuffles repeat across runs.
@pytest.fixture()
def rng():
    return random.Random(1234)


# Build questions with sensible defaults: a true/false statement that is true.
@pytest.fixture()
def build_question(clock):
    def _build(question_type=None, difficulty=0.5, topic_id=None, estimated_time_seconds=60):
        if question_type is None:
            question_type = TrueFalse(statement="The sky is blue", correct_answer=True)
        question = Question.new(question_type, topic_id or uuid4(), difficulty, clock=clock)
        question.estimated_time_seconds = estimated_time_seconds
        return question

    return _build


# Build true/false questions (all true) at the given difficulties.
@pytest.fixture()
def questions_with_difficulties(build_question):
    def _build(difficulties):
        return [build_question(difficulty=difficulty) for difficulty in difficulties]

    return _build


# Provide a FastAPI test client backed by a temporary test database.
@pytest.fixture()
def client():
    test_database_url = os.getenv("TEST_DATABASE_URL", "sqlite://")
    os.environ["DATABASE_URL"] = test_database_url

    for name in ("quizlr.database", "quizlr.models", "quizlr.storage", "quizlr.main"):
        if name in sys.modules:
            importlib.reload(sys.modules[name])

    from quizlr.database import Base, engine  # noqa: E402
    from quizlr.main import app  # noqa: E402

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)

# Storage adapter and repository tests against an in-memory SQLite database.
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from quizlr import models
from quizlr.database import build_engine
from quizlr.errors import NotFoundError
from quizlr.question import MultipleChoice, TrueFalseAnswer
from quizlr.quiz import QuizBuilder
from quizlr.session import QuizSession, SessionState
from quizlr.storage import QuizRepository, SqlStorage


@pytest.fixture()
def storage():
    engine = build_engine("sqlite://")
    models.StoredObject.metadata.create_all(bind=engine)
    yield SqlStorage(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    models.StoredObject.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def repository(storage):
    return QuizRepository(storage)


def test_save_and_load(storage):
    storage.save("quizzes/a", b"first")

    assert storage.load("quizzes/a") == b"first"


def test_save_overwrites_existing_key(storage):
    storage.save("quizzes/a", b"first")
    storage.save("quizzes/a", b"second")

    assert storage.load("quizzes/a") == b"second"
    assert storage.list("quizzes/") == ["quizzes/a"]


def test_missing_keys_raise_not_found(storage):
    with pytest.raises(NotFoundError):
        storage.load("quizzes/missing")
    with pytest.raises(NotFoundError):
        storage.delete("quizzes/missing")


def test_delete_removes_key(storage):
    storage.save("sessions/a", b"data")

    storage.delete("sessions/a")

    assert storage.list("sessions/") == []


# LIKE wildcards inside a prefix are matched literally.
def test_list_filters_by_literal_prefix(storage):
    for key in ("quizzes/b", "quizzes/a", "sessions/a", "quiz_x/a", "quizAx/a", "100%/a", "1000/a"):
        storage.save(key, b"{}")

    assert storage.list("quizzes/") == ["quizzes/a", "quizzes/b"]
    assert storage.list("quiz_") == ["quiz_x/a"]
    assert storage.list("100%") == ["100%/a"]
    assert storage.list("nothing/") == []


def test_quiz_round_trip(repository, build_question):
    question = build_question(
        MultipleChoice(question="Pick", options=["A", "B"], correct_index=1, explanation="B")
    )
    quiz = QuizBuilder("Stored").description("Persisted").add_tag("db").add_question(question).build()

    repository.save_quiz(quiz)
    loaded = repository.load_quiz(quiz.id)

    assert loaded.model_dump() == quiz.model_dump()
    assert loaded.questions[0].question_type.correct_index == 1
    assert repository.list_quiz_ids() == [quiz.id]


def test_delete_quiz(repository):
    quiz = QuizBuilder("Temporary").build()
    repository.save_quiz(quiz)

    repository.delete_quiz(quiz.id)

    assert repository.list_quiz_ids() == []
    with pytest.raises(NotFoundError, match="quiz .* not found"):
        repository.delete_quiz(quiz.id)


def test_session_round_trip(repository, clock, build_question):
    question = build_question()
    session = QuizSession.new(uuid4(), user_id=uuid4(), clock=clock)
    session.start()
    session.submit_answer(question, TrueFalseAnswer(value=True), 12)
    session.skip_question(1)
    session.pause()

    repository.save_session(session)
    loaded = repository.load_session(session.id)

    assert loaded.model_dump() == session.model_dump()
    assert loaded.state == SessionState.PAUSED
    assert loaded.responses[0].answer == TrueFalseAnswer(value=True)
    assert repository.list_session_ids() == [session.id]


def test_unknown_ids_raise_not_found(repository):
    missing = uuid4()

    with pytest.raises(NotFoundError, match=f"quiz {missing} not found"):
        repository.load_quiz(missing)
    with pytest.raises(NotFoundError, match=f"session {missing} not found"):
        repository.load_session(missing)

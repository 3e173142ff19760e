# FastAPI app exposing quizzes, sessions and scoring over HTTP.
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

import logging
import random
import threading

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from quizlr.config import get_settings
from quizlr.database import Base, SessionLocal, engine
from quizlr.errors import (
    ConfigError,
    LlmError,
    NotFoundError,
    StateError,
    StorageError,
    ValidationError,
)
from quizlr.identity import AnonymousIdentity, IdentityProvider, session_for_current_learner
from quizlr.llm import LlmClient, get_llm_client, grade_open_response
from quizlr.question import Question
from quizlr.quiz import Quiz, QuizBuilder
from quizlr.schemas import (
    AnswerCreate,
    AnswerOut,
    GradedAnswerOut,
    QuestionCreate,
    QuizCreate,
    QuizOut,
    ScoreRequest,
    SessionCreate,
    SessionOut,
    SkipCreate,
    SummaryOut,
)
from quizlr.scoring import Score, strategy_from_name
from quizlr.session import QuizSession, SessionState
from quizlr.storage import QuizRepository, SqlStorage

# Fields that reveal the answer key and are hidden from learners.
ANSWER_KEY_FIELDS = (
    "correct_answer",
    "correct_index",
    "correct_indices",
    "correct_answers",
    "correct_pairs",
    "explanation",
    "follow_up_rules",
    "key_concepts",
)


# Create storage tables and apply the configured log level on startup.
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.getLogger("quizlr").setLevel(settings.log_level)
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Quizlr API", lifespan=lifespan)
logger = logging.getLogger("quizlr.api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mutations of one quiz or session are serialized; the engine itself does no locking.
class _ObjectLock:
    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


_locks: Dict[str, _ObjectLock] = {}
_locks_guard = threading.Lock()


# Hold the lock for one id; its entry is dropped once no request holds or waits on it.
@contextmanager
def object_lock(object_id: UUID):
    key = str(object_id)
    with _locks_guard:
        entry = _locks.get(key)
        if entry is None:
            entry = _locks[key] = _ObjectLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _locks[key]


# Provide a repository over the configured database.
def get_repository() -> QuizRepository:
    return QuizRepository(SqlStorage(SessionLocal))


# Provide the configured external grader.
def get_grader() -> LlmClient:
    with engine_errors():
        return get_llm_client(get_settings())


# Provide the signed-in learner lookup; anonymous unless a host overrides it.
def get_identity_provider() -> IdentityProvider:
    return AnonymousIdentity()


# Translate engine errors into HTTP errors.
@contextmanager
def engine_errors():
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except StateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except LlmError as exc:
        logger.warning("Grader failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    except (ConfigError, StorageError) as exc:
        logger.exception("Request failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        )


# Format datetimes as ISO-8601 strings with UTC fallback.
def to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


# Strip answer keys and explanations for the learner-facing question payload.
def build_question_public(question: Question) -> Dict:
    public = question.model_dump(mode="json", exclude={"citations", "metadata"})
    for field in ANSWER_KEY_FIELDS:
        public["question_type"].pop(field, None)
    return public


def build_question(payload: QuestionCreate) -> Question:
    question = Question.new(payload.question_type, payload.topic_id, payload.difficulty)
    question.estimated_time_seconds = payload.estimated_time_seconds
    question.tags = list(payload.tags)
    return question


def quiz_out(quiz: Quiz) -> QuizOut:
    return QuizOut(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        created_at=to_iso(quiz.created_at),
        updated_at=to_iso(quiz.updated_at),
        total_questions=len(quiz.questions),
        topic_ids=quiz.topic_ids,
        difficulty_range=list(quiz.difficulty_range),
        estimated_duration_minutes=quiz.estimated_duration_minutes,
        pass_threshold=quiz.pass_threshold,
        questions=[build_question_public(question) for question in quiz.questions],
    )


def session_out(session: QuizSession, quiz: Quiz) -> SessionOut:
    return SessionOut(
        id=session.id,
        quiz_id=session.quiz_id,
        user_id=session.user_id,
        state=session.state.value,
        current_question_index=session.current_question_index,
        answered_count=len(session.responses),
        skipped_questions=session.skipped_questions,
        progress=session.get_progress(len(quiz.questions)),
        start_time=to_iso(session.start_time),
        end_time=to_iso(session.end_time),
    )


class SessionAction(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    NEXT = "next"
    PREVIOUS = "previous"
    ABANDON = "abandon"


SESSION_ACTIONS = {
    SessionAction.START: QuizSession.start,
    SessionAction.PAUSE: QuizSession.pause,
    SessionAction.RESUME: QuizSession.resume,
    SessionAction.NEXT: QuizSession.next_question,
    SessionAction.PREVIOUS: QuizSession.previous_question,
    SessionAction.ABANDON: QuizSession.abandon,
}


# Create a quiz from a title, settings and an initial question list.
@app.post("/quizzes", response_model=QuizOut, status_code=status.HTTP_201_CREATED)
def create_quiz(payload: QuizCreate, repo: QuizRepository = Depends(get_repository)):
    builder = (
        QuizBuilder(payload.title)
        .pass_threshold(payload.pass_threshold)
        .allow_skip(payload.allow_skip)
        .show_explanations(payload.show_explanations)
        .randomize_questions(payload.randomize_questions)
        .add_questions([build_question(item) for item in payload.questions])
    )
    if payload.description:
        builder = builder.description(payload.description)
    for tag in payload.tags:
        builder = builder.add_tag(tag)
    quiz = builder.build()
    with engine_errors():
        repo.save_quiz(quiz)
    logger.info("Created quiz %s with %d questions", quiz.id, len(quiz.questions))
    return quiz_out(quiz)


# Return every stored quiz.
@app.get("/quizzes", response_model=List[QuizOut])
def list_quizzes(repo: QuizRepository = Depends(get_repository)):
    with engine_errors():
        return [quiz_out(repo.load_quiz(quiz_id)) for quiz_id in repo.list_quiz_ids()]


@app.get("/quizzes/{quiz_id}", response_model=QuizOut)
def get_quiz(quiz_id: UUID, repo: QuizRepository = Depends(get_repository)):
    with engine_errors():
        return quiz_out(repo.load_quiz(quiz_id))


@app.post(
    "/quizzes/{quiz_id}/questions",
    response_model=QuizOut,
    status_code=status.HTTP_201_CREATED,
)
def add_question(
    quiz_id: UUID, payload: QuestionCreate, repo: QuizRepository = Depends(get_repository)
):
    with object_lock(quiz_id), engine_errors():
        quiz = repo.load_quiz(quiz_id)
        quiz.add_question(build_question(payload))
        repo.save_quiz(quiz)
        return quiz_out(quiz)


@app.delete("/quizzes/{quiz_id}/questions/{question_id}", response_model=QuizOut)
def remove_question(
    quiz_id: UUID, question_id: UUID, repo: QuizRepository = Depends(get_repository)
):
    with object_lock(quiz_id), engine_errors():
        quiz = repo.load_quiz(quiz_id)
        if quiz.remove_question(question_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="question not found"
            )
        repo.save_quiz(quiz)
        return quiz_out(quiz)


# Open a not-yet-started session for a stored quiz, owned by the signed-in learner.
@app.post("/sessions", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreate,
    repo: QuizRepository = Depends(get_repository),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    with engine_errors():
        quiz = repo.load_quiz(payload.quiz_id)
        session = session_for_current_learner(identity, quiz.id)
        repo.save_session(session)
    return session_out(session, quiz)


@app.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(session_id: UUID, repo: QuizRepository = Depends(get_repository)):
    with engine_errors():
        session = repo.load_session(session_id)
        return session_out(session, repo.load_quiz(session.quiz_id))


# Questions in the order this session presents them; shuffled quizzes keep one order per session.
@app.get("/sessions/{session_id}/questions", response_model=List[Dict])
def get_session_questions(session_id: UUID, repo: QuizRepository = Depends(get_repository)):
    with engine_errors():
        session = repo.load_session(session_id)
        quiz = repo.load_quiz(session.quiz_id)
    questions = quiz.questions_for_session(random.Random(str(session.id)))
    return [build_question_public(question) for question in questions]


# Apply one state-machine transition to a session.
@app.post("/sessions/{session_id}/actions/{action}", response_model=SessionOut)
def apply_session_action(
    session_id: UUID,
    action: SessionAction,
    repo: QuizRepository = Depends(get_repository),
):
    with object_lock(session_id), engine_errors():
        session = repo.load_session(session_id)
        SESSION_ACTIONS[action](session)
        repo.save_session(session)
        return session_out(session, repo.load_quiz(session.quiz_id))


@app.post("/sessions/{session_id}/skip", response_model=SessionOut)
def skip_question(
    session_id: UUID, payload: SkipCreate, repo: QuizRepository = Depends(get_repository)
):
    with object_lock(session_id), engine_errors():
        session = repo.load_session(session_id)
        quiz = repo.load_quiz(session.quiz_id)
        if not quiz.allow_skip:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT, detail="quiz does not allow skipping"
            )
        if payload.question_index >= len(quiz.questions):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="question_index out of range"
            )
        session.skip_question(payload.question_index)
        repo.save_session(session)
        return session_out(session, quiz)


# Record an answer and return correctness feedback.
@app.post("/sessions/{session_id}/answers", response_model=AnswerOut)
def submit_answer(
    session_id: UUID, payload: AnswerCreate, repo: QuizRepository = Depends(get_repository)
):
    with object_lock(session_id), engine_errors():
        session = repo.load_session(session_id)
        quiz = repo.load_quiz(session.quiz_id)
        question = quiz.get_question(payload.question_id)
        is_correct = session.submit_answer(question, payload.answer, payload.time_taken_seconds)
        repo.save_session(session)

    response = session.response_for(question.id)
    return AnswerOut(
        question_id=question.id,
        is_correct=is_correct,
        attempts=response.attempts,
        explanation=question.explanation if quiz.show_explanations else None,
    )


# Send an interview or explanation answer to the grader and record its verdict.
@app.post("/sessions/{session_id}/graded-answers", response_model=GradedAnswerOut)
def submit_open_response(
    session_id: UUID,
    payload: AnswerCreate,
    repo: QuizRepository = Depends(get_repository),
    grader: LlmClient = Depends(get_grader),
):
    with object_lock(session_id), engine_errors():
        session = repo.load_session(session_id)
        if session.state != SessionState.IN_PROGRESS:
            raise StateError("record_graded_answer", session.state)
        quiz = repo.load_quiz(session.quiz_id)
        question = quiz.get_question(payload.question_id)
        verdict = grade_open_response(grader, question, payload.answer)
        session.record_graded_answer(
            question, payload.answer, verdict.is_correct, payload.time_taken_seconds
        )
        repo.save_session(session)

    response = session.response_for(question.id)
    return GradedAnswerOut(
        question_id=question.id,
        is_correct=verdict.is_correct,
        attempts=response.attempts,
        rating=verdict.rating,
        feedback=verdict.feedback,
    )


# Finish a session and return its summary.
@app.post("/sessions/{session_id}/complete", response_model=SummaryOut)
def complete_session(session_id: UUID, repo: QuizRepository = Depends(get_repository)):
    with object_lock(session_id), engine_errors():
        session = repo.load_session(session_id)
        quiz = repo.load_quiz(session.quiz_id)
        summary = session.complete()
        repo.save_session(session)
    logger.info("Session %s completed with score %.2f", session.id, summary.score)
    return SummaryOut(
        session_id=summary.session_id,
        quiz_id=summary.quiz_id,
        score=summary.score,
        grade=summary.grade,
        passed=summary.passed(quiz.pass_threshold),
        correct_answers=summary.correct_answers,
        total_questions=summary.total_questions,
        skipped_questions=summary.skipped_questions,
        total_time_seconds=summary.total_time_seconds,
        duration_seconds=summary.duration.total_seconds(),
        average_time_per_question=summary.average_time_per_question,
        completion_rate=summary.completion_rate,
    )


# Score a session with the requested or configured strategy.
@app.post("/sessions/{session_id}/score", response_model=Score)
def score_session(
    session_id: UUID, payload: ScoreRequest, repo: QuizRepository = Depends(get_repository)
):
    with engine_errors():
        session = repo.load_session(session_id)
        quiz = repo.load_quiz(session.quiz_id)
        strategy = payload.strategy or strategy_from_name(get_settings().scoring_strategy)
        return strategy.calculate_score(session, quiz.questions)

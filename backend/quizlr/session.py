# Per-learner quiz session state machine and its completion summary.
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from quizlr.clock import Clock, ClockedModel, utcnow
from quizlr.errors import StateError, ValidationError
from quizlr.question import Answer, Question, check_answer_type, validate_answer

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.ABANDONED})


class QuestionResponse(BaseModel):
    question_id: UUID
    answer: Answer
    is_correct: bool
    time_taken_seconds: int = Field(..., ge=0)
    attempts: int = 1
    submitted_at: datetime


# Grade letters by minimum score, checked in order.
GRADE_THRESHOLDS = ((0.9, "A"), (0.8, "B"), (0.7, "C"), (0.6, "D"))


class SessionSummary(BaseModel):
    session_id: UUID
    quiz_id: UUID
    score: float
    correct_answers: int
    total_questions: int
    skipped_questions: int
    total_time_seconds: int
    duration: timedelta
    average_time_per_question: int
    completion_rate: float

    @property
    def grade(self) -> str:
        for threshold, letter in GRADE_THRESHOLDS:
            if self.score >= threshold:
                return letter
        return "F"

    def passed(self, pass_threshold: float) -> bool:
        return self.score >= pass_threshold


class QuizSession(ClockedModel):
    """One learner's attempt at a quiz.

    Guarded operations raise ``StateError`` without touching any field when
    called from the wrong state. Completed and abandoned sessions accept no
    further operations.
    """

    id: UUID = Field(default_factory=uuid4)
    quiz_id: UUID
    user_id: Optional[UUID] = None
    state: SessionState = SessionState.NOT_STARTED
    current_question_index: int = 0
    responses: List[QuestionResponse] = Field(default_factory=list)
    skipped_questions: List[int] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    pause_duration: timedelta = timedelta(0)
    last_activity: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def new(
        cls,
        quiz_id: UUID,
        user_id: Optional[UUID] = None,
        clock: Optional[Clock] = None,
    ) -> "QuizSession":
        session = cls(quiz_id=quiz_id, user_id=user_id)
        if clock is not None:
            session.with_clock(clock)
            session.last_activity = clock.now()
        return session

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _require(self, operation: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            logger.debug("Rejected %s on session %s in state %s", operation, self.id, self.state.value)
            raise StateError(operation, self.state)

    def _require_open(self, operation: str) -> None:
        if self.is_terminal:
            logger.debug("Rejected %s on finished session %s", operation, self.id)
            raise StateError(operation, self.state)

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session %s: %s -> %s", self.id, self.state.value, state.value)
        self.state = state

    def start(self) -> None:
        self._require("start", SessionState.NOT_STARTED)
        now = self._now()
        self._transition(SessionState.IN_PROGRESS)
        self.start_time = now
        self.last_activity = now

    def pause(self) -> None:
        self._require("pause", SessionState.IN_PROGRESS)
        self._transition(SessionState.PAUSED)
        self.last_activity = self._now()

    def resume(self) -> None:
        self._require("resume", SessionState.PAUSED)
        now = self._now()
        self.pause_duration += now - self.last_activity
        self._transition(SessionState.IN_PROGRESS)
        self.last_activity = now

    def submit_answer(self, question: Question, answer, time_taken_seconds: int) -> bool:
        self._require("submit_answer", SessionState.IN_PROGRESS)
        is_correct = validate_answer(question, answer)
        self._upsert_response(question, answer, is_correct, time_taken_seconds)
        return is_correct

    def record_graded_answer(
        self, question: Question, answer, is_correct: bool, time_taken_seconds: int
    ) -> bool:
        """Record a verdict reached by an external grader.

        Only interview and explanation questions are accepted here; every
        other variant goes through ``submit_answer``.
        """
        self._require("record_graded_answer", SessionState.IN_PROGRESS)
        check_answer_type(question, answer)
        if not question.requires_external_grading:
            raise ValidationError("question is graded by the engine; use submit_answer")
        self._upsert_response(question, answer, is_correct, time_taken_seconds)
        return is_correct

    # The recorded response for a question, looked up by scanning the list.
    def response_for(self, question_id: UUID) -> Optional[QuestionResponse]:
        for response in self.responses:
            if response.question_id == question_id:
                return response
        return None

    def _upsert_response(
        self, question: Question, answer, is_correct: bool, time_taken_seconds: int
    ) -> None:
        if time_taken_seconds < 0:
            raise ValidationError("time taken cannot be negative")
        now = self._now()
        response = self.response_for(question.id)
        if response is None:
            self.responses.append(
                QuestionResponse(
                    question_id=question.id,
                    answer=answer,
                    is_correct=is_correct,
                    time_taken_seconds=time_taken_seconds,
                    attempts=1,
                    submitted_at=now,
                )
            )
        else:
            response.attempts += 1
            response.answer = answer
            response.is_correct = is_correct
            response.time_taken_seconds += time_taken_seconds
            response.submitted_at = now
        self.last_activity = now

    def skip_question(self, question_index: int) -> None:
        self._require_open("skip_question")
        if question_index not in self.skipped_questions:
            self.skipped_questions.append(question_index)
        self.last_activity = self._now()

    def next_question(self) -> None:
        self._require("next_question", SessionState.IN_PROGRESS)
        self.current_question_index += 1
        self.last_activity = self._now()

    def previous_question(self) -> None:
        self._require("previous_question", SessionState.IN_PROGRESS)
        if self.current_question_index == 0:
            raise StateError("previous_question", self.state, "already at first question")
        self.current_question_index -= 1
        self.last_activity = self._now()

    def complete(self) -> SessionSummary:
        self._require("complete", SessionState.IN_PROGRESS)
        self._transition(SessionState.COMPLETED)
        self.end_time = self._now()
        return self.generate_summary()

    def abandon(self) -> None:
        self._require_open("abandon")
        self._transition(SessionState.ABANDONED)
        self.end_time = self._now()

    def generate_summary(self) -> SessionSummary:
        answered = len(self.responses)
        total_questions = answered + len(self.skipped_questions)
        correct_answers = sum(1 for response in self.responses if response.is_correct)
        total_time_seconds = sum(response.time_taken_seconds for response in self.responses)

        if self.start_time is None:
            duration = timedelta(0)
        else:
            end = self.end_time if self.end_time is not None else self._now()
            duration = end - self.start_time - self.pause_duration

        return SessionSummary(
            session_id=self.id,
            quiz_id=self.quiz_id,
            score=correct_answers / total_questions if total_questions else 0.0,
            correct_answers=correct_answers,
            total_questions=total_questions,
            skipped_questions=len(self.skipped_questions),
            total_time_seconds=total_time_seconds,
            duration=duration,
            average_time_per_question=total_time_seconds // answered if answered else 0,
            completion_rate=answered / total_questions if total_questions else 0.0,
        )

    # Fraction of the quiz's questions that have a recorded response.
    def get_progress(self, total_questions: int) -> float:
        if total_questions <= 0:
            return 0.0
        return len(self.responses) / total_questions

# Pydantic request/response schemas for the HTTP host.
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from quizlr.question import Answer, QuestionType
from quizlr.scoring import ScoringStrategy

# Request payload for one question inside a quiz.
class QuestionCreate(BaseModel):
    question_type: QuestionType
    topic_id: UUID
    difficulty: float = Field(0.5, ge=0.0, le=1.0)
    estimated_time_seconds: int = Field(60, ge=0)
    tags: List[str] = Field(default_factory=list)

# Request payload for creating a quiz.
class QuizCreate(BaseModel):
    title: str
    description: Optional[str] = None
    pass_threshold: float = 0.7
    allow_skip: bool = True
    show_explanations: bool = True
    randomize_questions: bool = False
    tags: List[str] = Field(default_factory=list)
    questions: List[QuestionCreate] = Field(default_factory=list)

# Response model for quiz metadata plus answer-free questions.
class QuizOut(BaseModel):
    id: UUID
    title: str
    description: Optional[str]
    created_at: str
    updated_at: str
    total_questions: int
    topic_ids: List[UUID]
    difficulty_range: List[float]
    estimated_duration_minutes: int
    pass_threshold: float
    questions: List[Dict[str, Any]]

# Request payload for opening a session.
class SessionCreate(BaseModel):
    quiz_id: UUID

# Response model for session progress.
class SessionOut(BaseModel):
    id: UUID
    quiz_id: UUID
    user_id: Optional[UUID]
    state: str
    current_question_index: int
    answered_count: int
    skipped_questions: List[int]
    progress: float
    start_time: Optional[str]
    end_time: Optional[str]

# Request payload for skipping a question.
class SkipCreate(BaseModel):
    question_index: int = Field(..., ge=0)

# Request payload for submitting an answer.
class AnswerCreate(BaseModel):
    question_id: UUID
    answer: Answer
    time_taken_seconds: int = Field(..., ge=0)

# Response model for answer feedback.
class AnswerOut(BaseModel):
    question_id: UUID
    is_correct: bool
    attempts: int
    explanation: Optional[str] = None

# Response model for a completed session.
class SummaryOut(BaseModel):
    session_id: UUID
    quiz_id: UUID
    score: float
    grade: str
    passed: bool
    correct_answers: int
    total_questions: int
    skipped_questions: int
    total_time_seconds: int
    duration_seconds: float
    average_time_per_question: int
    completion_rate: float

# Request payload for scoring a session; the configured default applies when empty.
class ScoreRequest(BaseModel):
    strategy: Optional[ScoringStrategy] = None

# Response model for an answer graded by the external grader.
class GradedAnswerOut(BaseModel):
    question_id: UUID
    is_correct: bool
    attempts: int
    rating: float
    feedback: str

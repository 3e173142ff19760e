# Quiz assessment engine: questions, quizzes, learner sessions and scoring.
from quizlr.errors import (
    NotFoundError,
    QuizlrError,
    StateError,
    UngradedQuestionError,
    ValidationError,
)
from quizlr.identity import AnonymousIdentity, AuthProvider, IdentityProvider, LearnerIdentity
from quizlr.question import Answer, Question, QuestionType, validate_answer
from quizlr.quiz import Quiz, QuizBuilder
from quizlr.scoring import Score, ScoringStrategy, strategy_from_name
from quizlr.session import QuizSession, SessionState, SessionSummary

__all__ = [
    "AnonymousIdentity",
    "Answer",
    "AuthProvider",
    "IdentityProvider",
    "LearnerIdentity",
    "NotFoundError",
    "Question",
    "QuestionType",
    "Quiz",
    "QuizBuilder",
    "QuizSession",
    "QuizlrError",
    "Score",
    "ScoringStrategy",
    "SessionState",
    "SessionSummary",
    "StateError",
    "UngradedQuestionError",
    "ValidationError",
    "strategy_from_name",
]

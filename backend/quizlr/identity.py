# Learner identity as supplied by an external sign-in provider.
from enum import Enum
from typing import Optional, Protocol
from uuid import UUID

from pydantic import BaseModel

from quizlr.clock import Clock
from quizlr.session import QuizSession


class AuthProvider(str, Enum):
    GOOGLE = "google"
    GITHUB = "github"
    MICROSOFT = "microsoft"


class LearnerIdentity(BaseModel):
    id: UUID
    email: str
    name: Optional[str] = None
    provider: AuthProvider


class IdentityProvider(Protocol):
    def current_learner(self) -> Optional[LearnerIdentity]:
        ...


# Open a session for whoever the provider reports as signed in, or anonymously.
def session_for_current_learner(
    provider: IdentityProvider, quiz_id: UUID, clock: Optional[Clock] = None
) -> QuizSession:
    learner = provider.current_learner()
    user_id = learner.id if learner is not None else None
    return QuizSession.new(quiz_id, user_id=user_id, clock=clock)


# Provider for hosts without sign-in: every learner is anonymous.
class AnonymousIdentity:
    def current_learner(self) -> Optional[LearnerIdentity]:
        return None

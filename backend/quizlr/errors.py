# Exception hierarchy shared by the engine, storage and collaborators.
from typing import Optional


class QuizlrError(Exception):
    pass


# Answer rejected before it could be scored (wrong variant, bad index, wrong count).
class ValidationError(QuizlrError):
    pass


# Answer belongs to a question variant that only an external grader can score.
class UngradedQuestionError(ValidationError):
    pass


# Operation attempted from a session state that forbids it.
class StateError(QuizlrError):
    def __init__(self, operation: str, state, message: Optional[str] = None):
        self.operation = operation
        self.state = state
        state_name = getattr(state, "value", state)
        if message is None:
            message = f"cannot {operation} while session is {state_name}"
        super().__init__(message)


class NotFoundError(QuizlrError):
    pass


class StorageError(QuizlrError):
    pass


class ConfigError(QuizlrError):
    pass


class LlmError(QuizlrError):
    pass

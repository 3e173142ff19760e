# Key/value storage interface, its SQLAlchemy adapter and a JSON repository.
import logging
from typing import List, Protocol
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from quizlr.errors import NotFoundError, StorageError
from quizlr.models import StoredObject
from quizlr.quiz import Quiz
from quizlr.session import QuizSession

logger = logging.getLogger(__name__)

QUIZ_PREFIX = "quizzes/"
SESSION_PREFIX = "sessions/"


class Storage(Protocol):
    def save(self, key: str, data: bytes) -> None:
        ...

    def load(self, key: str) -> bytes:
        ...

    def delete(self, key: str) -> None:
        ...

    def list(self, prefix: str) -> List[str]:
        ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlStorage:
    """Storage backed by the ``stored_objects`` table.

    ``session_factory`` is a SQLAlchemy ``sessionmaker``; every call runs in
    its own short session and commits or rolls back before returning.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def save(self, key: str, data: bytes) -> None:
        with self._session_factory() as db:
            try:
                record = db.get(StoredObject, key)
                if record is None:
                    db.add(StoredObject(key=key, data=data))
                else:
                    record.data = data
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise StorageError(f"failed to save {key}: {exc}") from exc
        logger.debug("Saved %s (%d bytes)", key, len(data))

    def load(self, key: str) -> bytes:
        with self._session_factory() as db:
            try:
                record = db.get(StoredObject, key)
            except SQLAlchemyError as exc:
                raise StorageError(f"failed to load {key}: {exc}") from exc
            if record is None:
                raise NotFoundError(f"{key} not found")
            return bytes(record.data)

    def delete(self, key: str) -> None:
        with self._session_factory() as db:
            try:
                record = db.get(StoredObject, key)
                if record is None:
                    raise NotFoundError(f"{key} not found")
                db.delete(record)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise StorageError(f"failed to delete {key}: {exc}") from exc
        logger.debug("Deleted %s", key)

    def list(self, prefix: str) -> List[str]:
        with self._session_factory() as db:
            try:
                rows = (
                    db.query(StoredObject.key)
                    .filter(StoredObject.key.like(f"{_escape_like(prefix)}%", escape="\\"))
                    .order_by(StoredObject.key)
                    .all()
                )
            except SQLAlchemyError as exc:
                raise StorageError(f"failed to list {prefix}: {exc}") from exc
        return [row.key for row in rows]


class QuizRepository:
    """Stores quizzes and sessions as pydantic JSON under fixed key prefixes."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def save_quiz(self, quiz: Quiz) -> None:
        self.storage.save(f"{QUIZ_PREFIX}{quiz.id}", quiz.model_dump_json().encode("utf-8"))

    def load_quiz(self, quiz_id: UUID) -> Quiz:
        try:
            data = self.storage.load(f"{QUIZ_PREFIX}{quiz_id}")
        except NotFoundError:
            raise NotFoundError(f"quiz {quiz_id} not found") from None
        return Quiz.model_validate_json(data)

    def delete_quiz(self, quiz_id: UUID) -> None:
        try:
            self.storage.delete(f"{QUIZ_PREFIX}{quiz_id}")
        except NotFoundError:
            raise NotFoundError(f"quiz {quiz_id} not found") from None

    def list_quiz_ids(self) -> List[UUID]:
        return [UUID(key[len(QUIZ_PREFIX):]) for key in self.storage.list(QUIZ_PREFIX)]

    def save_session(self, session: QuizSession) -> None:
        self.storage.save(
            f"{SESSION_PREFIX}{session.id}", session.model_dump_json().encode("utf-8")
        )

    def load_session(self, session_id: UUID) -> QuizSession:
        try:
            data = self.storage.load(f"{SESSION_PREFIX}{session_id}")
        except NotFoundError:
            raise NotFoundError(f"session {session_id} not found") from None
        return QuizSession.model_validate_json(data)

    def list_session_ids(self) -> List[UUID]:
        return [UUID(key[len(SESSION_PREFIX):]) for key in self.storage.list(SESSION_PREFIX)]

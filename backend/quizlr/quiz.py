# Quiz aggregate with derived fields and a fluent builder.
import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import Field

from quizlr.clock import Clock, ClockedModel, utcnow
from quizlr.errors import NotFoundError
from quizlr.question import Question

logger = logging.getLogger(__name__)

DEFAULT_DIFFICULTY_RANGE = (0.0, 1.0)


class Quiz(ClockedModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    description: Optional[str] = None
    questions: List[Question] = Field(default_factory=list)
    # Topics seen by add_question; removals do not prune this list.
    topic_ids: List[UUID] = Field(default_factory=list)
    difficulty_range: Tuple[float, float] = DEFAULT_DIFFICULTY_RANGE
    estimated_duration_minutes: int = 30
    pass_threshold: float = 0.7
    allow_skip: bool = True
    show_explanations: bool = True
    randomize_questions: bool = False
    randomize_options: bool = False
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(cls, title: str, clock: Optional[Clock] = None) -> "Quiz":
        quiz = cls(title=title)
        if clock is not None:
            quiz.with_clock(clock)
            quiz.created_at = quiz.updated_at = clock.now()
        return quiz

    def add_question(self, question: Question) -> None:
        if question.topic_id not in self.topic_ids:
            self.topic_ids.append(question.topic_id)
        self.questions.append(question)
        self._refresh_derived_fields()
        logger.debug("Added question %s to quiz %s", question.id, self.id)

    def remove_question(self, question_id: UUID) -> Optional[Question]:
        for position, question in enumerate(self.questions):
            if question.id == question_id:
                removed = self.questions.pop(position)
                self._refresh_derived_fields()
                logger.debug("Removed question %s from quiz %s", question_id, self.id)
                return removed
        return None

    def get_question(self, question_id: UUID) -> Question:
        for question in self.questions:
            if question.id == question_id:
                return question
        raise NotFoundError(f"question {question_id} not found in quiz {self.id}")

    # Copy of the questions, shuffled with the given source when randomization is on.
    def questions_for_session(self, rng: Optional[random.Random] = None) -> List[Question]:
        questions = [question.model_copy(deep=True) for question in self.questions]
        if self.randomize_questions:
            (rng or random.Random()).shuffle(questions)
        # randomize_options is stored but option order is never changed here.
        return questions

    def _refresh_derived_fields(self) -> None:
        if self.questions:
            difficulties = [question.difficulty for question in self.questions]
            self.difficulty_range = (min(difficulties), max(difficulties))
        else:
            self.difficulty_range = DEFAULT_DIFFICULTY_RANGE
        total_seconds = sum(question.estimated_time_seconds for question in self.questions)
        self.estimated_duration_minutes = max(1, total_seconds // 60)
        self.updated_at = self._now()


class QuizBuilder:
    """Chained construction of a Quiz.

    Every method returns a new builder wrapping a copy of the quiz, so a
    partially configured builder can be reused as a template.
    """

    def __init__(self, title: str, clock: Optional[Clock] = None, _quiz: Optional[Quiz] = None):
        self._clock = clock
        self._quiz = _quiz if _quiz is not None else Quiz.new(title, clock=clock)

    def _derive(self, **updates) -> "QuizBuilder":
        quiz = self._quiz.model_copy(deep=True, update=updates)
        if self._clock is not None:
            quiz.with_clock(self._clock)
        return QuizBuilder(quiz.title, clock=self._clock, _quiz=quiz)

    def description(self, description: str) -> "QuizBuilder":
        return self._derive(description=description)

    def pass_threshold(self, threshold: float) -> "QuizBuilder":
        return self._derive(pass_threshold=min(1.0, max(0.0, threshold)))

    def allow_skip(self, allow: bool) -> "QuizBuilder":
        return self._derive(allow_skip=allow)

    def show_explanations(self, show: bool) -> "QuizBuilder":
        return self._derive(show_explanations=show)

    def randomize_questions(self, randomize: bool) -> "QuizBuilder":
        return self._derive(randomize_questions=randomize)

    def randomize_options(self, randomize: bool) -> "QuizBuilder":
        return self._derive(randomize_options=randomize)

    def add_question(self, question: Question) -> "QuizBuilder":
        return self.add_questions([question])

    def add_questions(self, questions: List[Question]) -> "QuizBuilder":
        builder = self._derive()
        for question in questions:
            builder._quiz.add_question(question)
        return builder

    def add_tag(self, tag: str) -> "QuizBuilder":
        if tag in self._quiz.tags:
            return self._derive()
        return self._derive(tags=self._quiz.tags + [tag])

    def add_metadata(self, key: str, value: Any) -> "QuizBuilder":
        return self._derive(metadata={**self._quiz.metadata, key: value})

    def build(self) -> Quiz:
        return self._derive()._quiz

# Question and answer variants plus the deterministic answer check.
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, TypeAdapter

from quizlr.clock import Clock, ClockedModel, utcnow
from quizlr.errors import UngradedQuestionError, ValidationError

DEFAULT_ESTIMATED_TIME_SECONDS = 60

OptionIndex = Annotated[int, Field(ge=0)]


class FollowUpRule(BaseModel):
    condition: str
    follow_up_question: str
    weight: float


class Citation(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    source: str
    url: Optional[str] = None
    excerpt: Optional[str] = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)


# Question variants, discriminated on "type".
class TrueFalse(BaseModel):
    type: Literal["TrueFalse"] = "TrueFalse"
    statement: str
    correct_answer: bool
    explanation: Optional[str] = None


class MultipleChoice(BaseModel):
    type: Literal["MultipleChoice"] = "MultipleChoice"
    question: str
    options: List[str]
    correct_index: OptionIndex
    explanation: Optional[str] = None


class MultiSelect(BaseModel):
    type: Literal["MultiSelect"] = "MultiSelect"
    question: str
    options: List[str]
    correct_indices: List[OptionIndex]
    explanation: Optional[str] = None


class FillInTheBlank(BaseModel):
    type: Literal["FillInTheBlank"] = "FillInTheBlank"
    template: str
    correct_answers: List[str]
    case_sensitive: bool = False
    explanation: Optional[str] = None


class MatchPairs(BaseModel):
    type: Literal["MatchPairs"] = "MatchPairs"
    instruction: str
    left_items: List[str]
    right_items: List[str]
    correct_pairs: List[Tuple[int, int]]
    explanation: Optional[str] = None


class InteractiveInterview(BaseModel):
    type: Literal["InteractiveInterview"] = "InteractiveInterview"
    topic: str
    initial_question: str
    follow_up_rules: List[FollowUpRule] = Field(default_factory=list)
    comprehension_threshold: float = 0.7


class TopicExplanation(BaseModel):
    type: Literal["TopicExplanation"] = "TopicExplanation"
    topic: str
    prompt: str
    key_concepts: List[str] = Field(default_factory=list)
    min_word_count: int = 0


QuestionType = Annotated[
    Union[
        TrueFalse,
        MultipleChoice,
        MultiSelect,
        FillInTheBlank,
        MatchPairs,
        InteractiveInterview,
        TopicExplanation,
    ],
    Field(discriminator="type"),
]


# Answer variants, discriminated on "type".
class TrueFalseAnswer(BaseModel):
    type: Literal["TrueFalse"] = "TrueFalse"
    value: bool


class MultipleChoiceAnswer(BaseModel):
    type: Literal["MultipleChoice"] = "MultipleChoice"
    index: OptionIndex


class MultiSelectAnswer(BaseModel):
    type: Literal["MultiSelect"] = "MultiSelect"
    indices: List[OptionIndex]


class FillInTheBlankAnswer(BaseModel):
    type: Literal["FillInTheBlank"] = "FillInTheBlank"
    answers: List[str]


class MatchPairsAnswer(BaseModel):
    type: Literal["MatchPairs"] = "MatchPairs"
    pairs: List[Tuple[int, int]]


class InteractiveResponse(BaseModel):
    type: Literal["InteractiveResponse"] = "InteractiveResponse"
    responses: List[str]
    time_taken_seconds: int = Field(0, ge=0)


class TopicExplanationAnswer(BaseModel):
    type: Literal["TopicExplanation"] = "TopicExplanation"
    explanation: str
    time_taken_seconds: int = Field(0, ge=0)


Answer = Annotated[
    Union[
        TrueFalseAnswer,
        MultipleChoiceAnswer,
        MultiSelectAnswer,
        FillInTheBlankAnswer,
        MatchPairsAnswer,
        InteractiveResponse,
        TopicExplanationAnswer,
    ],
    Field(discriminator="type"),
]

_answer_adapter = TypeAdapter(Answer)

# The single answer variant each question variant accepts.
ANSWER_TYPE_FOR_QUESTION = {
    "TrueFalse": "TrueFalse",
    "MultipleChoice": "MultipleChoice",
    "MultiSelect": "MultiSelect",
    "FillInTheBlank": "FillInTheBlank",
    "MatchPairs": "MatchPairs",
    "InteractiveInterview": "InteractiveResponse",
    "TopicExplanation": "TopicExplanation",
}

EXTERNALLY_GRADED_TYPES = frozenset({"InteractiveInterview", "TopicExplanation"})


# Build an Answer variant from its JSON-compatible dict form.
def parse_answer(data: Dict[str, Any]):
    return _answer_adapter.validate_python(data)


class Question(ClockedModel):
    id: UUID = Field(default_factory=uuid4)
    question_type: QuestionType
    topic_id: UUID
    difficulty: float = 0.5
    estimated_time_seconds: int = DEFAULT_ESTIMATED_TIME_SECONDS
    tags: List[str] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        question_type,
        topic_id: UUID,
        difficulty: float,
        clock: Optional[Clock] = None,
    ) -> "Question":
        question = cls(question_type=question_type, topic_id=topic_id, difficulty=difficulty)
        if clock is not None:
            question.with_clock(clock)
            question.created_at = question.updated_at = clock.now()
        return question

    @property
    def requires_external_grading(self) -> bool:
        return self.question_type.type in EXTERNALLY_GRADED_TYPES

    @property
    def explanation(self) -> Optional[str]:
        if self.requires_external_grading:
            return None
        return self.question_type.explanation

    def validate_answer(self, answer) -> bool:
        return validate_answer(self, answer)


# Reject an answer whose variant is not the one the question accepts.
def check_answer_type(question: Question, answer) -> None:
    expected = ANSWER_TYPE_FOR_QUESTION[question.question_type.type]
    if answer.type != expected:
        raise ValidationError("answer type does not match question type")


def _check_option_indices(indices: List[int], option_count: int) -> None:
    if any(index >= option_count for index in indices):
        raise ValidationError("invalid option index")


def validate_answer(question: Question, answer) -> bool:
    """Return whether ``answer`` is correct for ``question``.

    Raises ``ValidationError`` when the answer cannot be scored at all: the
    variant does not match, an option index is out of range, or a fill-in
    answer has the wrong number of blanks. Interview and explanation questions
    raise ``UngradedQuestionError`` so that callers hand them to an external
    grader instead of recording a false negative.
    """
    check_answer_type(question, answer)
    kind = question.question_type

    if isinstance(kind, TrueFalse):
        return kind.correct_answer == answer.value

    if isinstance(kind, MultipleChoice):
        _check_option_indices([answer.index], len(kind.options))
        return kind.correct_index == answer.index

    if isinstance(kind, MultiSelect):
        _check_option_indices(answer.indices, len(kind.options))
        return sorted(answer.indices) == sorted(kind.correct_indices)

    if isinstance(kind, FillInTheBlank):
        if len(answer.answers) != len(kind.correct_answers):
            raise ValidationError("wrong number of answers")
        for given, expected in zip(answer.answers, kind.correct_answers):
            if kind.case_sensitive:
                if given != expected:
                    return False
            elif given.lower() != expected.lower():
                return False
        return True

    if isinstance(kind, MatchPairs):
        return sorted(tuple(pair) for pair in answer.pairs) == sorted(
            tuple(pair) for pair in kind.correct_pairs
        )

    raise UngradedQuestionError(
        f"{kind.type} answers are graded outside the engine"
    )

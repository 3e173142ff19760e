# Scoring strategies that reduce a session and its questions to a Score.
import math
from abc import abstractmethod
from typing import Annotated, Dict, Literal, Optional, Sequence, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from quizlr.errors import ConfigError
from quizlr.question import Question
from quizlr.session import QuestionResponse, QuizSession

EASY_DIFFICULTY_LIMIT = 0.33
MEDIUM_DIFFICULTY_LIMIT = 0.67


class ScoreComponents(BaseModel):
    correctness: float = 0.0
    speed: float = 0.0
    difficulty: float = 0.0
    consistency: float = 0.0


class Score(BaseModel):
    raw_score: float
    weighted_score: float
    # Reserved for cohort comparison; never filled in.
    percentile: Optional[float] = None
    time_bonus: float = 0.0
    difficulty_bonus: float = 0.0
    streak_bonus: float = 0.0
    components: ScoreComponents = Field(default_factory=ScoreComponents)


def _question_map(questions: Sequence[Question]) -> Dict[UUID, Question]:
    return {question.id: question for question in questions}


def _raw_score(session: QuizSession, questions: Sequence[Question]) -> float:
    if not questions:
        return 0.0
    correct = sum(1 for response in session.responses if response.is_correct)
    return correct / len(questions)


class _Strategy(BaseModel):
    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def calculate_score(self, session: QuizSession, questions: Sequence[Question]) -> Score:
        ...


class SimpleScoring(_Strategy):
    kind: Literal["simple"] = "simple"

    def calculate_score(self, session: QuizSession, questions: Sequence[Question]) -> Score:
        raw_score = _raw_score(session, questions)
        return Score(
            raw_score=raw_score,
            weighted_score=raw_score,
            components=ScoreComponents(correctness=raw_score),
        )


class TimeWeightedScoring(_Strategy):
    """Each correct answer is worth one point, minus a penalty for every
    second spent beyond ``base_time_seconds``; points never go negative."""

    kind: Literal["time_weighted"] = "time_weighted"
    base_time_seconds: int = Field(30, ge=0)
    penalty_per_second: float = Field(0.01, ge=0.0)

    def calculate_score(self, session: QuizSession, questions: Sequence[Question]) -> Score:
        by_id = _question_map(questions)
        total_points = 0.0
        for response in session.responses:
            if response.question_id not in by_id:
                continue
            base_points = 1.0 if response.is_correct else 0.0
            overtime = max(0, response.time_taken_seconds - self.base_time_seconds)
            total_points += max(0.0, base_points - overtime * self.penalty_per_second)

        weighted_score = total_points / len(questions) if questions else 0.0
        raw_score = _raw_score(session, questions)
        return Score(
            raw_score=raw_score,
            weighted_score=weighted_score,
            time_bonus=weighted_score - raw_score,
            components=ScoreComponents(correctness=raw_score, speed=weighted_score - raw_score),
        )


class DifficultyWeightedScoring(_Strategy):
    kind: Literal["difficulty_weighted"] = "difficulty_weighted"
    easy_multiplier: float = 1.0
    medium_multiplier: float = 1.5
    hard_multiplier: float = 2.0

    def multiplier_for(self, difficulty: float) -> float:
        if difficulty < EASY_DIFFICULTY_LIMIT:
            return self.easy_multiplier
        if difficulty < MEDIUM_DIFFICULTY_LIMIT:
            return self.medium_multiplier
        return self.hard_multiplier

    def calculate_score(self, session: QuizSession, questions: Sequence[Question]) -> Score:
        by_id = _question_map(questions)
        earned = 0.0
        max_possible = 0.0
        for response in session.responses:
            question = by_id.get(response.question_id)
            if question is None:
                continue
            multiplier = self.multiplier_for(question.difficulty)
            max_possible += multiplier
            if response.is_correct:
                earned += multiplier

        # Skipped questions count against the maximum but earn nothing.
        for index in session.skipped_questions:
            if 0 <= index < len(questions):
                max_possible += self.multiplier_for(questions[index].difficulty)

        weighted_score = earned / max_possible if max_possible > 0 else 0.0
        raw_score = _raw_score(session, questions)
        return Score(
            raw_score=raw_score,
            weighted_score=weighted_score,
            difficulty_bonus=weighted_score - raw_score,
            components=ScoreComponents(
                correctness=raw_score, difficulty=weighted_score - raw_score
            ),
        )


class AdaptiveScoring(_Strategy):
    """Blend correctness with speed, difficulty, streak and consistency.

    Correctness always carries weight 1; the other four components carry the
    configured weights, and the result is normalized by the weight total.
    """

    kind: Literal["adaptive"] = "adaptive"
    time_weight: float = Field(0.2, ge=0.0)
    difficulty_weight: float = Field(0.3, ge=0.0)
    streak_weight: float = Field(0.2, ge=0.0)
    consistency_weight: float = Field(0.3, ge=0.0)

    def calculate_score(self, session: QuizSession, questions: Sequence[Question]) -> Score:
        correctness = _raw_score(session, questions)
        speed = time_score(session.responses, questions)
        difficulty = difficulty_score(session.responses, questions)
        streak = streak_score(session.responses)
        consistency = consistency_score(session.responses)

        total_weight = (
            self.time_weight + self.difficulty_weight + self.streak_weight + self.consistency_weight
        )
        weighted_score = (
            correctness
            + speed * self.time_weight
            + difficulty * self.difficulty_weight
            + streak * self.streak_weight
            + consistency * self.consistency_weight
        ) / (1.0 + total_weight)

        return Score(
            raw_score=correctness,
            weighted_score=weighted_score,
            time_bonus=speed * self.time_weight,
            difficulty_bonus=difficulty * self.difficulty_weight,
            streak_bonus=streak * self.streak_weight,
            components=ScoreComponents(
                correctness=correctness,
                speed=speed,
                difficulty=difficulty,
                consistency=consistency,
            ),
        )


# Expected average time over actual average time, capped at 1.
def time_score(responses: Sequence[QuestionResponse], questions: Sequence[Question]) -> float:
    if not questions:
        return 0.0
    expected = sum(question.estimated_time_seconds for question in questions) / len(questions)
    actual = sum(response.time_taken_seconds for response in responses) / max(1, len(responses))
    return min(1.0, expected / max(1.0, actual))


# Share of attempted difficulty that was answered correctly.
def difficulty_score(
    responses: Sequence[QuestionResponse], questions: Sequence[Question]
) -> float:
    by_id = _question_map(questions)
    attempted = 0.0
    correct = 0.0
    for response in responses:
        question = by_id.get(response.question_id)
        if question is None:
            continue
        attempted += question.difficulty
        if response.is_correct:
            correct += question.difficulty
    return correct / attempted if attempted > 0 else 0.0


# Longest run of consecutive correct responses over the response count.
def streak_score(responses: Sequence[QuestionResponse]) -> float:
    if not responses:
        return 0.0
    longest = current = 0
    for response in responses:
        if response.is_correct:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest / len(responses)


# 1 / (1 + coefficient of variation of response times).
def consistency_score(responses: Sequence[QuestionResponse]) -> float:
    if len(responses) < 2:
        return 1.0
    times = [float(response.time_taken_seconds) for response in responses]
    mean = sum(times) / len(times)
    if mean == 0:
        return 1.0
    variance = sum((value - mean) ** 2 for value in times) / len(times)
    cv = math.sqrt(variance) / mean
    return min(1.0, 1.0 / (1.0 + cv))


ScoringStrategy = Annotated[
    Union[SimpleScoring, TimeWeightedScoring, DifficultyWeightedScoring, AdaptiveScoring],
    Field(discriminator="kind"),
]

STRATEGIES = {
    "simple": SimpleScoring,
    "time_weighted": TimeWeightedScoring,
    "difficulty_weighted": DifficultyWeightedScoring,
    "adaptive": AdaptiveScoring,
}


# Build a strategy from its kind name, e.g. a configured default.
def strategy_from_name(name: str, **params) -> _Strategy:
    strategy_cls = STRATEGIES.get(name.strip().lower())
    if strategy_cls is None:
        raise ConfigError(
            f"unknown scoring strategy {name!r}; expected one of {', '.join(sorted(STRATEGIES))}"
        )
    return strategy_cls(**params)

# Generation/grading collaborator used for interview and explanation answers.
import logging
import os
import re
from enum import Enum
from typing import List, Optional, Protocol

from pydantic import BaseModel

from quizlr.config import Settings
from quizlr.errors import ConfigError, LlmError, ValidationError
from quizlr.question import (
    InteractiveInterview,
    Question,
    TopicExplanation,
    check_answer_type,
)

logger = logging.getLogger(__name__)

MODEL_NAME = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")

# Explanations pass at this rating; interviews carry their own threshold.
DEFAULT_PASS_MARK = 0.7
# A rating opens the reply, optionally after a label such as "Rating:", and may be a fraction.
VERDICT_PATTERN = re.compile(
    r"\s*(?:[^:\n]*:\s*)?(\d+(?:\.\d+)?)(?:\s*(?:/|out of)\s*(\d+(?:\.\d+)?))?"
)


class LlmProvider(str, Enum):
    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENAI = "openai"


class LlmClient(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class OpenAIClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or MODEL_NAME

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise LlmError("OPENAI_API_KEY is not configured")

        from openai import OpenAI

        client = OpenAI(api_key=self.api_key)
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as exc:
            logger.exception("OpenAI request failed")
            raise LlmError(f"OpenAI request failed: {exc}") from exc
        return response.choices[0].message.content or ""


# Pick the configured generation client.
def get_llm_client(settings: Settings) -> LlmClient:
    try:
        provider = LlmProvider(settings.ai_provider)
    except ValueError:
        raise ConfigError(f"unknown AI provider {settings.ai_provider!r}") from None
    if provider is LlmProvider.OPENAI:
        return OpenAIClient(model=settings.openai_model)
    raise ConfigError(f"AI provider {provider.value!r} has no client in this build")


class ExplanationCheck(BaseModel):
    word_count: int
    meets_min_word_count: bool
    missing_concepts: List[str]


# Length and key-concept pre-check for a topic explanation answer.
def check_topic_explanation(question: Question, answer) -> ExplanationCheck:
    check_answer_type(question, answer)
    kind = question.question_type
    if not isinstance(kind, TopicExplanation):
        raise ValidationError("question is not a topic explanation")
    text = answer.explanation.lower()
    word_count = len(re.findall(r"\b\w+\b", text))
    missing = [concept for concept in kind.key_concepts if concept.lower() not in text]
    return ExplanationCheck(
        word_count=word_count,
        meets_min_word_count=word_count >= kind.min_word_count,
        missing_concepts=missing,
    )


def build_grading_prompt(question: Question, answer) -> str:
    kind = question.question_type
    if isinstance(kind, InteractiveInterview):
        rules = "\n".join(
            f"- if {rule.condition}: ask \"{rule.follow_up_question}\" (weight {rule.weight})"
            for rule in kind.follow_up_rules
        )
        responses = "\n".join(f"- {response}" for response in answer.responses)
        return (
            f"You are interviewing a learner about {kind.topic}.\n"
            f"Opening question: {kind.initial_question}\n"
            f"Follow-up rules:\n{rules or '- none'}\n"
            f"Learner responses:\n{responses}\n"
            f"Rate comprehension from 0 to 1; the pass mark is "
            f"{kind.comprehension_threshold}. Reply with the number and one sentence."
        )
    if isinstance(kind, TopicExplanation):
        concepts = ", ".join(kind.key_concepts) or "none listed"
        return (
            f"Grade this explanation of {kind.topic}.\n"
            f"Prompt: {kind.prompt}\n"
            f"Key concepts: {concepts}\n"
            f"Explanation: {answer.explanation}\n"
            "Rate from 0 to 1 how well the key concepts are covered. "
            "Reply with the number and one sentence."
        )
    raise ValidationError("question is graded by the engine")


class GradingVerdict(BaseModel):
    rating: float
    is_correct: bool
    feedback: str


# Pull the 0..1 rating from the front of a grader reply.
def parse_verdict(text: str) -> float:
    match = VERDICT_PATTERN.match(text)
    if match is None:
        raise LlmError(f"grader reply has no rating: {text!r}")
    rating = float(match.group(1))
    if match.group(2) is not None:
        scale = float(match.group(2))
        if scale == 0:
            raise LlmError(f"grader reply rates out of zero: {text!r}")
        rating /= scale
    return min(1.0, max(0.0, rating))


def route_for_grading(client: LlmClient, question: Question, answer) -> str:
    """Send an interview or explanation answer to the external grader.

    Returns the collaborator's raw reply; ``grade_open_response`` turns it
    into a rating and correctness flag.
    """
    check_answer_type(question, answer)
    if not question.requires_external_grading:
        raise ValidationError("question is graded by the engine")
    prompt = build_grading_prompt(question, answer)
    logger.debug("Routing question %s to external grader", question.id)
    return client.generate(prompt)


# Grade an open response and compare the rating with the question's pass mark.
def grade_open_response(client: LlmClient, question: Question, answer) -> GradingVerdict:
    reply = route_for_grading(client, question, answer)
    rating = parse_verdict(reply)
    kind = question.question_type
    if isinstance(kind, InteractiveInterview):
        pass_mark = kind.comprehension_threshold
    else:
        pass_mark = DEFAULT_PASS_MARK
    return GradingVerdict(rating=rating, is_correct=rating >= pass_mark, feedback=reply.strip())

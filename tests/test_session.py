# Session lifecycle, state guards, response upserts and summaries.
from datetime import timedelta
from uuid import uuid4

import pytest

from quizlr.errors import StateError, UngradedQuestionError, ValidationError
from quizlr.question import (
    MultipleChoice,
    MultipleChoiceAnswer,
    TopicExplanation,
    TopicExplanationAnswer,
    TrueFalseAnswer,
)
from quizlr.session import QuestionResponse, QuizSession, SessionState, SessionSummary


@pytest.fixture()
def session(clock):
    return QuizSession.new(uuid4(), clock=clock)


@pytest.fixture()
def started(session):
    session.start()
    return session


def test_new_session_defaults(clock):
    quiz_id = uuid4()
    user_id = uuid4()
    session = QuizSession.new(quiz_id, user_id=user_id, clock=clock)

    assert session.quiz_id == quiz_id
    assert session.user_id == user_id
    assert session.state == SessionState.NOT_STARTED
    assert session.current_question_index == 0
    assert session.responses == []
    assert session.skipped_questions == []
    assert session.start_time is None
    assert session.end_time is None
    assert session.pause_duration == timedelta(0)
    assert QuizSession.new(quiz_id).user_id is None


def test_full_lifecycle(clock, session):
    session.start()
    assert session.state == SessionState.IN_PROGRESS
    assert session.start_time == clock.now()

    session.pause()
    assert session.state == SessionState.PAUSED

    session.resume()
    assert session.state == SessionState.IN_PROGRESS

    summary = session.complete()
    assert session.state == SessionState.COMPLETED
    assert session.end_time == clock.now()
    assert summary.score == 0.0


def test_start_twice_is_rejected(session):
    session.start()

    with pytest.raises(StateError) as excinfo:
        session.start()
    assert excinfo.value.operation == "start"
    assert excinfo.value.state == SessionState.IN_PROGRESS


@pytest.mark.parametrize("operation", ["pause", "resume", "next_question", "complete"])
def test_guarded_operations_fail_before_start(session, operation):
    with pytest.raises(StateError):
        getattr(session, operation)()
    assert session.state == SessionState.NOT_STARTED
    assert session.current_question_index == 0


def test_pause_and_resume_guards(started):
    with pytest.raises(StateError):
        started.resume()

    started.pause()
    with pytest.raises(StateError):
        started.pause()
    with pytest.raises(StateError):
        started.next_question()


# Time spent paused is accumulated from the clock, not from waiting.
def test_pause_duration_accumulates(clock, started):
    clock.advance(10)
    started.pause()
    clock.advance(45)
    started.resume()
    clock.advance(5)
    started.pause()
    clock.advance(15)
    started.resume()

    assert started.pause_duration == timedelta(seconds=60)
    assert started.last_activity == clock.now()


def test_navigation(started):
    with pytest.raises(StateError, match="already at first question"):
        started.previous_question()

    started.next_question()
    started.next_question()
    assert started.current_question_index == 2

    started.previous_question()
    assert started.current_question_index == 1


def test_submit_answer_records_response(clock, started, build_question):
    question = build_question()

    assert started.submit_answer(question, TrueFalseAnswer(value=True), 30) is True

    assert len(started.responses) == 1
    response = started.responses[0]
    assert response.question_id == question.id
    assert response.is_correct is True
    assert response.time_taken_seconds == 30
    assert response.attempts == 1
    assert response.submitted_at == clock.now()


def test_submit_answer_incorrect(started, build_question):
    question = build_question()

    assert started.submit_answer(question, TrueFalseAnswer(value=False), 25) is False
    assert started.responses[0].is_correct is False


def test_submit_answer_requires_in_progress(session, build_question):
    question = build_question()

    with pytest.raises(StateError):
        session.submit_answer(question, TrueFalseAnswer(value=True), 30)

    session.start()
    session.pause()
    with pytest.raises(StateError):
        session.submit_answer(question, TrueFalseAnswer(value=True), 30)
    assert session.responses == []


# A resubmission updates the single response and adds the new time.
def test_resubmission_upserts_response(started, build_question):
    question = build_question()

    started.submit_answer(question, TrueFalseAnswer(value=False), 20)
    started.submit_answer(question, TrueFalseAnswer(value=True), 15)

    assert len(started.responses) == 1
    response = started.responses[0]
    assert response.attempts == 2
    assert response.time_taken_seconds == 35
    assert response.is_correct is True
    assert response.answer == TrueFalseAnswer(value=True)


def test_invalid_answer_leaves_session_untouched(clock, started, build_question):
    question = build_question(
        MultipleChoice(question="Pick", options=["A", "B"], correct_index=0)
    )
    started.submit_answer(question, MultipleChoiceAnswer(index=0), 10)
    before = started.model_dump()
    clock.advance(30)

    with pytest.raises(ValidationError):
        started.submit_answer(question, MultipleChoiceAnswer(index=5), 10)
    with pytest.raises(ValidationError):
        started.submit_answer(question, TrueFalseAnswer(value=True), 10)

    assert started.model_dump() == before


def test_skip_question_is_idempotent(started):
    started.skip_question(2)
    started.skip_question(2)
    started.skip_question(0)

    assert started.skipped_questions == [2, 0]


def test_abandon_from_any_open_state(clock, session):
    session.abandon()
    assert session.state == SessionState.ABANDONED
    assert session.end_time == clock.now()


@pytest.mark.parametrize("finish", ["complete", "abandon"])
def test_terminal_states_reject_everything(started, build_question, finish):
    getattr(started, finish)()

    for operation in ("start", "pause", "resume", "next_question", "complete", "abandon"):
        with pytest.raises(StateError):
            getattr(started, operation)()
    with pytest.raises(StateError):
        started.skip_question(0)
    with pytest.raises(StateError):
        started.submit_answer(build_question(), TrueFalseAnswer(value=True), 5)


def test_summary_counts_answered_and_skipped(started, build_question):
    right = build_question()
    wrong = build_question()
    started.submit_answer(right, TrueFalseAnswer(value=True), 30)
    started.submit_answer(wrong, TrueFalseAnswer(value=False), 45)
    started.skip_question(2)

    summary = started.complete()

    assert summary.total_questions == 3
    assert summary.correct_answers == 1
    assert summary.skipped_questions == 1
    assert summary.total_time_seconds == 75
    assert summary.completion_rate == pytest.approx(2 / 3)
    assert summary.score == pytest.approx(1 / 3)
    assert summary.average_time_per_question == 37


def test_summary_duration_excludes_pauses(clock, started):
    clock.advance(100)
    started.pause()
    clock.advance(40)
    started.resume()
    clock.advance(20)

    assert started.generate_summary().duration == timedelta(seconds=120)
    assert started.complete().duration == timedelta(seconds=120)
    clock.advance(500)
    assert started.generate_summary().duration == timedelta(seconds=120)


def test_summary_before_start_is_empty(session):
    summary = session.generate_summary()

    assert summary.duration == timedelta(0)
    assert summary.score == 0.0
    assert summary.completion_rate == 0.0
    assert summary.average_time_per_question == 0


@pytest.mark.parametrize(
    "score, grade",
    [(0.95, "A"), (0.9, "A"), (0.85, "B"), (0.7, "C"), (0.6, "D"), (0.59, "F"), (0.0, "F")],
)
def test_summary_grades(score, grade):
    summary = SessionSummary(
        session_id=uuid4(),
        quiz_id=uuid4(),
        score=score,
        correct_answers=0,
        total_questions=0,
        skipped_questions=0,
        total_time_seconds=0,
        duration=timedelta(0),
        average_time_per_question=0,
        completion_rate=0.0,
    )

    assert summary.grade == grade
    assert summary.passed(0.6) is (score >= 0.6)


def test_progress(started, build_question):
    assert started.get_progress(0) == 0.0
    started.submit_answer(build_question(), TrueFalseAnswer(value=True), 10)
    assert started.get_progress(4) == 0.25


# Verdicts from an external grader are recorded with the same upsert rules.
def test_record_graded_answer(started, build_question):
    explanation = build_question(TopicExplanation(topic="Ownership", prompt="Explain moves"))
    answer = TopicExplanationAnswer(explanation="Ownership moves values")

    with pytest.raises(UngradedQuestionError):
        started.submit_answer(explanation, answer, 60)

    started.record_graded_answer(explanation, answer, True, 60)
    started.record_graded_answer(explanation, answer, False, 30)

    assert len(started.responses) == 1
    assert started.responses[0].attempts == 2
    assert started.responses[0].time_taken_seconds == 90
    assert started.responses[0].is_correct is False

    with pytest.raises(ValidationError, match="use submit_answer"):
        started.record_graded_answer(build_question(), TrueFalseAnswer(value=True), True, 5)


def test_resubmit_after_reload_updates_same_response(started, build_question):
    question = build_question()
    started.submit_answer(question, TrueFalseAnswer(value=False), 20)

    restored = QuizSession.model_validate_json(started.model_dump_json())
    restored.submit_answer(question, TrueFalseAnswer(value=True), 15)

    assert len(restored.responses) == 1
    assert restored.responses[0].attempts == 2
    assert restored.state == SessionState.IN_PROGRESS


def test_resubmit_after_responses_replaced(started, build_question):
    question = build_question()
    started.submit_answer(question, TrueFalseAnswer(value=False), 20)

    retake = started.model_copy(update={"responses": []})

    assert retake.submit_answer(question, TrueFalseAnswer(value=True), 10) is True
    assert [(r.question_id, r.attempts) for r in retake.responses] == [(question.id, 1)]
    assert started.responses[0].attempts == 1


# Resubmission finds the question's own response wherever it sits in the list.
def test_resubmit_after_responses_reordered(clock, started, build_question):
    first = build_question()
    second = build_question()
    started.submit_answer(first, TrueFalseAnswer(value=False), 20)
    started.responses.insert(
        0,
        QuestionResponse(
            question_id=second.id,
            answer=TrueFalseAnswer(value=True),
            is_correct=True,
            time_taken_seconds=5,
            submitted_at=clock.now(),
        ),
    )

    started.submit_answer(first, TrueFalseAnswer(value=True), 15)

    assert [(r.question_id, r.is_correct, r.attempts) for r in started.responses] == [
        (second.id, True, 1),
        (first.id, True, 2),
    ]
    assert started.response_for(first.id).time_taken_seconds == 35
    assert started.response_for(uuid4()) is None

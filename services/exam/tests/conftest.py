"""Shared fixtures for the Exam service tests."""

import json
from typing import Callable, List

import httpx
import pytest

from packages.schemas.exam import Answer, Exam, Group, Part, Question, ScoreConversionEntry
from services.exam.conversion import ScoreConversionTable

ABCD = ("A", "B", "C", "D")


def make_question(qid: int, no: int, correct: str, content: str = "", labels=ABCD, **extra) -> Question:
    answers = tuple(Answer(label=l, content=f"option {l.lower()}") for l in labels)
    return Question(id=qid, question_no=no, content=content, correct_option=correct, answers=answers, **extra)


def make_part(number: int, *questions: Question, **group_fields) -> Part:
    return Part(
        id=number,
        name=f"Part {number}",
        part_number=number,
        groups=(Group(id=number * 100, questions=questions, **group_fields),),
    )


def gemini_body(text: str) -> str:
    """A well-formed generateContent response wrapping `text`."""
    return json.dumps({"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]})


def gemini_ok(short: str = "Past tense.", full: str = "<b>went</b> is the past of go.") -> str:
    return gemini_body(json.dumps({"Short": short, "Full": full}))


@pytest.fixture
def exam() -> Exam:
    """One question per part; listening ids 1-4, reading ids 5-7 (question_no mirrors TOEIC numbering)."""
    return Exam(
        id=1,
        title="Mini Test",
        duration=120,
        parts=(
            make_part(7, make_question(7, 147, "D", "What is the purpose of the e-mail?"),
                      text_content="Dear Ms. Tran, your order has shipped."),
            make_part(1, make_question(1, 1, "A"), transcript="(A) He is typing."),
            make_part(2, make_question(2, 7, "C", labels=("A", "B", "C"))),
            make_part(3, make_question(3, 32, "B", "Where are the speakers?")),
            make_part(4, make_question(4, 71, "A", "Who is the speaker?")),
            make_part(5, make_question(5, 101, "B", "She _____ to the market yesterday.")),
            make_part(6, make_question(6, 131, "C")),
        ),
    )


@pytest.fixture
def two_question_exam() -> Exam:
    return Exam(
        id=2,
        title="Two Questions",
        parts=(make_part(5, make_question(11, 101, "A"), make_question(12, 102, "B")),),
    )


@pytest.fixture
def table() -> ScoreConversionTable:
    """Dense 0..100 table: listening = 5 + 4*count, reading = 5 + 3*count."""
    return ScoreConversionTable(
        [ScoreConversionEntry(correct_count=c, listening_score=5 + 4 * c, reading_score=5 + 3 * c) for c in range(101)]
    )


@pytest.fixture
def sparse_table() -> ScoreConversionTable:
    """Entries only for 5, 10, ..., 100; every other count uses the fallback."""
    return ScoreConversionTable(
        [ScoreConversionEntry(correct_count=c, listening_score=5 * c, reading_score=4 * c) for c in range(5, 101, 5)]
    )


@pytest.fixture
def recorder() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.MockTransport]:
    """Wrap a handler into a MockTransport that records every request in `transport.calls`."""

    def build(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.MockTransport:
        calls: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return handler(request)

        transport = httpx.MockTransport(record)
        transport.calls = calls  # type: ignore[attr-defined]
        return transport

    return build

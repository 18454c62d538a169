"""Exam schemas: the test content tree, submissions, attempt results, and explanations.

Content models are frozen; they are read-only inputs to scoring and explanation.
"""

from __future__ import annotations

from typing import Annotated, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Section = Literal["listening", "reading"]
UNANSWERED = ""
LISTENING_PARTS = frozenset({1, 2, 3, 4})
READING_PARTS = frozenset({5, 6, 7})


def section_of(part_number: int) -> Section:
    """Return the exam section a part number belongs to."""
    return "listening" if part_number in LISTENING_PARTS else "reading"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Answer(_Frozen):
    """One labeled option of a question."""
    label: str = Field(pattern=r"^[A-Z]$")
    content: str = ""


class Question(_Frozen):
    """A single scored item with its 2-4 labeled answers."""
    id: int
    question_no: int
    content: str = ""
    correct_option: str
    short_explanation: Optional[str] = None
    full_explanation: Optional[str] = None
    transcript: Optional[str] = None  # overrides the group transcript
    audio_url: Optional[str] = None
    answers: Tuple[Answer, ...] = Field(min_length=2, max_length=4)

    @model_validator(mode="after")
    def _check_answer_key(self) -> "Question":
        labels = [a.label for a in self.answers]
        if len(set(labels)) != len(labels):
            raise ValueError(f"question {self.id}: duplicate answer labels {labels}")
        if labels.count(self.correct_option) != 1:
            raise ValueError(f"question {self.id}: correct option {self.correct_option!r} not in {labels}")
        return self

    @property
    def has_explanation(self) -> bool:
        return bool(self.full_explanation)


class Group(_Frozen):
    """A shared stimulus (picture, audio, passage) with the questions nested under it."""
    id: int
    text_content: Optional[str] = None
    image_url: Optional[str] = None
    audio_url: Optional[str] = None
    transcript: Optional[str] = None
    questions: Tuple[Question, ...] = ()

    def effective_transcript(self, question: Question) -> Optional[str]:
        """Question-level transcript if present, otherwise the group transcript."""
        return question.transcript or self.transcript


class Part(_Frozen):
    """One of the seven numbered exam sections."""
    id: int
    name: str
    part_number: int = Field(ge=1, le=7)
    description: Optional[str] = None
    groups: Tuple[Group, ...] = ()

    @property
    def section(self) -> Section:
        return section_of(self.part_number)


class Exam(_Frozen):
    """A full test: ordered parts, each holding groups of questions.

    Invariants:
        - parts are sorted by part number and each number appears once;
        - question ids are unique across the whole exam.
    """
    id: int
    title: str
    duration: Optional[int] = Field(default=None, ge=0, description="Minutes")
    parts: Tuple[Part, ...] = ()

    @field_validator("parts")
    @classmethod
    def _ordered_unique_parts(cls, parts: Tuple[Part, ...]) -> Tuple[Part, ...]:
        numbers = [p.part_number for p in parts]
        if len(set(numbers)) != len(numbers):
            raise ValueError(f"duplicate part numbers: {numbers}")
        return tuple(sorted(parts, key=lambda p: p.part_number))

    @model_validator(mode="after")
    def _unique_question_ids(self) -> "Exam":
        ids = [q.id for _, _, q in self.iter_questions()]
        if len(set(ids)) != len(ids):
            raise ValueError(f"exam {self.id}: duplicate question ids")
        return self

    def iter_questions(self) -> Iterator[Tuple[Part, Group, Question]]:
        """Yield every (part, group, question) triple in content order."""
        for part in self.parts:
            for group in part.groups:
                for question in group.questions:
                    yield part, group, question

    def locate(self, question_id: int) -> Optional[Tuple[Part, Group, Question]]:
        """Return the (part, group, question) holding `question_id`, or None."""
        for triple in self.iter_questions():
            if triple[2].id == question_id:
                return triple
        return None

    @property
    def total_questions(self) -> int:
        return sum(1 for _ in self.iter_questions())


class Selection(_Frozen):
    """A single answered question; leave a question out of the submission to skip it."""
    question_id: int
    selected_option: str = Field(min_length=1, max_length=1, description="Chosen answer label, matched case-sensitively")


class Submission(_Frozen):
    """A user's selections for one test; unanswered questions are simply absent."""
    test_id: int
    selections: Tuple[Selection, ...] = ()

    @field_validator("selections")
    @classmethod
    def _one_selection_per_question(cls, selections: Tuple[Selection, ...]) -> Tuple[Selection, ...]:
        seen: set[int] = set()
        for s in selections:
            if s.question_id in seen:
                raise ValueError(f"question {s.question_id} answered more than once")
            seen.add(s.question_id)
        return selections

    def as_mapping(self) -> dict[int, str]:
        return {s.question_id: s.selected_option for s in self.selections}


class ScoreConversionEntry(_Frozen):
    """Correctness count -> scaled listening/reading scores."""
    correct_count: int = Field(ge=0)
    listening_score: int = Field(ge=0)
    reading_score: int = Field(ge=0)


class ScoreRequest(BaseModel):
    """Payload for converting raw correctness counts."""
    listening_correct: int
    reading_correct: int


class ScoreReport(_Frozen):
    """Scaled scores for one pair of correctness counts."""
    listening_correct: int
    reading_correct: int
    listening_score: int
    reading_score: int
    total_score: int
    listening_matched: bool = True  # False when the fallback score was used
    reading_matched: bool = True


class QuestionResult(_Frozen):
    """Per-question correctness detail of an attempt."""
    question_id: int
    question_no: int
    part_number: int
    selected_option: str = UNANSWERED
    correct_option: str
    is_correct: bool
    short_explanation: Optional[str] = None
    full_explanation: Optional[str] = None

    @property
    def answered(self) -> bool:
        return self.selected_option != UNANSWERED


class PartBreakdown(_Frozen):
    """Correct/total counts for one part of an attempt."""
    part_number: int
    section: Section
    correct: int
    total: int


class AttemptResult(_Frozen):
    """Immutable outcome of one scored submission."""
    attempt_id: Optional[int] = None
    test_id: int
    total_score: int
    listening_score: int
    reading_score: int
    total_questions: int
    correct_count: int
    listening_correct: int
    reading_correct: int
    questions: Tuple[QuestionResult, ...] = ()
    parts: Tuple[PartBreakdown, ...] = ()


class Explanation(_Frozen):
    """The {short, full} explanation pair shown next to a question."""
    short: str
    full: str


FailureReason = Literal["upstream_status", "transport", "malformed"]


class ExplanationOk(_Frozen):
    status: Literal["ok"] = "ok"
    explanation: Explanation


class ExplanationFailed(_Frozen):
    """A displayable failure: the pair describes what went wrong."""
    status: Literal["failed"] = "failed"
    explanation: Explanation
    reason: FailureReason
    http_status: Optional[int] = None


ExplanationResult = Annotated[Union[ExplanationOk, ExplanationFailed], Field(discriminator="status")]


class QuestionExplanation(BaseModel):
    """An explanation result tagged with the question it belongs to."""
    question_id: int
    result: ExplanationResult
    cached: bool = False


class BatchExplanationReport(BaseModel):
    """Outcome of generating explanations for every unexplained question of a test."""
    test_id: int
    requested: int
    updated: int
    failed: int
    results: List[QuestionExplanation] = []

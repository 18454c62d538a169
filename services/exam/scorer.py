"""Submission scoring for the Exam service.

Functions:
- AnswerKey.from_exam: flatten an exam into question id -> correct option (+ part, number).
- grade_submission: per-question correctness and listening/reading correct counts.
- score_submission: grade, convert to scaled scores, and return an `AttemptResult`.

Everything here is pure: no I/O, no shared state. Persisting the result is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional, Tuple

from packages.common.errors import ValidationError
from packages.schemas.exam import (
    UNANSWERED,
    AttemptResult,
    Exam,
    PartBreakdown,
    QuestionResult,
    Submission,
    section_of,
)
from .conversion import ScoreConversionTable, calculate_score

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyEntry:
    question_no: int
    part_number: int
    correct_option: str
    short_explanation: Optional[str] = None
    full_explanation: Optional[str] = None


class AnswerKey(Mapping[int, KeyEntry]):
    """Read-only mapping of question id to its `KeyEntry` for one test."""

    def __init__(self, test_id: int, entries: Mapping[int, KeyEntry]) -> None:
        self.test_id = test_id
        self._entries: Dict[int, KeyEntry] = dict(entries)

    @classmethod
    def from_exam(cls, exam: Exam) -> "AnswerKey":
        return cls(exam.id, {
            q.id: KeyEntry(q.question_no, part.part_number, q.correct_option, q.short_explanation, q.full_explanation)
            for part, _, q in exam.iter_questions()
        })

    def __getitem__(self, question_id: int) -> KeyEntry:
        return self._entries[question_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def ordered(self) -> List[Tuple[int, KeyEntry]]:
        """Entries in ascending question-number order (ties broken by id)."""
        return sorted(self._entries.items(), key=lambda kv: (kv[1].question_no, kv[0]))


@dataclass(frozen=True)
class Grading:
    """Raw outcome of grading, before any scaled-score conversion."""
    questions: Tuple[QuestionResult, ...]
    listening_correct: int
    reading_correct: int
    parts: Tuple[PartBreakdown, ...]

    @property
    def correct_count(self) -> int:
        return self.listening_correct + self.reading_correct


def _check_selections(key: AnswerKey, selections: Mapping[int, str]) -> None:
    foreign = sorted(qid for qid in selections if qid not in key)
    if foreign:
        raise ValidationError(f"questions {foreign} do not belong to test {key.test_id}")


def grade_submission(key: AnswerKey, submission: Submission) -> Grading:
    """Grade every question of `key` against `submission`.

    Unanswered questions are recorded as incorrect with the `UNANSWERED` sentinel.
    Comparison is an exact, case-sensitive match on option labels.

    Args:
        key: Answer key of the test being submitted.
        submission: The user's selections.

    Returns:
        Grading: Per-question results in question-number order plus section counts.

    Raises:
        ValidationError: If any selection names a question outside `key`; nothing is graded.
    """
    selections = submission.as_mapping()
    _check_selections(key, selections)

    results: List[QuestionResult] = []
    listening = reading = 0
    per_part: Dict[int, List[int]] = {}
    for qid, entry in key.ordered():
        selected = selections.get(qid, UNANSWERED)
        is_correct = selected != UNANSWERED and selected == entry.correct_option
        results.append(QuestionResult(
            question_id=qid,
            question_no=entry.question_no,
            part_number=entry.part_number,
            selected_option=selected,
            correct_option=entry.correct_option,
            is_correct=is_correct,
            short_explanation=entry.short_explanation,
            full_explanation=entry.full_explanation,
        ))
        tally = per_part.setdefault(entry.part_number, [0, 0])
        tally[1] += 1
        if is_correct:
            tally[0] += 1
            if section_of(entry.part_number) == "listening":
                listening += 1
            else:
                reading += 1

    parts = tuple(
        PartBreakdown(part_number=n, section=section_of(n), correct=c, total=t)
        for n, (c, t) in sorted(per_part.items())
    )
    return Grading(tuple(results), listening, reading, parts)


def score_submission(
    exam: Exam,
    submission: Submission,
    table: ScoreConversionTable,
    attempt_id: Optional[int] = None,
) -> AttemptResult:
    """Score a submission end to end and return the immutable `AttemptResult`.

    Raises:
        ValidationError: If the submission targets another test or names foreign questions.
    """
    if submission.test_id != exam.id:
        raise ValidationError(f"submission for test {submission.test_id} cannot be scored against test {exam.id}")
    grading = grade_submission(AnswerKey.from_exam(exam), submission)
    report = calculate_score(grading.listening_correct, grading.reading_correct, table)
    log.info(
        "scored test=%s attempt=%s correct=%d/%d total=%d",
        exam.id, attempt_id, grading.correct_count, len(grading.questions), report.total_score,
    )
    return AttemptResult(
        attempt_id=attempt_id,
        test_id=exam.id,
        total_score=report.total_score,
        listening_score=report.listening_score,
        reading_score=report.reading_score,
        total_questions=len(grading.questions),
        correct_count=grading.correct_count,
        listening_correct=grading.listening_correct,
        reading_correct=grading.reading_correct,
        questions=grading.questions,
        parts=grading.parts,
    )

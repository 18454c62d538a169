"""Repository layer for the Exam service.

`ContentRepository` is the port the engine reads content through; persistence
technology is left to implementers. `InMemoryContentRepository` backs the
service in development and tests and can be seeded from JSON files.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Tuple

import pydantic

from packages.common.config import Settings
from packages.common.errors import ConfigurationError, NotFoundError
from packages.schemas.exam import AttemptResult, Exam, Explanation
from .conversion import ScoreConversionTable, load_table

log = logging.getLogger(__name__)


class ContentRepository(Protocol):
    """Content and result storage consumed by the exam engine."""

    def get_test_with_answer_key(self, test_id: int) -> Exam:
        """Return the full content tree, correct options included; raise NotFoundError if unknown."""
        ...

    def get_score_conversion_table(self) -> ScoreConversionTable:
        ...

    def next_attempt_id(self) -> int:
        ...

    def save_attempt(self, result: AttemptResult) -> None:
        ...

    def get_attempt(self, attempt_id: int) -> AttemptResult:
        ...

    def save_explanation(self, test_id: int, question_id: int, explanation: Explanation) -> None:
        ...

    def get_explanation(self, test_id: int, question_id: int) -> Optional[Explanation]:
        """Return the generated explanation for a question of one test, if any."""
        ...


class InMemoryContentRepository:
    """Dict-backed `ContentRepository`; safe to share between request handlers.

    Args:
        table: The score conversion table served by `get_score_conversion_table`.
        exams: Initial exams to register.
    """

    def __init__(self, table: ScoreConversionTable, exams: Iterable[Exam] = ()) -> None:
        self._table = table
        self._exams: Dict[int, Exam] = {}
        self._attempts: Dict[int, AttemptResult] = {}
        self._explanations: Dict[Tuple[int, int], Explanation] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        for exam in exams:
            self.add_exam(exam)

    @classmethod
    def from_settings(cls, s: Settings) -> "InMemoryContentRepository":
        """Load the conversion table and optional content file named by settings.

        Raises:
            ConfigurationError: If either file cannot be loaded.
        """
        table = load_table(s.SCORE_TABLE_PATH, s.SCORE_FALLBACK, s.MAX_SECTION_CORRECT)
        repo = cls(table)
        if s.CONTENT_PATH:
            repo.load_exams(s.CONTENT_PATH)
        return repo

    def add_exam(self, exam: Exam) -> None:
        with self._lock:
            self._exams[exam.id] = exam

    def load_exams(self, path: Path | str) -> int:
        """Register every exam in a JSON file holding one exam object or a list of them.

        Raises:
            ConfigurationError: If the file is unreadable or any exam in it is invalid.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
            items = raw if isinstance(raw, list) else [raw]
            exams = [Exam.model_validate(item) for item in items]
        except (OSError, ValueError, pydantic.ValidationError) as e:
            raise ConfigurationError(f"cannot load exam content from {path}: {e}") from e
        for exam in exams:
            self.add_exam(exam)
        log.info("loaded %d exams from %s", len(exams), path)
        return len(exams)

    def get_test_with_answer_key(self, test_id: int) -> Exam:
        exam = self._exams.get(test_id)
        if exam is None:
            raise NotFoundError("test", test_id)
        return exam

    def get_score_conversion_table(self) -> ScoreConversionTable:
        return self._table

    def next_attempt_id(self) -> int:
        with self._lock:
            return next(self._ids)

    def save_attempt(self, result: AttemptResult) -> None:
        if result.attempt_id is None:
            raise ValueError("attempt results must carry an attempt id before saving")
        with self._lock:
            self._attempts[result.attempt_id] = result

    def get_attempt(self, attempt_id: int) -> AttemptResult:
        result = self._attempts.get(attempt_id)
        if result is None:
            raise NotFoundError("attempt", attempt_id)
        return result

    def save_explanation(self, test_id: int, question_id: int, explanation: Explanation) -> None:
        with self._lock:
            self._explanations[(test_id, question_id)] = explanation

    def get_explanation(self, test_id: int, question_id: int) -> Optional[Explanation]:
        return self._explanations.get((test_id, question_id))

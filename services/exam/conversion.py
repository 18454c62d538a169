"""Raw-to-scaled score conversion.

Functions:
- load_table: read a JSON conversion table from disk.
- ScoreConversionTable.lookup: exact-match lookup with an explicit fallback score.
- calculate_score: convert listening/reading correctness counts into a `ScoreReport`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

import pydantic

from packages.common.errors import ConfigurationError, ValidationError
from packages.schemas.exam import ScoreConversionEntry, ScoreReport, Section

log = logging.getLogger(__name__)

# Guess-rate floor used for counts that have no table entry.
DEFAULT_FALLBACK_SCORE = 5
DEFAULT_MAX_COUNT = 100


@dataclass(frozen=True)
class ScoreLookup:
    """Result of one lookup; `matched` is False when the fallback was used."""
    score: int
    matched: bool


class ScoreConversionTable:
    """Read-only correctness-count -> scaled-score table.

    Safe to share between concurrent callers: it is never mutated after construction.

    Args:
        entries: Conversion rows; each correctness count may appear once.
        fallback_score: Score used for in-range counts with no exact entry.
        max_count: Largest correctness count accepted by `lookup`.

    Raises:
        ConfigurationError: If `entries` is empty, or a correctness count appears twice
            or exceeds `max_count`.
    """

    def __init__(
        self,
        entries: Iterable[ScoreConversionEntry],
        fallback_score: int = DEFAULT_FALLBACK_SCORE,
        max_count: int = DEFAULT_MAX_COUNT,
    ) -> None:
        rows: Dict[int, ScoreConversionEntry] = {}
        for e in entries:
            if e.correct_count in rows:
                raise ConfigurationError(f"duplicate conversion entry for count {e.correct_count}")
            if e.correct_count > max_count:
                raise ConfigurationError(f"conversion entry {e.correct_count} exceeds max count {max_count}")
            rows[e.correct_count] = e
        if not rows:
            raise ConfigurationError("score conversion table is empty")
        self._rows = rows
        self.fallback_score = fallback_score
        self.max_count = max_count

    def __len__(self) -> int:
        return len(self._rows)

    def entries(self) -> list[ScoreConversionEntry]:
        """Return the rows ordered by correctness count."""
        return [self._rows[k] for k in sorted(self._rows)]

    def lookup(self, count: int, section: Section) -> ScoreLookup:
        """Convert one correctness count for `section`.

        Total over 0..max_count: counts without an exact entry resolve to the fallback score.

        Raises:
            ValidationError: For counts outside 0..max_count.
        """
        if count < 0 or count > self.max_count:
            raise ValidationError(f"{section} correct count {count} outside 0..{self.max_count}")
        row = self._rows.get(count)
        if row is None:
            log.debug("no %s conversion entry for count=%d; using fallback %d", section, count, self.fallback_score)
            return ScoreLookup(self.fallback_score, False)
        return ScoreLookup(row.listening_score if section == "listening" else row.reading_score, True)


def load_table(
    path: Path | str,
    fallback_score: int = DEFAULT_FALLBACK_SCORE,
    max_count: Optional[int] = None,
) -> ScoreConversionTable:
    """Load a conversion table from a JSON list of `ScoreConversionEntry` objects.

    Args:
        path: JSON file path.
        fallback_score: Score for counts missing from the file.
        max_count: Largest accepted count; defaults to `DEFAULT_MAX_COUNT`.

    Raises:
        ConfigurationError: If the file is missing, unreadable, malformed, or empty.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("expected a JSON list of conversion entries")
        entries = [ScoreConversionEntry.model_validate(r) for r in raw]
    except (OSError, ValueError, pydantic.ValidationError) as e:
        raise ConfigurationError(f"cannot load score conversion table from {path}: {e}") from e
    log.info("loaded %d score conversion entries from %s", len(entries), path)
    return ScoreConversionTable(entries, fallback_score, max_count if max_count is not None else DEFAULT_MAX_COUNT)


def calculate_score(listening_correct: int, reading_correct: int, table: ScoreConversionTable) -> ScoreReport:
    """Convert both correctness counts and sum them into the total scaled score."""
    listening = table.lookup(listening_correct, "listening")
    reading = table.lookup(reading_correct, "reading")
    return ScoreReport(
        listening_correct=listening_correct,
        reading_correct=reading_correct,
        listening_score=listening.score,
        reading_score=reading.score,
        total_score=listening.score + reading.score,
        listening_matched=listening.matched,
        reading_matched=reading.matched,
    )

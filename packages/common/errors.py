"""Error taxonomy shared by the exam engine and its HTTP surface.

- `ValidationError`: malformed or cross-test input; surfaced to callers as a client error.
- `NotFoundError`: an unknown test, question, or attempt id.
- `ConfigurationError`: missing or unusable configuration detected at startup.
"""


class ExamError(Exception):
    """Base class for errors raised by the exam engine."""


class ValidationError(ExamError, ValueError):
    """Raised when a submission or score request is rejected before any work is done."""


class NotFoundError(ExamError, LookupError):
    """Raised by content repositories when an id is unknown."""

    def __init__(self, kind: str, ident: object) -> None:
        """Build a message naming the missing entity kind and id."""
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident!r} not found")


class ConfigurationError(ExamError, RuntimeError):
    """Raised when a feature cannot initialize from the current settings."""

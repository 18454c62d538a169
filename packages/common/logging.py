"""JSON logging for the exam platform.

Provides:
- `set_request_id` / `get_request_id`: per-request correlation id kept in a ContextVar
- `JSONFormatter`: one JSON object per line, tagged with the service name and request id
- `configure_logging`: stdout logging with the JSON formatter; chatty client loggers capped at WARNING
"""

import logging, sys, json, time
from contextvars import ContextVar
from typing import Iterable

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

# httpx and httpcore log every AI request line at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def set_request_id(rid: str | None) -> None:
    """Set or clear the correlation id attached to log records and telemetry events.

    Args:
        rid: The request id to store; pass None to clear it.
    """
    _request_id.set(rid)


def get_request_id() -> str | None:
    return _request_id.get()


class JSONFormatter(logging.Formatter):
    """Render a record as compact JSON.

    Args:
        service: Value of the "service" field on every line.
    """

    def __init__(self, service: str = "toeic-exam") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "level": record.levelname,
            "ts": round(record.created, 3),
            "service": self.service,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = _request_id.get()
        if rid:
            line["request_id"] = rid
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def configure_logging(
    level: int | str = "INFO",
    service: str = "toeic-exam",
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """Route root logging to stdout through `JSONFormatter`.

    Args:
        level: Root level, e.g. "INFO" or logging.DEBUG.
        service: Service name stamped on every line.
        quiet: Logger names raised to WARNING regardless of `level`.

    Returns:
        The logger named after `service`.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger(service)

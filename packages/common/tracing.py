"""Request correlation and telemetry for the exam service.

`trace_middleware` gives every request an `X-Request-ID` (taken from the caller or
generated), keeps it in the logging ContextVar while the request runs, and logs one
access line per request. `xapi_event` records learning events such as a completed
attempt or a newly explained question on the `toeic.telemetry` logger.
"""

import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict

from fastapi import Request, Response

from .logging import get_request_id, set_request_id

logger = logging.getLogger("toeic.telemetry")
access_log = logging.getLogger("toeic.access")

REQUEST_ID_HEADER = "X-Request-ID"


async def trace_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """Run the request under a correlation id and echo the id back.

    The id is cleared once the response is produced, so background log lines of a
    later request never inherit it.
    """
    rid = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    set_request_id(rid)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        access_log.info("%s %s -> %d in %.1fms", request.method, request.url.path,
                        response.status_code, (time.perf_counter() - started) * 1000)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = rid
    return response


def xapi_event(actor_id: str, verb: str, obj: str, **extras: Any) -> Dict[str, Any]:
    """Log an exam telemetry event and return its payload.

    Args:
        actor_id: Who acted, e.g. "attempt:17" for a scored submission.
        verb: "completed" for a scored attempt, "explained" for a generated explanation.
        obj: What was acted on, e.g. "test:3" or "question:3/105".
        **extras: Event details such as `total_score` or `correct`.

    Returns:
        The event, including the current request id (None outside a request).
    """
    event: Dict[str, Any] = {
        "actor": actor_id,
        "verb": verb,
        "object": obj,
        "ts": round(time.time(), 3),
        "request_id": get_request_id(),
        "extras": extras,
    }
    logger.info("EVENT %s", json.dumps(event, ensure_ascii=False))
    return event

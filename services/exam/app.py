"""Exam service FastAPI application.

Exposes the FastAPI app, attaches tracing middleware, includes the exam routes,
and builds the content repository and explanation service on startup.
"""

from fastapi import FastAPI

from packages.common.config import get_settings
from packages.common.logging import configure_logging
from packages.common.tracing import trace_middleware
from .explainer import ExplanationService
from .repo import InMemoryContentRepository
from .routes import router as exam_router

app = FastAPI(title="TOEIC Exam Service", version="1.0.0")
app.middleware("http")(trace_middleware)
app.include_router(exam_router)


def init_state(target: FastAPI) -> None:
    """Attach the repository and explanation service to `target.state`.

    Raises:
        ConfigurationError: If the score table cannot be loaded or no AI key is configured.
    """
    s = get_settings()
    configure_logging(s.LOG_LEVEL, s.SERVICE_NAME)
    target.state.repo = InMemoryContentRepository.from_settings(s)
    target.state.explainer = ExplanationService.from_settings(s)


async def close_state(target: FastAPI) -> None:
    explainer = getattr(target.state, "explainer", None)
    if explainer is not None:
        await explainer.aclose()


@app.on_event("startup")
async def _init() -> None:
    """Initialize service dependencies at application startup."""
    init_state(app)


@app.on_event("shutdown")
async def _close() -> None:
    await close_state(app)

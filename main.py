"""TOEIC exam platform entrypoint.

- FastAPI app bootstrap: exam routes, request tracing, `/health`
- Loads `.env.production` then `.env` before settings are read
- `python main.py --host 0.0.0.0 --port 8000` runs uvicorn
"""
from __future__ import annotations

import argparse
import logging

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv(".env.production")
load_dotenv(".env", override=True)

from packages.common.tracing import trace_middleware  # noqa: E402
from services.exam.app import close_state, init_state  # noqa: E402
from services.exam.routes import router as exam_router  # noqa: E402

logger = logging.getLogger("main")

# ===== App (ASGI) =====
app = FastAPI(title="TOEIC Exam Platform API", version="1.0.0")
app.middleware("http")(trace_middleware)
app.include_router(exam_router)


@app.get("/health", tags=["system"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.on_event("startup")
async def _startup() -> None:
    """Fail fast: a missing score table or AI key aborts startup."""
    init_state(app)
    logger.info("exam platform ready")


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_state(app)


# Export ASGI for uvicorn/gunicorn
__all__ = ["app"]


def main() -> None:
    """Parse CLI flags and serve the app with uvicorn."""
    parser = argparse.ArgumentParser(description="TOEIC exam platform API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()
    uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()

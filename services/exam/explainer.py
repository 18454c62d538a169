"""AI-generated explanations for exam questions.

This module provides:
- `parse_explanation_response`: turn a raw generative-AI HTTP response into an `ExplanationResult`.
- `GeminiClient`: a thin async HTTP client with a per-call timeout and bounded retries.
- `ExplanationService`: prompt -> AI call -> parsed pair. It never raises past its boundary;
  every failure comes back as an `ExplanationFailed` carrying a displayable pair.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import httpx

from packages.common.config import Settings, get_settings
from packages.common.errors import ConfigurationError
from packages.schemas.exam import (
    Answer,
    Exam,
    Explanation,
    ExplanationFailed,
    ExplanationOk,
    ExplanationResult,
    Question,
)
from .prompts import build_explanation_prompt

log = logging.getLogger(__name__)

PARSE_FAILURE = Explanation(short="Parse error", full="The AI returned an unexpected format.")


def _strip_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def _pick(obj: dict[str, Any], name: str) -> Any:
    """Case-insensitive key lookup ("Short", "short", "SHORT")."""
    for k, v in obj.items():
        if isinstance(k, str) and k.lower() == name:
            return v
    return None


def parse_explanation_response(status_code: int, body: str) -> ExplanationResult:
    """Parse a generative-AI response body into an explanation result.

    Expects `candidates[0].content.parts[0].text` to hold a JSON object with
    "Short" and "Full" string fields, optionally wrapped in ```json fences.

    Args:
        status_code: HTTP status of the upstream response.
        body: Raw response text.

    Returns:
        `ExplanationOk` on success; `ExplanationFailed` for non-2xx statuses
        (status and body echoed in the pair) or any malformed payload (`PARSE_FAILURE`).
    """
    if not 200 <= status_code < 300:
        return ExplanationFailed(
            explanation=Explanation(short=f"Error: {status_code}", full=f"Details: {body}"),
            reason="upstream_status",
            http_status=status_code,
        )
    try:
        doc = json.loads(body)
        text = doc["candidates"][0]["content"]["parts"][0]["text"]
        inner = json.loads(_strip_fences(text))
        short, full = _pick(inner, "short"), _pick(inner, "full")
        if not isinstance(short, str) or not isinstance(full, str):
            raise ValueError("explanation fields missing or not strings")
    except (ValueError, KeyError, IndexError, TypeError, AttributeError, RecursionError) as e:
        log.warning("unparseable explanation payload: %s", e)
        return ExplanationFailed(explanation=PARSE_FAILURE, reason="malformed", http_status=status_code)
    return ExplanationOk(explanation=Explanation(short=short.strip(), full=full.strip()))


def transport_failure(exc: Exception) -> ExplanationFailed:
    """Displayable pair for a call that never produced an HTTP response."""
    kind = "timeout" if isinstance(exc, httpx.TimeoutException) else "network"
    return ExplanationFailed(
        explanation=Explanation(short=f"Error: {kind}", full=f"Details: {type(exc).__name__}: {exc}"),
        reason="transport",
    )


class GeminiClient:
    """Async client for the `generateContent` endpoint.

    Args:
        api_key: Sent as the `key` query parameter.
        endpoint: API base URL, e.g. "https://generativelanguage.googleapis.com/v1beta".
        model: Model name, e.g. "gemini-flash-latest".
        timeout: Per-call timeout in seconds.
        max_retries: Extra attempts after a transport error or 5xx response.
        backoff: Base delay between attempts (doubles each retry).
        transport: Optional httpx transport (tests inject `httpx.MockTransport`).
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        model: str,
        timeout: float = 30.0,
        max_retries: int = 1,
        backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = f"{endpoint.rstrip('/')}/models/{model}:generateContent"
        self.max_retries = max_retries
        self.backoff = backoff
        self._api_key = api_key
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @staticmethod
    def request_body(prompt: str) -> dict[str, Any]:
        return {"contents": [{"parts": [{"text": prompt}]}]}

    async def generate(self, prompt: str) -> httpx.Response:
        """POST `prompt` and return the final response.

        Retries transport errors and 5xx responses up to `max_retries` times.

        Raises:
            httpx.HTTPError: When the last attempt fails at the transport level.
        """
        attempt = 0
        while True:
            try:
                resp = await self._http.post(self.url, params={"key": self._api_key}, json=self.request_body(prompt))
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise
                log.warning("explanation call failed (%s), retry %d/%d", type(e).__name__, attempt + 1, self.max_retries)
            else:
                if resp.status_code < 500 or attempt >= self.max_retries:
                    return resp
                log.warning("explanation call got %d, retry %d/%d", resp.status_code, attempt + 1, self.max_retries)
            attempt += 1
            if self.backoff:
                await asyncio.sleep(self.backoff * 2 ** (attempt - 1))

    async def aclose(self) -> None:
        await self._http.aclose()


@dataclass(frozen=True)
class ExplanationRequest:
    """One question plus the context its part template needs."""
    question: Question
    part_number: Optional[int] = None
    transcript: Optional[str] = None
    passage: Optional[str] = None


def requests_for_exam(exam: Exam, only_missing: bool = True) -> List[ExplanationRequest]:
    """Build explanation requests for an exam's questions, in question-number order.

    Args:
        exam: The content tree.
        only_missing: Skip questions that already carry a full explanation.
    """
    out = [
        ExplanationRequest(q, part.part_number, group.effective_transcript(q), group.text_content)
        for part, group, q in exam.iter_questions()
        if not (only_missing and q.has_explanation)
    ]
    return sorted(out, key=lambda r: r.question.question_no)


class ExplanationService:
    """Generates {short, full} explanations through the generative-AI client.

    Args:
        client: The upstream client.
        language: Language the explanations are written in.
        concurrency: Upper bound of simultaneous calls in `generate_many`.
    """

    def __init__(self, client: GeminiClient, language: str = "English", concurrency: int = 4) -> None:
        self.client = client
        self.language = language
        self.concurrency = concurrency

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ExplanationService":
        """Build the service from settings.

        Raises:
            ConfigurationError: If `GEMINI_API_KEY` is not configured.
        """
        s = settings or get_settings()
        if not s.GEMINI_API_KEY:
            raise ConfigurationError("GEMINI_API_KEY is not configured; explanations are unavailable")
        client = GeminiClient(
            api_key=s.GEMINI_API_KEY,
            endpoint=s.GEMINI_ENDPOINT,
            model=s.GEMINI_MODEL,
            timeout=s.EXPLANATION_TIMEOUT_SECONDS,
            max_retries=s.EXPLANATION_MAX_RETRIES,
            backoff=s.EXPLANATION_RETRY_BACKOFF_SECONDS,
            transport=transport,
        )
        return cls(client, language=s.EXPLANATION_LANGUAGE, concurrency=s.EXPLANATION_CONCURRENCY)

    async def generate_explanation(
        self,
        question: Question,
        answers: Optional[Sequence[Answer]] = None,
        part_number: Optional[int] = None,
        transcript: Optional[str] = None,
        passage: Optional[str] = None,
    ) -> ExplanationResult:
        """Explain one question. Never raises for upstream failures.

        Args:
            question: The question to explain.
            answers: Answers to show the AI; defaults to `question.answers`.
            part_number: TOEIC part of the question; selects the prompt template.
            transcript: Audio transcript for listening items.
            passage: Shared text of the question's group.

        Returns:
            ExplanationOk or ExplanationFailed; both carry a displayable pair.
        """
        prompt = build_explanation_prompt(question, part_number, answers, transcript, passage, self.language)
        try:
            resp = await self.client.generate(prompt)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log.warning("explanation for question %s failed: %s", question.id, e)
            return transport_failure(e)
        result = parse_explanation_response(resp.status_code, resp.text)
        if isinstance(result, ExplanationFailed):
            log.warning("explanation for question %s failed: reason=%s status=%s",
                        question.id, result.reason, result.http_status)
        return result

    async def generate_many(self, requests: Iterable[ExplanationRequest]) -> List[Tuple[int, ExplanationResult]]:
        """Explain several questions concurrently, at most `concurrency` at a time.

        Returns:
            (question_id, result) pairs in the order of `requests`.
        """
        sem = asyncio.Semaphore(self.concurrency)

        async def one(r: ExplanationRequest) -> Tuple[int, ExplanationResult]:
            async with sem:
                res = await self.generate_explanation(r.question, None, r.part_number, r.transcript, r.passage)
            return r.question.id, res

        return list(await asyncio.gather(*(one(r) for r in requests)))

    async def aclose(self) -> None:
        await self.client.aclose()

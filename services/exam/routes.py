"""HTTP routes of the Exam service.

- POST /exam/submit: score a submission and store the attempt
- GET  /exam/attempts/{attempt_id}: attempt detail with explanations generated since
- POST /exam/score: convert listening/reading correct counts to scaled scores
- POST /exam/tests/{test_id}/questions/{question_id}/explanation: explain one question
- POST /exam/tests/{test_id}/explanations: explain every question that still lacks one
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from packages.common.errors import NotFoundError, ValidationError
from packages.common.tracing import xapi_event
from packages.schemas.exam import (
    AttemptResult,
    BatchExplanationReport,
    Explanation,
    ExplanationOk,
    QuestionExplanation,
    ScoreReport,
    ScoreRequest,
    Submission,
)
from .conversion import calculate_score
from .explainer import ExplanationService, requests_for_exam
from .repo import ContentRepository
from .scorer import score_submission

log = logging.getLogger(__name__)
router = APIRouter(prefix="/exam", tags=["exam"])


def get_repo(request: Request) -> ContentRepository:
    return request.app.state.repo


def get_explainer(request: Request) -> ExplanationService:
    return request.app.state.explainer


@router.post("/submit", response_model=AttemptResult)
def submit(submission: Submission, repo: ContentRepository = Depends(get_repo)) -> AttemptResult:
    """Score `submission` against its test and persist the attempt.

    Raises:
        HTTPException: 404 for an unknown test, 400 for questions outside the test.
    """
    try:
        exam = repo.get_test_with_answer_key(submission.test_id)
        result = score_submission(exam, submission, repo.get_score_conversion_table(), repo.next_attempt_id())
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    except ValidationError as e:
        raise HTTPException(400, str(e))
    repo.save_attempt(result)
    xapi_event(f"attempt:{result.attempt_id}", "completed", f"test:{exam.id}",
               total_score=result.total_score, correct=result.correct_count)
    return result


@router.get("/attempts/{attempt_id}", response_model=AttemptResult)
def read_attempt(attempt_id: int, repo: ContentRepository = Depends(get_repo)) -> AttemptResult:
    """Return a stored attempt; questions explained after submission show the new explanation."""
    try:
        result = repo.get_attempt(attempt_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    questions = []
    for q in result.questions:
        exp = None if q.full_explanation else repo.get_explanation(result.test_id, q.question_id)
        questions.append(q.model_copy(update={"short_explanation": exp.short, "full_explanation": exp.full}) if exp else q)
    return result.model_copy(update={"questions": tuple(questions)})


@router.post("/score", response_model=ScoreReport)
def score(payload: ScoreRequest, repo: ContentRepository = Depends(get_repo)) -> ScoreReport:
    """Convert raw correctness counts; 400 if a count is outside the table's domain."""
    try:
        return calculate_score(payload.listening_correct, payload.reading_correct, repo.get_score_conversion_table())
    except ValidationError as e:
        raise HTTPException(400, str(e))


@router.post("/tests/{test_id}/questions/{question_id}/explanation", response_model=QuestionExplanation)
async def explain_question(
    test_id: int,
    question_id: int,
    repo: ContentRepository = Depends(get_repo),
    explainer: ExplanationService = Depends(get_explainer),
) -> QuestionExplanation:
    """Return the question's explanation, generating (and caching) it on first request.

    Upstream failures are returned as a failed result with a displayable pair, never as an HTTP error.
    """
    try:
        located = repo.get_test_with_answer_key(test_id).locate(question_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    if located is None:
        raise HTTPException(404, f"question {question_id} not found in test {test_id}")
    part, group, question = located

    if question.has_explanation:
        return QuestionExplanation(
            question_id=question_id, cached=True,
            result=ExplanationOk(explanation=Explanation(short=question.short_explanation or "", full=question.full_explanation)),
        )
    stored = repo.get_explanation(test_id, question_id)
    if stored is not None:
        return QuestionExplanation(question_id=question_id, cached=True, result=ExplanationOk(explanation=stored))

    result = await explainer.generate_explanation(
        question, question.answers, part.part_number, group.effective_transcript(question), group.text_content,
    )
    if isinstance(result, ExplanationOk):
        repo.save_explanation(test_id, question_id, result.explanation)
        xapi_event(f"test:{test_id}", "explained", f"question:{test_id}/{question_id}", part=part.part_number)
    return QuestionExplanation(question_id=question_id, result=result)


@router.post("/tests/{test_id}/explanations", response_model=BatchExplanationReport)
async def explain_test(
    test_id: int,
    repo: ContentRepository = Depends(get_repo),
    explainer: ExplanationService = Depends(get_explainer),
) -> BatchExplanationReport:
    """Generate explanations for every question of the test that has none yet."""
    try:
        exam = repo.get_test_with_answer_key(test_id)
    except NotFoundError as e:
        raise HTTPException(404, str(e))
    pending = [r for r in requests_for_exam(exam) if repo.get_explanation(test_id, r.question.id) is None]
    results = await explainer.generate_many(pending)
    updated = 0
    for qid, res in results:
        if isinstance(res, ExplanationOk):
            repo.save_explanation(test_id, qid, res.explanation)
            updated += 1
    log.info("batch explanations test=%s requested=%d updated=%d", test_id, len(pending), updated)
    return BatchExplanationReport(
        test_id=test_id,
        requested=len(pending),
        updated=updated,
        failed=len(pending) - updated,
        results=[QuestionExplanation(question_id=qid, result=res) for qid, res in results],
    )

"""Exam service: submission scoring, score conversion, and AI question explanations.

Public entry points:
- `score_submission` (scorer): grade a submission and build the `AttemptResult`.
- `calculate_score` (conversion): convert correctness counts to scaled scores.
- `ExplanationService.generate_explanation` (explainer): {short, full} pair for one question.
"""

__all__ = ["app", "conversion", "explainer", "prompts", "repo", "routes", "scorer"]

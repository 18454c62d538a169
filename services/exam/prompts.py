"""Prompt templates for question explanations.

Each TOEIC part tests a different skill, so each gets its own template function.
`PROMPT_TEMPLATES` maps a `PartType` to its template; adding a part is a new entry,
not a new branch. Every prompt ends with `OUTPUT_FORMAT_INSTRUCTION`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from packages.schemas.exam import Answer, Question

OUTPUT_FORMAT_INSTRUCTION = """
Return ONLY a JSON object (no markdown, no ```json fences) with exactly two fields:
1. "Short": a very short explanation (under 15 words) naming the key reason the answer is correct.
2. "Full": a detailed explanation: translate the relevant text, explain why the correct answer is right and why each other option is wrong. Simple HTML (<b>, <br>) is allowed.
""".strip()


class PartType(enum.IntEnum):
    """The seven TOEIC parts, plus UNKNOWN for anything out of range."""

    UNKNOWN = 0
    PHOTOGRAPHS = 1
    QUESTION_RESPONSE = 2
    CONVERSATION = 3
    TALK = 4
    INCOMPLETE_SENTENCE = 5
    TEXT_COMPLETION = 6
    READING_COMPREHENSION = 7

    @classmethod
    def from_number(cls, part_number: Optional[int]) -> "PartType":
        try:
            return cls(part_number)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class PromptContext:
    """Everything a template may print about one question."""
    question: str
    answers: str
    correct_option: str
    transcript: Optional[str]
    passage: Optional[str]
    language: str


def format_answers(answers: Sequence[Answer]) -> str:
    """Render answers as one labeled line each, e.g. "A. went"."""
    return "\n".join(f"{a.label}. {a.content}".rstrip() for a in answers)


def _optional(title: str, text: Optional[str]) -> str:
    return f"\n{title}:\n{text.strip()}\n" if text and text.strip() else ""


def _footer(ctx: PromptContext) -> str:
    return (
        f"\nAnswer options:\n{ctx.answers}\n"
        f"Correct answer: {ctx.correct_option}\n"
        f"Write both explanations in {ctx.language}.\n\n"
        f"{OUTPUT_FORMAT_INSTRUCTION}"
    )


def _photographs(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 1 (Photographs) item: the test taker looks at a picture "
        "and hears four statements, then picks the one that best describes the picture. "
        "Explain which statement matches the picture and what is wrong with the others "
        "(wrong action, wrong object, wrong location, similar-sounding words)."
        + _optional("Audio transcript", ctx.transcript)
        + _footer(ctx)
    )


def _question_response(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 2 (Question-Response) item: the test taker hears a question "
        "or statement and three responses, then picks the most appropriate response. "
        "Explain why the correct response fits the question type (who/what/when/where/why/how, yes-no, "
        "suggestion, statement) and point out distractor traps such as repeated or similar-sounding words."
        + _optional("Audio transcript", ctx.transcript)
        + _footer(ctx)
    )


def _conversation(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 3 (Conversations) item: the test taker hears a conversation "
        "between two or three speakers and answers a question about it. "
        "Quote the line of the conversation that contains the answer and explain any paraphrasing."
        f"\n\nQuestion: {ctx.question}\n"
        + _optional("Conversation transcript", ctx.transcript)
        + _optional("Graphic", ctx.passage)
        + _footer(ctx)
    )


def _talk(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 4 (Talks) item: the test taker hears a short talk by a single "
        "speaker (announcement, message, advertisement) and answers a question about it. "
        "Quote the sentence of the talk that contains the answer and explain any paraphrasing."
        f"\n\nQuestion: {ctx.question}\n"
        + _optional("Talk transcript", ctx.transcript)
        + _optional("Graphic", ctx.passage)
        + _footer(ctx)
    )


def _incomplete_sentence(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 5 (Incomplete Sentences) item: the test taker chooses the word "
        "or phrase that best completes the sentence. "
        "Name the grammar point or vocabulary distinction being tested and translate the completed sentence."
        f"\n\nSentence: {ctx.question}\n"
        + _optional("Transcript", ctx.transcript)
        + _footer(ctx)
    )


def _text_completion(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 6 (Text Completion) item: the test taker fills a blank in a "
        "short text with a word, phrase, or sentence. "
        "Explain how the surrounding sentences (context, tense, connectors) determine the answer."
        + (f"\n\nQuestion: {ctx.question}\n" if ctx.question else "\n")
        + _optional("Passage", ctx.passage)
        + _optional("Transcript", ctx.transcript)
        + _footer(ctx)
    )


def _reading_comprehension(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. This is a Part 7 (Reading Comprehension) item: the test taker reads one or "
        "more documents and answers a question about them. "
        "Quote the part of the passage that supports the answer, explain any paraphrasing, and say why "
        "the other options are not supported."
        f"\n\nQuestion: {ctx.question}\n"
        + _optional("Passage", ctx.passage)
        + _optional("Transcript", ctx.transcript)
        + _footer(ctx)
    )


def _generic(ctx: PromptContext) -> str:
    return (
        "You are a TOEIC teacher. Analyse the following question and explain the answer."
        f"\n\nQuestion: {ctx.question}\n"
        + _optional("Transcript", ctx.transcript)
        + _optional("Passage", ctx.passage)
        + _footer(ctx)
    )


PROMPT_TEMPLATES: Dict[PartType, Callable[[PromptContext], str]] = {
    PartType.PHOTOGRAPHS: _photographs,
    PartType.QUESTION_RESPONSE: _question_response,
    PartType.CONVERSATION: _conversation,
    PartType.TALK: _talk,
    PartType.INCOMPLETE_SENTENCE: _incomplete_sentence,
    PartType.TEXT_COMPLETION: _text_completion,
    PartType.READING_COMPREHENSION: _reading_comprehension,
    PartType.UNKNOWN: _generic,
}


def build_explanation_prompt(
    question: Question,
    part_number: Optional[int],
    answers: Optional[Sequence[Answer]] = None,
    transcript: Optional[str] = None,
    passage: Optional[str] = None,
    language: str = "English",
) -> str:
    """Build the part-specific explanation prompt for one question.

    Pure and deterministic: identical inputs always produce the identical prompt.

    Args:
        question: The question to explain.
        part_number: TOEIC part (1-7); anything else uses the generic template.
        answers: Answers to list; defaults to `question.answers`.
        transcript: Audio transcript for listening parts, if known.
        passage: Shared text of the question group (reading passage or graphic), if any.
        language: Language the explanations should be written in.

    Returns:
        The prompt text, always ending with `OUTPUT_FORMAT_INSTRUCTION`.
    """
    ctx = PromptContext(
        question=(question.content or "").strip(),
        answers=format_answers(answers if answers is not None else question.answers),
        correct_option=question.correct_option,
        transcript=transcript,
        passage=passage,
        language=language,
    )
    return PROMPT_TEMPLATES[PartType.from_number(part_number)](ctx)

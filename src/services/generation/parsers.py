"""Parsers from raw completion text to typed artifact payloads.

Models often wrap JSON in markdown fences or a sentence of prose, so the
JSON parsers first strip fences and then fall back to the outermost
``[...]`` span.  A response that cannot be turned into a well-formed
payload raises :class:`GenerationError`; callers never see a partially
populated artifact.

Item-level rules for flashcards and quizzes: items that do not match the
expected shape are dropped, and the response is accepted only if what
remains is non-empty and, when anything was dropped, still covers the
requested count.  Extra items are truncated to the requested count.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from pydantic import ValidationError

from src.models.artifacts import QUIZ_DISTRACTORS, Flashcard, QuizQuestion
from src.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*$")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def strip_code_fences(raw: str) -> str:
    """Remove markdown code-fence lines from *raw*."""
    text = raw.strip()
    if "```" not in text:
        return text
    lines = [line for line in text.split("\n") if not _FENCE.match(line)]
    return "\n".join(lines).strip()


def _load_array(raw: str, kind: str) -> list[Any]:
    text = strip_code_fences(raw)
    if not text.startswith("["):
        match = _JSON_ARRAY.search(text)
        if match:
            text = match.group(0)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("generation_parse_failed", kind=kind, error=str(exc), preview=text[:120])
        raise GenerationError(message=f"Could not parse {kind} response as JSON") from exc

    if isinstance(data, dict):
        # {"flashcards": [...]} and similar single-key wrappers.
        lists = [v for v in data.values() if isinstance(v, list)]
        if len(lists) == 1:
            data = lists[0]
    if not isinstance(data, list):
        raise GenerationError(message=f"Expected a JSON array of {kind}, got {type(data).__name__}")
    return data


def _accept(items: list[Any], dropped: int, count: int, kind: str) -> list[Any]:
    if not items:
        raise GenerationError(message=f"Response contained no well-formed {kind}")
    if dropped and len(items) < count:
        raise GenerationError(
            message=f"Response had {dropped} malformed {kind}; only {len(items)} of {count} usable",
        )
    if len(items) < count:
        logger.warning("generation_short_response", kind=kind, requested=count, received=len(items))
    return items[:count]


def parse_flashcards(raw: str, count: int) -> list[Flashcard]:
    """Parse ``[{"front", "back"}]`` into at most *count* flashcards."""
    cards: list[Flashcard] = []
    dropped = 0
    for item in _load_array(raw, "flashcards"):
        if not isinstance(item, dict):
            dropped += 1
            continue
        front, back = item.get("front"), item.get("back")
        if not isinstance(front, str) or not isinstance(back, str):
            dropped += 1
            continue
        try:
            cards.append(Flashcard(front=front.strip(), back=back.strip()))
        except ValidationError:
            dropped += 1
    return _accept(cards, dropped, count, "flashcards")


def parse_quiz(raw: str, count: int) -> list[QuizQuestion]:
    """Parse ``[{"question", "correctAnswer", "wrongAnswers"}]`` into quiz questions.

    Extra wrong answers beyond the fixed distractor count are ignored; fewer
    make the item malformed.
    """
    questions: list[QuizQuestion] = []
    dropped = 0
    for item in _load_array(raw, "quiz questions"):
        if not isinstance(item, dict):
            dropped += 1
            continue
        question = item.get("question")
        correct = item.get("correctAnswer", item.get("correct_answer"))
        wrong = item.get("wrongAnswers", item.get("distractors"))
        if (
            not isinstance(question, str)
            or not isinstance(correct, str)
            or not isinstance(wrong, list)
            or len(wrong) < QUIZ_DISTRACTORS
            or not all(isinstance(w, str) for w in wrong[:QUIZ_DISTRACTORS])
        ):
            dropped += 1
            continue
        try:
            questions.append(
                QuizQuestion(
                    question=question.strip(),
                    correct_answer=correct.strip(),
                    distractors=[w.strip() for w in wrong[:QUIZ_DISTRACTORS]],
                )
            )
        except ValidationError:
            dropped += 1
    return _accept(questions, dropped, count, "quiz questions")


def parse_text(raw: str, kind: str) -> str:
    """Return the trimmed prose of a summary or chat answer."""
    text = strip_code_fences(raw)
    if not text:
        raise GenerationError(message=f"Empty {kind} response")
    return text

"""Prompt templates for each generation kind.

Every builder returns a ``(system_prompt, user_prompt)`` pair.  The
*material* argument is either the numbered retrieved passages
(document-grounded mode) or ``None`` (general-knowledge mode), in which case
the focus topic stands in for the material.
"""

from __future__ import annotations

from src.models.artifacts import QUIZ_DISTRACTORS, ChatTurn, SummaryLength
from src.models.rag import RetrievedChunk

MAX_HISTORY_TURNS = 20

_STUDY_SYSTEM = (
    "You are a study assistant that turns course material into accurate, "
    "well-structured learning aids. Use only the material provided when it is "
    "provided. Never invent facts that the material contradicts."
)

_GENERAL_SYSTEM = (
    "You are a study assistant that creates accurate learning aids from your "
    "own general knowledge of a topic. Prefer well-established facts and "
    "standard terminology."
)

_CHAT_SYSTEM = (
    "You are a helpful tutor answering a student's questions about their "
    "course documents.\n\n"
    "Guidelines:\n"
    "- Answer concisely but thoroughly (at most 3-4 paragraphs)\n"
    "- When the passages support your answer, cite them inline as [1], [2], ...\n"
    "- If the passages do not contain the answer, say so briefly and answer "
    "from general knowledge\n"
    "- Respond in plain text, not JSON"
)


def format_passages(chunks: list[RetrievedChunk], max_chars: int) -> str:
    """Number passages for citation, stopping before *max_chars* is exceeded.

    The first passage is always included (truncated if it alone is too long)
    so a grounded prompt never goes out without material.
    """
    parts: list[str] = []
    used = 0
    for index, chunk in enumerate(chunks, start=1):
        where = f", page {chunk.page}" if chunk.page else ""
        block = f"[{index}] ({chunk.filename}{where})\n{chunk.text.strip()}"
        if parts and used + len(block) > max_chars:
            break
        if not parts and len(block) > max_chars:
            block = block[:max_chars]
        parts.append(block)
        used += len(block) + 2
    return "\n\n".join(parts)


def _topic_instruction(focus_topic: str | None, noun: str) -> str:
    if focus_topic:
        return f'Focus specifically on: "{focus_topic}". Only create {noun} related to this topic.'
    return "Cover the most important concepts from the material."


def _material_block(material: str | None, focus_topic: str | None) -> str:
    if material is None:
        return f"Topic:\n{focus_topic}"
    return f"Study Material:\n{material}"


def flashcard_prompt(material: str | None, focus_topic: str | None, count: int) -> tuple[str, str]:
    system = _STUDY_SYSTEM if material is not None else _GENERAL_SYSTEM
    user = (
        f"Create exactly {count} flashcards.\n"
        f"{_topic_instruction(focus_topic, 'flashcards')}\n\n"
        "Guidelines for good flashcards:\n"
        "- Each card should test ONE concept\n"
        "- Questions should be clear and specific\n"
        "- Answers should be concise but complete\n"
        "- Avoid yes/no questions\n"
        "- Include a mix of definitions, concepts, and applications\n\n"
        f"{_material_block(material, focus_topic)}\n\n"
        "Respond with ONLY a valid JSON array of flashcards in this exact format, no other text:\n"
        '[{"front": "Question 1?", "back": "Answer 1"}, {"front": "Question 2?", "back": "Answer 2"}]'
    )
    return system, user


def quiz_prompt(material: str | None, focus_topic: str | None, count: int) -> tuple[str, str]:
    system = _STUDY_SYSTEM if material is not None else _GENERAL_SYSTEM
    wrong = ", ".join(f'"Wrong answer {i}"' for i in range(1, QUIZ_DISTRACTORS + 1))
    user = (
        f"Create exactly {count} multiple-choice quiz questions.\n"
        f"{_topic_instruction(focus_topic, 'questions')}\n\n"
        "Guidelines:\n"
        "- Each question should test understanding, not trivia\n"
        "- Questions should be clear and unambiguous\n"
        "- Exactly one answer is correct\n"
        f"- Give exactly {QUIZ_DISTRACTORS} wrong answers that are plausible but clearly incorrect\n"
        "- Vary the difficulty from easy to challenging\n\n"
        f"{_material_block(material, focus_topic)}\n\n"
        "Respond with ONLY a valid JSON array in this exact format, no other text:\n"
        f'[{{"question": "What is...?", "correctAnswer": "The correct answer", "wrongAnswers": [{wrong}]}}]'
    )
    return system, user


def summary_prompt(
    material: str | None, focus_topic: str | None, length: SummaryLength
) -> tuple[str, str]:
    low, high = length.word_range
    focus = (
        f'Focus specifically on aspects related to: "{focus_topic}".\n'
        if focus_topic
        else ""
    )
    system = (
        "You are an expert at creating clear, educational summaries."
        if material is not None
        else _GENERAL_SYSTEM
    )
    user = (
        f"Write a summary of {low}-{high} words.\n"
        f"{focus}\n"
        "Guidelines:\n"
        "- Start with the central idea, then the supporting concepts\n"
        "- Keep key terms, definitions and formulas\n"
        "- Write flowing prose, not bullet points\n\n"
        f"{_material_block(material, focus_topic)}\n\n"
        "Generate the summary:"
    )
    return system, user


def chat_prompt(
    question: str,
    material: str | None,
    history: list[ChatTurn],
    searched_documents: bool,
) -> tuple[str, str]:
    """Build the chat prompt.

    *material* is only passed when retrieval found relevant passages;
    *searched_documents* tells the model whether documents were searched
    without a match or there were none to search.
    """
    parts: list[str] = []

    recent = history[-MAX_HISTORY_TURNS:]
    if recent:
        lines = [f"{turn.role.capitalize()}: {turn.content.strip()}" for turn in recent]
        parts.append("Conversation so far:\n" + "\n".join(lines))

    if material is not None:
        parts.append(f"Relevant passages from the student's documents:\n{material}")
    elif searched_documents:
        parts.append(
            "The student's documents contain nothing closely related to this "
            "question. Say so in one sentence, then answer from general knowledge."
        )
    else:
        parts.append(
            "No document passages are available for this question. Answer from "
            "general knowledge and say that the answer is not taken from the "
            "student's documents."
        )

    parts.append(f"Question: {question.strip()}")
    return _CHAT_SYSTEM, "\n\n".join(parts)

"""Generation of study artifacts: chat answers, flashcards, quizzes, summaries."""

from src.services.generation.generation_service import GenerationService

__all__ = ["GenerationService"]

"""Completion-service call result."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CompletionResult(BaseModel):
    """Text returned by a completion or vision call plus reported usage."""

    model_config = ConfigDict(frozen=True)

    text: str
    model: str
    provider: str
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

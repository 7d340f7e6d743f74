from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class WorksheetStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class QuestionGenerationRequest(BaseModel):
    category: str = Field(min_length=1)
    interest: str = Field(min_length=1)
    grade: int = Field(ge=1)
    count: int = Field(default=10, ge=1)


class GeneratedQuestion(BaseModel):
    content: str = Field(min_length=1)
    options: list[str]
    answer: str
    explanation: str = ""

    @field_validator("options")
    @classmethod
    def _four_unique_options(cls, v: list[str]) -> list[str]:
        if len(v) != 4:
            raise ValueError(f"expected exactly 4 options, got {len(v)}")
        if len(set(v)) != 4:
            raise ValueError("options must be unique")
        return v

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "GeneratedQuestion":
        if self.answer not in self.options:
            raise ValueError(f"answer {self.answer!r} is not one of the options")
        return self


class QuestionAnswerState(BaseModel):
    id: str | None = None
    content: str
    options: list[str]
    answer: str
    explanation: str = ""
    student_answer: str | None = None
    is_correct: bool | None = None

    @classmethod
    def from_generated(cls, q: GeneratedQuestion) -> "QuestionAnswerState":
        return cls(
            content=q.content,
            options=list(q.options),
            answer=q.answer,
            explanation=q.explanation,
        )


class WorksheetState(BaseModel):
    """In-memory projection of a stored worksheet and its questions."""

    id: str | None = None
    student_id: str | None = None
    title: str = ""
    description: str = ""
    subject: str = ""
    grade: int | None = None
    status: WorksheetStatus = WorksheetStatus.NOT_STARTED
    score: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0
    questions: list[QuestionAnswerState] = []


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class WorksheetActionRequest(BaseModel):
    worksheet_id: str
    action: Literal["start", "save", "submit", "reset"]
    answers: list[str | None] | None = None


class GenerateWorksheetResponse(BaseModel):
    worksheet: WorksheetState
    generation_time_ms: int

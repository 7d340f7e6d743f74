"""Worksheet lifecycle: status transitions and scoring.

    NOT_STARTED --start--> IN_PROGRESS --submit--> COMPLETED
    NOT_STARTED --submit--> COMPLETED          (start is implied)
    COMPLETED   --reset---> NOT_STARTED

Every operation takes a WorksheetState and returns a new one; the input is
left untouched so the caller decides what to persist. Illegal transitions
raise InvalidStateTransition.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Sequence

from thinkdrills.core.errors import InvalidAnswersError, InvalidStateTransition
from thinkdrills.models.worksheet import WorksheetState, WorksheetStatus

Answers = Sequence[Optional[str]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require(ws: WorksheetState, operation: str, *allowed: WorksheetStatus) -> None:
    if ws.status not in allowed:
        raise InvalidStateTransition(operation, ws.status.value)


def _check_answers(ws: WorksheetState, answers: Answers) -> None:
    if len(answers) > len(ws.questions):
        raise InvalidAnswersError(
            f"Got {len(answers)} answers for {len(ws.questions)} questions"
        )


def compute_score(correct: int, total: int) -> Optional[int]:
    """Percentage rounded half up; None for an empty worksheet."""
    if total == 0:
        return None
    return int(math.floor(100 * correct / total + 0.5))


def start(ws: WorksheetState, now: Optional[datetime] = None) -> WorksheetState:
    _require(ws, "start", WorksheetStatus.NOT_STARTED)
    out = ws.model_copy(deep=True)
    out.status = WorksheetStatus.IN_PROGRESS
    if out.started_at is None:
        out.started_at = now or _now()
    return out


def save_progress(ws: WorksheetState, answers: Answers) -> WorksheetState:
    _require(ws, "save", WorksheetStatus.IN_PROGRESS)
    _check_answers(ws, answers)
    out = ws.model_copy(deep=True)
    for question, answer in zip(out.questions, answers):
        question.student_answer = answer
        question.is_correct = None
    return out


def submit(ws: WorksheetState, answers: Answers, now: Optional[datetime] = None) -> WorksheetState:
    _require(ws, "submit", WorksheetStatus.NOT_STARTED, WorksheetStatus.IN_PROGRESS)
    _check_answers(ws, answers)
    now = now or _now()
    out = ws.model_copy(deep=True)

    correct = 0
    for i, question in enumerate(out.questions):
        answer = answers[i] if i < len(answers) else None
        question.student_answer = answer
        if answer is None:
            question.is_correct = None
            continue
        question.is_correct = answer == question.answer
        if question.is_correct:
            correct += 1

    out.score = compute_score(correct, len(out.questions))
    if out.started_at is None:
        out.started_at = now
    out.completed_at = now
    out.status = WorksheetStatus.COMPLETED
    return out


def reset(ws: WorksheetState) -> WorksheetState:
    _require(ws, "reset", WorksheetStatus.COMPLETED)
    out = ws.model_copy(deep=True)
    for question in out.questions:
        question.student_answer = None
        question.is_correct = None
    out.score = None
    out.started_at = None
    out.completed_at = None
    out.status = WorksheetStatus.NOT_STARTED
    return out


def apply_action(
    ws: WorksheetState,
    action: str,
    answers: Optional[Answers] = None,
    now: Optional[datetime] = None,
) -> WorksheetState:
    """Dispatch one of the ``PUT /api/worksheets`` actions."""
    if action == "start":
        return start(ws, now)
    if action == "save":
        return save_progress(ws, answers or [])
    if action == "submit":
        return submit(ws, answers or [], now)
    if action == "reset":
        return reset(ws)
    raise ValueError(f"Unknown worksheet action: {action}")

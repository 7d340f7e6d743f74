"""WorksheetStore: Supabase persistence for students, worksheets and questions.

Rules:
  - Accepts an injected supabase client so the store is offline-testable.
  - Worksheets are read and written as WorksheetState projections; question
    order is the ``position`` column.
  - Writes use an optimistic ``version`` check: an update only lands if the
    row still has the version that was read, otherwise ConcurrentUpdateError.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from thinkdrills.core.errors import ConcurrentUpdateError
from thinkdrills.models.worksheet import QuestionAnswerState, WorksheetState, WorksheetStatus

logger = logging.getLogger("thinkdrills.worksheet_store")

WORKSHEET_WITH_QUESTIONS = "*, questions(*)"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _first(result) -> Optional[dict]:
    return result.data[0] if result and result.data else None


def worksheet_from_row(row: dict) -> WorksheetState:
    questions = sorted(row.get("questions") or [], key=lambda q: q.get("position", 0))
    return WorksheetState(
        id=row.get("id"),
        student_id=row.get("student_id"),
        title=row.get("title") or "",
        description=row.get("description") or "",
        subject=row.get("subject") or "",
        grade=row.get("grade"),
        status=row.get("status") or WorksheetStatus.NOT_STARTED,
        score=row.get("score"),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
        version=row.get("version") or 0,
        questions=[
            QuestionAnswerState(
                id=q.get("id"),
                content=q["content"],
                options=q.get("options") or [],
                answer=q["answer"],
                explanation=q.get("explanation") or "",
                student_answer=q.get("student_answer"),
                is_correct=q.get("is_correct"),
            )
            for q in questions
        ],
    )


def _question_row(ws_id: str, position: int, q: QuestionAnswerState) -> dict:
    row = {
        "worksheet_id": ws_id,
        "position": position,
        "content": q.content,
        "options": q.options,
        "answer": q.answer,
        "explanation": q.explanation,
        "student_answer": q.student_answer,
        "is_correct": q.is_correct,
    }
    if q.id:
        row["id"] = q.id
    return row


class WorksheetStore:
    def __init__(self, supabase_client):
        self._sb = supabase_client

    # -----------------------------------------------------------------------
    # Parents / students
    # -----------------------------------------------------------------------

    def get_parent(self, parent_id: str) -> Optional[dict]:
        return _first(self._sb.table("parents").select("*").eq("id", parent_id).limit(1).execute())

    def get_parent_by_email(self, email: str) -> Optional[dict]:
        return _first(self._sb.table("parents").select("*").eq("email", email).limit(1).execute())

    def get_parent_by_reset_token(self, token: str) -> Optional[dict]:
        return _first(
            self._sb.table("parents").select("*").eq("reset_token", token).limit(1).execute()
        )

    def create_parent(self, parent_id: str, name: str, email: str) -> dict:
        result = self._sb.table("parents").insert({
            "id": parent_id,
            "name": name,
            "email": email,
        }).execute()
        return result.data[0]

    def update_parent(self, parent_id: str, fields: dict) -> None:
        self._sb.table("parents").update(fields).eq("id", parent_id).execute()

    def delete_parent(self, parent_id: str) -> None:
        self._sb.table("parents").delete().eq("id", parent_id).execute()

    def get_student(self, student_id: str) -> Optional[dict]:
        return _first(self._sb.table("students").select("*").eq("id", student_id).limit(1).execute())

    def get_student_for_parent(self, student_id: str, parent_id: str) -> Optional[dict]:
        return _first(
            self._sb.table("students")
            .select("*")
            .eq("id", student_id)
            .eq("parent_id", parent_id)
            .limit(1)
            .execute()
        )

    def get_student_by_user_name(self, user_name: str) -> Optional[dict]:
        return _first(
            self._sb.table("students").select("*").eq("user_name", user_name).limit(1).execute()
        )

    def list_students(self, parent_id: str) -> list[dict]:
        result = (
            self._sb.table("students")
            .select("*")
            .eq("parent_id", parent_id)
            .order("created_at", desc=False)
            .execute()
        )
        return result.data or []

    def create_student(self, row: dict) -> dict:
        return self._sb.table("students").insert(row).execute().data[0]

    def update_student(self, student_id: str, fields: dict) -> dict:
        result = self._sb.table("students").update(fields).eq("id", student_id).execute()
        return result.data[0]

    def delete_student(self, student_id: str) -> None:
        # Questions go with their worksheets via ON DELETE CASCADE.
        self._sb.table("worksheets").delete().eq("student_id", student_id).execute()
        self._sb.table("students").delete().eq("id", student_id).execute()

    # -----------------------------------------------------------------------
    # Worksheets
    # -----------------------------------------------------------------------

    def list_worksheets(self, student_id: str) -> list[WorksheetState]:
        """All worksheets of a student, newest first."""
        result = (
            self._sb.table("worksheets")
            .select(WORKSHEET_WITH_QUESTIONS)
            .eq("student_id", student_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [worksheet_from_row(r) for r in result.data or []]

    def list_worksheet_rows(self, student_id: str) -> list[dict]:
        """Summary rows (no questions), newest first, for reports."""
        result = (
            self._sb.table("worksheets")
            .select("id, title, subject, status, score, started_at, completed_at, created_at")
            .eq("student_id", student_id)
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    def get_worksheet(self, worksheet_id: str, student_id: Optional[str] = None) -> Optional[WorksheetState]:
        query = self._sb.table("worksheets").select(WORKSHEET_WITH_QUESTIONS).eq("id", worksheet_id)
        if student_id is not None:
            query = query.eq("student_id", student_id)
        row = _first(query.limit(1).execute())
        return worksheet_from_row(row) if row else None

    def get_worksheet_for_parent(self, worksheet_id: str, parent_id: str) -> Optional[WorksheetState]:
        ws = self.get_worksheet(worksheet_id)
        if ws is None or ws.student_id is None:
            return None
        if self.get_student_for_parent(ws.student_id, parent_id) is None:
            return None
        return ws

    def find_open_worksheet_since(self, student_id: str, since: datetime) -> Optional[dict]:
        return _first(
            self._sb.table("worksheets")
            .select("id, status, created_at")
            .eq("student_id", student_id)
            .gte("created_at", since.isoformat())
            .neq("status", WorksheetStatus.COMPLETED.value)
            .limit(1)
            .execute()
        )

    def create_worksheet(self, ws: WorksheetState) -> WorksheetState:
        row = _first(self._sb.table("worksheets").insert({
            "student_id": ws.student_id,
            "title": ws.title,
            "description": ws.description,
            "subject": ws.subject,
            "grade": ws.grade,
            "status": ws.status.value,
            "version": 0,
        }).execute())
        if row is None:
            raise RuntimeError("Insert returned no worksheet row")

        question_rows = [_question_row(row["id"], i, q) for i, q in enumerate(ws.questions)]
        try:
            inserted = self._sb.table("questions").insert(question_rows).execute().data or []
        except Exception:
            # A worksheet without questions would block the student's daily slot.
            logger.error("[worksheet_store] question insert failed, removing worksheet %s", row["id"])
            self._sb.table("worksheets").delete().eq("id", row["id"]).execute()
            raise
        row["questions"] = inserted
        logger.info("[worksheet_store] created worksheet %s with %d questions", row["id"], len(inserted))
        return worksheet_from_row(row)

    def save_worksheet(self, ws: WorksheetState) -> WorksheetState:
        """Persist a lifecycle result; fails if someone else saved first."""
        result = (
            self._sb.table("worksheets")
            .update({
                "status": ws.status.value,
                "score": ws.score,
                "started_at": _iso(ws.started_at),
                "completed_at": _iso(ws.completed_at),
                "version": ws.version + 1,
            })
            .eq("id", ws.id)
            .eq("version", ws.version)
            .execute()
        )
        row = _first(result)
        if row is None:
            raise ConcurrentUpdateError(f"Worksheet {ws.id} was modified concurrently")

        question_rows = [_question_row(ws.id, i, q) for i, q in enumerate(ws.questions)]
        row["questions"] = self._sb.table("questions").upsert(question_rows).execute().data or []
        return worksheet_from_row(row)

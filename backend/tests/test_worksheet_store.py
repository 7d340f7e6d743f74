"""Tests for WorksheetStore against the in-memory Supabase fake."""
from datetime import datetime, timezone

import pytest

from thinkdrills.core.errors import ConcurrentUpdateError
from thinkdrills.models.worksheet import QuestionAnswerState, WorksheetState, WorksheetStatus
from thinkdrills.services import worksheet_lifecycle
from thinkdrills.services.worksheet_store import WorksheetStore, worksheet_from_row


@pytest.fixture
def store(fake_sb):
    return WorksheetStore(fake_sb)


def _new_worksheet(student_id="s-1", n=3) -> WorksheetState:
    return WorksheetState(
        student_id=student_id,
        title="Science Practice - Ocean Theme",
        subject="Science",
        grade=5,
        questions=[
            QuestionAnswerState(content=f"Q{i}", options=["w", "x", "y", "z"], answer="x")
            for i in range(n)
        ],
    )


class TestWorksheetFromRow:
    def test_orders_questions_by_position(self):
        row = {
            "id": "w1",
            "status": "IN_PROGRESS",
            "questions": [
                {"id": "b", "position": 1, "content": "second", "options": [], "answer": "x"},
                {"id": "a", "position": 0, "content": "first", "options": [], "answer": "x"},
            ],
        }
        ws = worksheet_from_row(row)
        assert [q.content for q in ws.questions] == ["first", "second"]
        assert ws.status is WorksheetStatus.IN_PROGRESS
        assert ws.version == 0


class TestCreateAndRead:
    def test_round_trip_keeps_question_order(self, store):
        created = store.create_worksheet(_new_worksheet(n=5))
        loaded = store.get_worksheet(created.id)
        assert [q.content for q in loaded.questions] == ["Q0", "Q1", "Q2", "Q3", "Q4"]
        assert all(q.id for q in loaded.questions)

    def test_student_scope(self, store):
        created = store.create_worksheet(_new_worksheet(student_id="s-1"))
        assert store.get_worksheet(created.id, student_id="s-1") is not None
        assert store.get_worksheet(created.id, student_id="s-2") is None

    def test_failed_question_insert_removes_worksheet(self, store, fake_sb, monkeypatch):
        real_table = fake_sb.table

        def table_with_failing_questions(name):
            query = real_table(name)
            if name == "questions":
                def insert(rows):
                    raise RuntimeError("questions insert failed")
                query.insert = insert
            return query

        monkeypatch.setattr(fake_sb, "table", table_with_failing_questions)
        with pytest.raises(RuntimeError, match="questions insert failed"):
            store.create_worksheet(_new_worksheet())

        assert fake_sb.tables["worksheets"] == []
        since = datetime(2000, 1, 1, tzinfo=timezone.utc)
        assert store.find_open_worksheet_since("s-1", since) is None

    def test_find_open_worksheet_since(self, store):
        since = datetime(2000, 1, 1, tzinfo=timezone.utc)
        created = store.create_worksheet(_new_worksheet())
        assert store.find_open_worksheet_since("s-1", since)["id"] == created.id

        done = worksheet_lifecycle.submit(store.get_worksheet(created.id), [])
        store.save_worksheet(done)
        assert store.find_open_worksheet_since("s-1", since) is None


class TestSave:
    def test_save_bumps_version_and_persists_answers(self, store):
        created = store.create_worksheet(_new_worksheet())
        started = worksheet_lifecycle.start(store.get_worksheet(created.id))
        saved = store.save_worksheet(worksheet_lifecycle.save_progress(started, ["x", "w"]))

        assert saved.version == 1
        reloaded = store.get_worksheet(created.id)
        assert reloaded.status is WorksheetStatus.IN_PROGRESS
        assert [q.student_answer for q in reloaded.questions] == ["x", "w", None]

    def test_stale_write_is_rejected(self, store):
        created = store.create_worksheet(_new_worksheet())
        first = store.get_worksheet(created.id)
        second = store.get_worksheet(created.id)

        store.save_worksheet(worksheet_lifecycle.start(first))
        with pytest.raises(ConcurrentUpdateError):
            store.save_worksheet(worksheet_lifecycle.submit(second, ["x"]))

        assert store.get_worksheet(created.id).status is WorksheetStatus.IN_PROGRESS


class TestStudents:
    def test_delete_student_removes_worksheets_and_questions(self, fake_sb, store):
        fake_sb.add_row("students", id="s-1", parent_id="p-1", name="Ava", user_name="ava", grade=3)
        store.create_worksheet(_new_worksheet(student_id="s-1"))

        store.delete_student("s-1")
        assert fake_sb.tables["students"] == []
        assert fake_sb.tables["worksheets"] == []
        assert fake_sb.tables["questions"] == []

    def test_student_for_parent(self, fake_sb, store):
        fake_sb.add_row("students", id="s-1", parent_id="p-1", name="Ava", user_name="ava", grade=3)
        assert store.get_student_for_parent("s-1", "p-1")["name"] == "Ava"
        assert store.get_student_for_parent("s-1", "p-2") is None

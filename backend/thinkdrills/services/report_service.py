"""Per-student progress reports for the parent dashboard.

Pure aggregation over rows already loaded by the caller: no database
access here, so every rule is testable offline.
"""
from __future__ import annotations

import math
from collections import defaultdict
from typing import Optional

RECENT_WORKSHEET_LIMIT = 5


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _completed_scores(worksheets: list[dict]) -> list[dict]:
    return [
        w for w in worksheets
        if w.get("status") == "COMPLETED" and w.get("score") is not None
    ]


def average_score(worksheets: list[dict]) -> Optional[int]:
    scored = _completed_scores(worksheets)
    if not scored:
        return None
    return _round(sum(w["score"] for w in scored) / len(scored))


def subject_averages(worksheets: list[dict]) -> list[dict]:
    """[{"subject": ..., "average_score": ...}] sorted by subject name."""
    totals: dict[str, list[int]] = defaultdict(list)
    for w in _completed_scores(worksheets):
        totals[w.get("subject") or "Unknown"].append(w["score"])
    return [
        {"subject": subject, "average_score": _round(sum(scores) / len(scores))}
        for subject, scores in sorted(totals.items())
    ]


def recent_worksheets(worksheets: list[dict], limit: int = RECENT_WORKSHEET_LIMIT) -> list[dict]:
    """First ``limit`` rows; callers pass worksheets newest first."""
    return [
        {
            "id": w.get("id"),
            "title": w.get("title"),
            "subject": w.get("subject"),
            "status": w.get("status"),
            "score": w.get("score"),
            "started_at": w.get("started_at"),
            "completed_at": w.get("completed_at"),
            "created_at": w.get("created_at"),
        }
        for w in worksheets[:limit]
    ]


def build_student_report(student: dict, worksheets: list[dict]) -> dict:
    completed = [w for w in worksheets if w.get("status") == "COMPLETED"]
    return {
        "id": student.get("id"),
        "name": student.get("name"),
        "user_name": student.get("user_name"),
        "grade": student.get("grade"),
        "categories": student.get("categories") or [],
        "total_worksheets": len(worksheets),
        "completed_worksheets": len(completed),
        "average_score": average_score(worksheets),
        "subject_averages": subject_averages(worksheets),
        "recent_worksheets": recent_worksheets(worksheets),
    }

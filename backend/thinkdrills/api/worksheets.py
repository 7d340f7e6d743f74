import logging
import random
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from thinkdrills.core.config import get_settings
from thinkdrills.core.deps import (
    Principal,
    get_current_principal,
    get_question_generator,
    get_worksheet_store,
    require_role,
)
from thinkdrills.core.errors import (
    ConcurrentUpdateError,
    GenerationError,
    InvalidAnswersError,
    InvalidStateTransition,
    http_status_for,
)
from thinkdrills.models.worksheet import (
    GenerateWorksheetResponse,
    QuestionAnswerState,
    QuestionGenerationRequest,
    WorksheetActionRequest,
    WorksheetState,
    WorksheetStatus,
)
from thinkdrills.services import worksheet_lifecycle
from thinkdrills.services.question_generator import QuestionGenerator
from thinkdrills.services.telemetry import emit_event, instrument
from thinkdrills.services.worksheet_store import WorksheetStore

router = APIRouter(prefix="/api/worksheets", tags=["worksheets"])

logger = logging.getLogger("thinkdrills.worksheets")


def start_of_today() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def _is_current(ws: WorksheetState, today: datetime) -> bool:
    if ws.status == WorksheetStatus.COMPLETED or ws.created_at is None:
        return False
    created = ws.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created >= today


def _ensure_no_open_worksheet(store: WorksheetStore, student_id: str) -> None:
    if store.find_open_worksheet_since(student_id, start_of_today()):
        raise HTTPException(status_code=400, detail="Incomplete worksheet already exists for today")


def _student_or_404(store: WorksheetStore, principal: Principal) -> dict:
    student = store.get_student(principal.id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


# ──────────────────────────────────────────────
# Read endpoints
# ──────────────────────────────────────────────

@router.get("")
async def list_worksheets(
    principal: Principal = Depends(require_role("student")),
    store: WorksheetStore = Depends(get_worksheet_store),
):
    """Today's open worksheet (if any) plus everything else, newest first."""
    student = _student_or_404(store, principal)
    worksheets = store.list_worksheets(student["id"])
    today = start_of_today()

    current = next((w for w in worksheets if _is_current(w, today)), None)
    previous = [w for w in worksheets if w is not current]
    return {"current_worksheet": current, "previous_worksheets": previous}


@router.get("/{worksheet_id}", response_model=WorksheetState)
async def get_worksheet(
    worksheet_id: str,
    principal: Principal = Depends(get_current_principal),
    store: WorksheetStore = Depends(get_worksheet_store),
):
    """Students see their own worksheets; parents see their children's (read-only)."""
    if principal.role == "student":
        ws = store.get_worksheet(worksheet_id, student_id=principal.id)
    else:
        ws = store.get_worksheet_for_parent(worksheet_id, parent_id=principal.id)
    if ws is None:
        raise HTTPException(status_code=404, detail="Worksheet not found")
    return ws


# ──────────────────────────────────────────────
# Lifecycle
# ──────────────────────────────────────────────

@router.put("", response_model=WorksheetState)
async def update_worksheet(
    body: WorksheetActionRequest,
    principal: Principal = Depends(require_role("student")),
    store: WorksheetStore = Depends(get_worksheet_store),
):
    """Start, save, submit or reset one of the student's worksheets."""
    ws = store.get_worksheet(body.worksheet_id, student_id=principal.id)
    if ws is None:
        raise HTTPException(status_code=404, detail="Worksheet not found")

    try:
        updated = worksheet_lifecycle.apply_action(ws, body.action, body.answers)
    except (InvalidStateTransition, InvalidAnswersError) as e:
        raise HTTPException(status_code=http_status_for(e), detail=str(e))

    try:
        saved = store.save_worksheet(updated)
    except ConcurrentUpdateError as e:
        logger.warning("Concurrent %s on worksheet %s: %s", body.action, ws.id, e)
        raise HTTPException(status_code=http_status_for(e), detail="Worksheet was updated elsewhere, please reload")

    logger.info(
        "Worksheet %s: %s -> %s (action=%s, score=%s)",
        ws.id, ws.status.value, saved.status.value, body.action, saved.score,
    )
    return saved


# ──────────────────────────────────────────────
# Generation
# ──────────────────────────────────────────────

@router.post("/generate", response_model=GenerateWorksheetResponse)
@instrument(route="/api/worksheets/generate")
async def generate_worksheet(
    request: Request,
    principal: Principal = Depends(require_role("student")),
    store: WorksheetStore = Depends(get_worksheet_store),
    generator: QuestionGenerator = Depends(get_question_generator),
):
    """Generate today's worksheet from the student's subjects and interests."""
    start_time = datetime.now()
    settings = get_settings()
    student = _student_or_404(store, principal)

    _ensure_no_open_worksheet(store, student["id"])

    categories = student.get("categories") or []
    interests = student.get("interests") or []
    if not categories:
        raise HTTPException(status_code=400, detail="Student must have at least one category selected")
    if not interests:
        raise HTTPException(status_code=400, detail="Student must have at least one interest selected")

    gen_request = QuestionGenerationRequest(
        category=random.choice(categories),
        interest=random.choice(interests),
        grade=student.get("grade") or 1,
        count=settings.question_count,
    )

    try:
        questions = await generator.generate_questions(gen_request, is_cancelled=request.is_disconnected)
    except GenerationError as e:
        logger.error(
            "Question generation failed for student %s: %s (%s)",
            student["id"], e.__class__.__name__, e.detail,
        )
        emit_event(
            "worksheet_generation_failed", route="/api/worksheets/generate",
            student_id=student["id"], category=gen_request.category,
            interest=gen_request.interest, error_type=e.__class__.__name__, ok=False,
        )
        raise HTTPException(status_code=http_status_for(e), detail=e.user_message)

    # Re-checked after generation; no await separates this check from the insert.
    _ensure_no_open_worksheet(store, student["id"])
    worksheet = store.create_worksheet(WorksheetState(
        student_id=student["id"],
        title=f"{gen_request.category} Practice - {gen_request.interest} Theme",
        description=(
            f"A worksheet focusing on {gen_request.category} "
            f"with {gen_request.interest}-themed questions."
        ),
        subject=gen_request.category,
        grade=gen_request.grade,
        questions=[QuestionAnswerState.from_generated(q) for q in questions],
    ))

    emit_event(
        "worksheet_generated", route="/api/worksheets/generate",
        student_id=student["id"], category=gen_request.category,
        interest=gen_request.interest, question_count=len(questions), ok=True,
    )
    elapsed_ms = int((datetime.now() - start_time).total_seconds() * 1000)
    return GenerateWorksheetResponse(worksheet=worksheet, generation_time_ms=elapsed_ms)

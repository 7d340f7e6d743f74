"""Students API (parent accounts only).

GET    /api/students                   list the parent's students
POST   /api/students                   create a student login
PUT    /api/students                   update profile fields
DELETE /api/students?id=...            delete a student and their worksheets
PUT    /api/students/reset-password    set a new password for a student
GET    /api/students/reports           progress report per student
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from supabase import Client

from thinkdrills.core.config import get_settings
from thinkdrills.core.deps import (
    Principal,
    discard_auth_user,
    get_supabase_client,
    get_worksheet_store,
    require_role,
)
from thinkdrills.models.student import (
    CreateStudentRequest,
    Student,
    StudentPasswordRequest,
    UpdateStudentRequest,
)
from thinkdrills.services.report_service import build_student_report
from thinkdrills.services.worksheet_store import WorksheetStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/students", tags=["students"])

parent_only = require_role("parent")


def student_login_email(user_name: str) -> str:
    return f"{user_name}@{get_settings().student_email_domain}"


def _owned_student_or_404(store: WorksheetStore, student_id: str, parent: Principal) -> dict:
    student = store.get_student_for_parent(student_id, parent.id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


@router.get("", response_model=list[Student])
async def list_students(
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
):
    return store.list_students(parent.id)


@router.post("", response_model=Student, status_code=201)
async def create_student(
    body: CreateStudentRequest,
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    if store.get_parent(parent.id) is None:
        raise HTTPException(status_code=404, detail="Parent not found")
    if store.get_student_by_user_name(body.user_name):
        raise HTTPException(status_code=400, detail="Username already taken")

    try:
        created = sb.auth.admin.create_user({
            "email": student_login_email(body.user_name),
            "password": body.password,
            "email_confirm": True,
            "user_metadata": {"role": "student", "name": body.name},
        })
    except Exception as e:
        logger.error("Failed to create auth user for student %s: %s", body.user_name, e)
        raise HTTPException(status_code=500, detail="Failed to create student login")

    try:
        student = store.create_student({
            "id": created.user.id,
            "parent_id": parent.id,
            "name": body.name,
            "user_name": body.user_name,
            "grade": body.grade,
            "categories": body.categories,
            "interests": body.interests,
        })
    except Exception as e:
        logger.error("Failed to store student %s: %s", body.user_name, e, exc_info=True)
        discard_auth_user(sb, created.user.id)
        raise HTTPException(status_code=500, detail="Failed to create student login")
    logger.info("Parent %s created student %s", parent.id, student["id"])
    return student


@router.put("", response_model=Student)
async def update_student(
    body: UpdateStudentRequest,
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    student = _owned_student_or_404(store, body.id, parent)

    fields = body.model_dump(exclude={"id"}, exclude_none=True)
    new_user_name = fields.get("user_name")
    renamed = bool(new_user_name) and new_user_name != student["user_name"]
    if renamed and store.get_student_by_user_name(new_user_name):
        raise HTTPException(status_code=400, detail="Username already taken")

    if not fields:
        return student
    updated = store.update_student(student["id"], fields)

    if renamed:
        try:
            sb.auth.admin.update_user_by_id(student["id"], {"email": student_login_email(new_user_name)})
        except Exception as e:
            logger.error("Failed to update login email for student %s: %s", student["id"], e)
            # Login still uses the old address, so keep the old user name.
            store.update_student(student["id"], {"user_name": student["user_name"]})
            raise HTTPException(status_code=500, detail="Failed to update student login")
    return updated


@router.delete("")
async def delete_student(
    id: str = Query(..., min_length=1),
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    student = _owned_student_or_404(store, id, parent)

    store.delete_student(student["id"])
    try:
        sb.auth.admin.delete_user(student["id"])
    except Exception as e:
        # Profile rows are gone; an orphaned login cannot reach any data.
        logger.warning("Failed to delete auth user %s: %s", student["id"], e)

    logger.info("Parent %s deleted student %s", parent.id, student["id"])
    return {"success": True}


@router.put("/reset-password")
async def reset_student_password(
    body: StudentPasswordRequest,
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    student = _owned_student_or_404(store, body.id, parent)
    try:
        sb.auth.admin.update_user_by_id(student["id"], {"password": body.password})
    except Exception as e:
        logger.error("Failed to reset password for student %s: %s", student["id"], e)
        raise HTTPException(status_code=500, detail="Failed to reset password")
    return {"success": True}


@router.get("/reports")
async def student_reports(
    parent: Principal = Depends(parent_only),
    store: WorksheetStore = Depends(get_worksheet_store),
):
    """One report per student: totals, average score, per-subject averages, last 5 worksheets."""
    return [
        build_student_report(student, store.list_worksheet_rows(student["id"]))
        for student in store.list_students(parent.id)
    ]

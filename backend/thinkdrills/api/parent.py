import logging

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from thinkdrills.core.deps import Principal, get_supabase_client, get_worksheet_store, require_role
from thinkdrills.services.worksheet_store import WorksheetStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parent", tags=["parent"])


@router.delete("")
async def delete_parent_account(
    parent: Principal = Depends(require_role("parent")),
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    """Delete the parent account together with every student it owns."""
    if store.get_parent(parent.id) is None:
        raise HTTPException(status_code=404, detail="Parent not found")

    students = store.list_students(parent.id)
    for student in students:
        store.delete_student(student["id"])
    store.delete_parent(parent.id)

    for user_id in [s["id"] for s in students] + [parent.id]:
        try:
            sb.auth.admin.delete_user(user_id)
        except Exception as e:
            logger.warning("Failed to delete auth user %s: %s", user_id, e)

    logger.info("Deleted parent %s and %d students", parent.id, len(students))
    return {"success": True}

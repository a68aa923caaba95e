from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from ..config import FACULTY_PROGRAMS
from ..dependencies import get_admin_repository, get_now
from ..errors import ConflictError, InvalidIdError, NotFoundError
from ..models.admin_model import AdminOut, AdminRegistration
from ..security import get_current_admin
from ..storage_mongo import AdminRepository

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/register", status_code=201)
def register_admin(
    data: AdminRegistration,
    repo: AdminRepository = Depends(get_admin_repository),
    now: datetime = Depends(get_now),
):
    if repo.get_by_email(data.email) is not None:
        raise HTTPException(status_code=409, detail="Admin with this email already exists")
    try:
        admin = repo.create(data.model_dump(), now)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"success": True, "message": "Admin registered successfully", "adminId": admin["adminId"]}


@router.get("/profile")
def admin_profile(
    claims: dict = Depends(get_current_admin),
    repo: AdminRepository = Depends(get_admin_repository),
):
    try:
        admin = repo.get(claims["sub"])
    except (NotFoundError, InvalidIdError):
        raise HTTPException(status_code=404, detail="Admin not found")
    return {"success": True, "admin": AdminOut.from_doc(admin).model_dump(mode="json")}


# Every program across all faculties, in faculty order
@router.get("/programs")
def list_programs(claims: dict = Depends(get_current_admin)):
    programs = [program for group in FACULTY_PROGRAMS.values() for program in group]
    return {"success": True, "programs": programs}

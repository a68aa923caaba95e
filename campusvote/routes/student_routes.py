from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_election_repository, get_now, get_student_repository
from ..models.election_model import ElectionOut
from ..security import get_current_student
from ..storage_mongo import ElectionRepository, StudentRepository

router = APIRouter(prefix="/api/student", tags=["Student"])


@router.get("/active-elections")
def active_elections(
    claims: dict = Depends(get_current_student),
    students: StudentRepository = Depends(get_student_repository),
    elections: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    """Ongoing elections open to the student's faculty / program, closest to ending first."""
    student = students.get_by_student_id(claims["sub"])
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    active = elections.list_active_for(student["faculty"], student["program"], now)
    if not active:
        return {"success": True, "message": "No active elections as of the moment", "elections": []}
    return {"success": True, "elections": [ElectionOut.from_doc(e).model_dump(mode="json") for e in active]}

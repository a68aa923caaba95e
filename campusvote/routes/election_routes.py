from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_election_repository, get_now
from ..errors import ConflictError, InvalidIdError, NotFoundError
from ..models.election_model import ElectionCreate, ElectionOut, ElectionUpdate
from ..security import get_current_admin
from ..storage_mongo import ElectionRepository


router = APIRouter(prefix="/api/admin/elections", tags=["Election"], dependencies=[Depends(get_current_admin)])


def _serialize(elections) -> list:
    return [ElectionOut.from_doc(e).model_dump(mode="json") for e in elections]


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidIdError):
        return HTTPException(status_code=400, detail="Invalid election ID format.")
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=422, detail=str(e))


@router.get("")
def list_elections(
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    return {"success": True, "elections": _serialize(repo.list_all(now))}


@router.post("", status_code=201)
def create_election(
    election: ElectionCreate,
    admin: dict = Depends(get_current_admin),
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    try:
        doc = repo.create(election, created_by=admin.get("sub"), now=now)
    except ConflictError as e:
        raise _to_http(e)
    return {"success": True, "election": ElectionOut.from_doc(doc).model_dump(mode="json")}


@router.post("/update-status")
def force_status_update(
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    result = repo.reconcile(now)
    return {
        "success": True,
        "message": "Election statuses updated successfully",
        "changed_count": result.changed_count,
    }


@router.get("/status")
def election_statuses(
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    return {"success": True, "elections": _serialize(repo.list_all(now))}


@router.put("/{election_id}")
def update_election(
    election_id: str,
    changes: ElectionUpdate,
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    try:
        doc = repo.update(election_id, changes, now)
    except (NotFoundError, InvalidIdError, ValueError) as e:
        raise _to_http(e)
    return {"success": True, "election": ElectionOut.from_doc(doc).model_dump(mode="json")}


@router.delete("/{election_id}")
def delete_election(
    election_id: str,
    repo: ElectionRepository = Depends(get_election_repository),
    now: datetime = Depends(get_now),
):
    try:
        repo.delete(election_id, now)
    except (NotFoundError, InvalidIdError, ConflictError) as e:
        raise _to_http(e)
    return {"success": True, "message": "Election deleted successfully"}

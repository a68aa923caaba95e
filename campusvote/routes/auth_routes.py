import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException

from ..config import LOGIN_MIN_MATCHES, REGISTRATION_TOKEN_EXPIRE_MINUTES, VERIFY_MIN_MATCHES
from ..dependencies import get_admin_repository, get_now, get_student_repository
from ..errors import ConflictError, NotFoundError
from ..face_utils import append_descriptor, verify
from ..models.admin_model import AdminLoginRequest
from ..models.student_model import (
    CompleteRegistrationRequest,
    FaceData,
    FaceVerifyRequest,
    StudentLoginRequest,
    StudentOut,
    StudentRegistration,
)
from ..security import (
    create_access_token,
    decode_access_token,
    get_current_student,
    hash_password,
    verify_password,
)
from ..storage_mongo import AdminRepository, StudentRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

REGISTRATION_TOKEN_TYPE = "registration"


def _student_token(student: dict) -> str:
    return create_access_token({"sub": student["studentId"], "userType": "student"})


def _student_summary(student: dict) -> dict:
    return StudentOut(**student).model_dump()


def _check_face(repo: StudentRepository, student: dict, face_data: FaceData, min_matches: int, now: datetime):
    """Match a capture against the student's enrolled descriptors and persist the attempt counter."""
    enrolled = (student.get("faceData") or {}).get("descriptors") or []
    result = verify(face_data.first(), enrolled, min_matches=min_matches)
    try:
        attempts = repo.record_verification(student["studentId"], result.attempt_delta, now)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not result.success:
        logger.warning(f"Face verification failed for student {student['studentId']} (attempt {attempts})")
        raise HTTPException(status_code=401, detail={"message": "Face verification failed", "attempts": attempts})
    return result


# Step 1: validate registration data and hand back a short-lived registration token
@router.post("/register", status_code=201)
def register(data: StudentRegistration, repo: StudentRepository = Depends(get_student_repository)):
    if repo.exists(data.studentId, data.email):
        raise HTTPException(status_code=409, detail="Student already registered")

    registration = data.model_dump()
    registration["password"] = hash_password(data.password)
    temp_token = create_access_token(
        {"type": REGISTRATION_TOKEN_TYPE, "registrationData": registration},
        expires_minutes=REGISTRATION_TOKEN_EXPIRE_MINUTES,
    )
    return {"tempToken": temp_token, "message": "Temporary registration successful"}


# Step 2: complete registration with the first face descriptor
@router.post("/complete-registration", status_code=201)
def complete_registration(
    body: CompleteRegistrationRequest,
    repo: StudentRepository = Depends(get_student_repository),
    now: datetime = Depends(get_now),
):
    claims = decode_access_token(body.tempToken)
    if not claims or claims.get("type") != REGISTRATION_TOKEN_TYPE:
        raise HTTPException(status_code=401, detail="Invalid registration token")

    try:
        face_profile = append_descriptor(None, body.faceData.first(), now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    student = dict(claims["registrationData"])
    student.update(
        {
            "faceData": face_profile,
            "status": "Active",
            "registrationComplete": True,
            "isActive": True,
            "createdAt": now,
            "updatedAt": now,
        }
    )
    try:
        repo.create(student)
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"success": True, "message": "Registration completed successfully"}


@router.post("/student/login")
def student_login(
    body: StudentLoginRequest,
    repo: StudentRepository = Depends(get_student_repository),
    now: datetime = Depends(get_now),
):
    student = repo.get_by_email(body.email)
    if not student or not verify_password(body.password, student["password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if body.faceData is not None:
        _check_face(repo, student, body.faceData, LOGIN_MIN_MATCHES, now)

    return {
        "success": True,
        "token": f"Bearer {_student_token(student)}",
        "studentId": student["studentId"],
        "student": {"firstName": student["firstName"], "lastName": student["lastName"]},
    }


@router.post("/verify-face")
def verify_face(
    body: FaceVerifyRequest,
    repo: StudentRepository = Depends(get_student_repository),
    now: datetime = Depends(get_now),
):
    student = repo.get_by_student_id(body.studentId)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    result = _check_face(repo, student, body.faceData, VERIFY_MIN_MATCHES, now)
    return {
        "success": True,
        "message": "Face verification successful",
        "matchedCount": result.matched_count,
        "token": f"Bearer {_student_token(student)}",
        "student": {
            "studentId": student["studentId"],
            "firstName": student["firstName"],
            "lastName": student["lastName"],
        },
    }


@router.post("/student/face")
def enroll_face(
    face_data: FaceData,
    claims: dict = Depends(get_current_student),
    repo: StudentRepository = Depends(get_student_repository),
    now: datetime = Depends(get_now),
):
    try:
        face = repo.append_descriptor(claims["sub"], face_data.first(), now)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "descriptorCount": len(face.get("descriptors") or [])}


@router.get("/student/profile")
def student_profile(
    claims: dict = Depends(get_current_student),
    repo: StudentRepository = Depends(get_student_repository),
):
    student = repo.get_by_student_id(claims["sub"])
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return {"success": True, "student": _student_summary(student)}


@router.post("/admin/login")
def admin_login(body: AdminLoginRequest, repo: AdminRepository = Depends(get_admin_repository)):
    admin = repo.get_by_email(body.email)
    if not admin or not verify_password(body.password, admin["password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token({"sub": str(admin["_id"]), "userType": "admin"})
    return {
        "success": True,
        "token": token,
        "adminId": admin.get("adminId") or str(admin["_id"]),
        "admin": {
            "firstName": admin.get("firstName"),
            "lastName": admin.get("lastName"),
            "email": admin["email"],
        },
    }

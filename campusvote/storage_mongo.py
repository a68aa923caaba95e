# campusvote/storage_mongo.py
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .config import ADMIN_CODE_PREFIX, ELECTION_CODE_PREFIX
from .errors import ConflictError, InvalidIdError, NotFoundError
from .face_utils import AttemptDelta, apply_attempt_delta, to_descriptor
from .security import hash_password
from .models.election_model import DATE_ORDER_ERROR, ElectionCreate, ElectionUpdate, normalize_restriction
from .status_scheduler import ElectionStatus, ReconcileResult, as_utc, derive_status, reconcile_all

logger = logging.getLogger(__name__)

# Concurrent creates can race for the same sequential code
MAX_CODE_RETRIES = 3


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise InvalidIdError(f"Invalid election ID format: {value}")


def format_election_code(number: int) -> str:
    return f"{ELECTION_CODE_PREFIX}{number:04d}"


def format_admin_code(number: int) -> str:
    return f"{ADMIN_CODE_PREFIX}{number:03d}"


def parse_election_code(code: Optional[str], prefix: str = ELECTION_CODE_PREFIX) -> Optional[int]:
    if not code or not code.startswith(prefix):
        return None
    try:
        return int(code[len(prefix):])
    except ValueError:
        return None


def highest_code(collection, field: str, prefix: str) -> int:
    """
    Largest numeric suffix among `field` values that look like `<prefix><digits>`, or 0.
    Compared as numbers: as strings "E-10000" sorts below "E-9999".
    """
    highest = 0
    query = {field: {"$regex": f"^{re.escape(prefix)}[0-9]+$"}}
    for doc in collection.find(query, {field: 1}):
        number = parse_election_code(doc.get(field), prefix)
        if number is not None and number > highest:
            highest = number
    return highest


class ElectionRepository:
    """
    Election documents in MongoDB.
    Every write re-derives `status` from the time window; clients never set it.
    """

    def __init__(self, collection):
        self.collection = collection

    def next_election_id(self) -> str:
        return format_election_code(highest_code(self.collection, "election_id", ELECTION_CODE_PREFIX) + 1)

    def create(self, payload: ElectionCreate, created_by: Optional[str], now: datetime) -> Dict[str, Any]:
        """
        Insert a new election with a generated code and a derived initial status.

        Args:
            payload: validated election fields
            created_by: id of the admin creating it
            now: current time, used for the initial status and timestamps

        Returns:
            The stored election document
        """
        doc = payload.model_dump(mode="python")
        doc["election_type"] = payload.election_type.value
        doc["status"] = derive_status(now, payload.start_date, payload.end_date).value
        doc["created_by"] = created_by
        doc["created_at"] = now
        doc["updated_at"] = now

        for _ in range(MAX_CODE_RETRIES):
            doc["election_id"] = self.next_election_id()
            doc.pop("_id", None)
            try:
                result = self.collection.insert_one(doc)
            except DuplicateKeyError:
                logger.warning(f"Election code {doc['election_id']} already taken, retrying")
                continue
            doc["_id"] = result.inserted_id
            logger.info(f"Election {doc['election_id']} created with status {doc['status']}")
            return doc
        raise ConflictError("Could not allocate an election code")

    def find_all(self) -> List[Dict[str, Any]]:
        return list(self.collection.find({}))

    def save_statuses(self, elections: List[Dict[str, Any]], now: datetime) -> int:
        """Persist the status field of already-reconciled elections. Returns how many were written."""
        written = 0
        for election in elections:
            self.collection.update_one(
                {"_id": election["_id"]},
                {"$set": {"status": election["status"], "updated_at": now}},
            )
            written += 1
        return written

    def reconcile(self, now: datetime) -> ReconcileResult:
        result = reconcile_all(self.find_all(), now)
        if result.changed_count:
            self.save_statuses(result.updated, now)
            logger.info(f"Updated status for {result.changed_count} elections")
        return result

    def list_all(self, now: datetime) -> List[Dict[str, Any]]:
        """All elections, newest first, reconciled against `now` before reading."""
        self.reconcile(now)
        return list(self.collection.find({}).sort("created_at", DESCENDING))

    def get(self, election_id: Any) -> Dict[str, Any]:
        doc = self.collection.find_one({"_id": to_object_id(election_id)})
        if not doc:
            raise NotFoundError("Election not found")
        return doc

    def update(self, election_id: Any, changes: ElectionUpdate, now: datetime) -> Dict[str, Any]:
        """
        Apply an admin edit and re-derive the status from the merged window.

        Raises:
            ValueError: merged dates are out of order, or the restriction is missing
            NotFoundError / InvalidIdError: unknown or malformed id
        """
        existing = self.get(election_id)
        fields = changes.model_dump(exclude_unset=True, exclude_none=True)

        start = as_utc(fields.get("start_date", existing["start_date"]))
        end = as_utc(fields.get("end_date", existing["end_date"]))
        if end <= start:
            raise ValueError(DATE_ORDER_ERROR)

        if "restriction" in fields:
            fields["restriction"] = normalize_restriction(existing["election_type"], fields["restriction"])

        fields["status"] = derive_status(now, start, end).value
        fields["updated_at"] = now

        updated = self.collection.find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError("Election not found")
        logger.info(f"Election {updated.get('election_id')} updated, status {updated['status']}")
        return updated

    def delete(self, election_id: Any, now: datetime) -> None:
        existing = self.get(election_id)
        status = derive_status(now, existing["start_date"], existing["end_date"])
        if status == ElectionStatus.ONGOING:
            raise ConflictError("Cannot delete an ongoing election")
        self.collection.delete_one({"_id": existing["_id"]})
        logger.info(f"Election {existing.get('election_id')} deleted")

    def list_active_for(self, faculty: str, program: str, now: datetime) -> List[Dict[str, Any]]:
        """Ongoing elections a student may vote in, closest to ending first."""
        self.reconcile(now)
        query = {
            "start_date": {"$lte": now},
            "end_date": {"$gte": now},
            "$or": [
                {"election_type": "General"},
                {"election_type": "Faculty", "restriction": faculty},
                {"election_type": "Program", "restriction": program},
            ],
        }
        return list(self.collection.find(query).sort("end_date", ASCENDING))


class StudentRepository:
    def __init__(self, collection):
        self.collection = collection

    def create(self, student: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = self.collection.insert_one(student)
        except DuplicateKeyError:
            logger.warning(f"Student {student.get('studentId')} already exists")
            raise ConflictError("Student ID or email already registered")
        student["_id"] = result.inserted_id
        logger.info(f"Student {student.get('studentId')} registered")
        return student

    def get_by_student_id(self, student_id: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"studentId": student_id})

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email})

    def exists(self, student_id: str, email: str) -> bool:
        return self.collection.find_one({"$or": [{"studentId": student_id}, {"email": email}]}) is not None

    def append_descriptor(self, student_id: str, descriptor: Any, now: datetime) -> Dict[str, Any]:
        """
        Add one enrolled descriptor after the existing ones. Never overwrites.

        Returns:
            The student's updated faceData
        """
        arr = to_descriptor(descriptor)
        if arr is None:
            raise ValueError("Invalid face data provided")
        updated = self.collection.find_one_and_update(
            {"studentId": student_id},
            {
                "$push": {"faceData.descriptors": arr.tolist()},
                "$set": {"faceData.lastUpdated": now, "updatedAt": now},
            },
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise NotFoundError("Student not found")
        face = updated.get("faceData") or {}
        logger.info(f"Student {student_id} now has {len(face.get('descriptors') or [])} face descriptors")
        return face

    def record_verification(self, student_id: str, delta: AttemptDelta, now: datetime) -> int:
        """
        Apply a verification outcome to the attempt counter (read, apply, save).
        A lost concurrent update only under-counts failures.

        Returns:
            The new counter value
        """
        student = self.get_by_student_id(student_id)
        if not student:
            raise NotFoundError("Student not found")
        current = (student.get("faceData") or {}).get("verificationAttempts", 0)
        attempts = apply_attempt_delta(current, delta)
        self.collection.update_one(
            {"_id": student["_id"]},
            {
                "$set": {
                    "faceData.verificationAttempts": attempts,
                    "faceData.lastVerificationAttempt": now,
                    "updatedAt": now,
                }
            },
        )
        return attempts


class AdminRepository:
    def __init__(self, collection):
        self.collection = collection

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.collection.find_one({"email": email})

    def get(self, admin_id: Any) -> Dict[str, Any]:
        """Admin by ObjectId, without the password hash."""
        doc = self.collection.find_one({"_id": to_object_id(admin_id)}, {"password": 0})
        if not doc:
            raise NotFoundError("Admin not found")
        return doc

    def next_admin_id(self) -> str:
        return format_admin_code(highest_code(self.collection, "adminId", ADMIN_CODE_PREFIX) + 1)

    def create(self, admin: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        """
        Register an admin with a generated `adminId` and a bcrypt-hashed password.

        Args:
            admin: firstName, middleName, lastName, email and the plain password
            now: creation timestamp

        Returns:
            The stored admin document (password hashed)

        Raises:
            ConflictError: the email (or, after retries, the admin code) is taken
        """
        doc = dict(admin)
        doc["password"] = hash_password(admin["password"])
        doc["createdAt"] = now

        for _ in range(MAX_CODE_RETRIES):
            doc["adminId"] = self.next_admin_id()
            doc.pop("_id", None)
            try:
                result = self.collection.insert_one(doc)
            except DuplicateKeyError:
                if self.get_by_email(doc["email"]) is not None:
                    logger.warning(f"Admin {doc['email']} already exists")
                    raise ConflictError("Admin with this email already exists")
                logger.warning(f"Admin code {doc['adminId']} already taken, retrying")
                continue
            doc["_id"] = result.inserted_id
            logger.info(f"Admin {doc['adminId']} registered")
            return doc
        raise ConflictError("Could not allocate an admin code")

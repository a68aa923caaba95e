# campusvote/dependencies.py
# FastAPI dependencies shared by the routers; tests swap these via app.dependency_overrides
from datetime import datetime

from .database.connection import admin_collection, election_collection, student_collection
from .status_scheduler import utcnow
from .storage_mongo import AdminRepository, ElectionRepository, StudentRepository


def get_election_repository() -> ElectionRepository:
    return ElectionRepository(election_collection())


def get_student_repository() -> StudentRepository:
    return StudentRepository(student_collection())


def get_admin_repository() -> AdminRepository:
    return AdminRepository(admin_collection())


def get_now() -> datetime:
    return utcnow()

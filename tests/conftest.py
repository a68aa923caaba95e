from __future__ import annotations

import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

os.environ.setdefault("ENABLE_STATUS_SCHEDULER", "false")

from fastapi.testclient import TestClient  # noqa: E402

from campusvote import dependencies  # noqa: E402
from campusvote.main import app  # noqa: E402
from campusvote.security import create_access_token  # noqa: E402
from campusvote.storage_mongo import AdminRepository, ElectionRepository, StudentRepository  # noqa: E402

# 2024-03-15T12:00Z sits inside the sample election window below
NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
START = datetime(2024, 3, 15, 8, 0, tzinfo=timezone.utc)
END = datetime(2024, 3, 16, 8, 0, tzinfo=timezone.utc)


def make_election(**overrides) -> dict:
    doc = {
        "_id": ObjectId(),
        "election_id": "E-0001",
        "election_name": "SSC General Election",
        "description": "Supreme Student Council",
        "election_type": "General",
        "restriction": "None",
        "start_date": START,
        "end_date": END,
        "status": "Ongoing",
        "created_by": "admin-1",
        "created_at": NOW,
        "updated_at": NOW,
    }
    doc.update(overrides)
    return doc


def make_student(**overrides) -> dict:
    doc = {
        "_id": ObjectId(),
        "firstName": "Ana",
        "lastName": "Reyes",
        "studentId": "2021-0001",
        "email": "ana.reyes@dorsu.edu.ph",
        "faculty": "FaCET",
        "program": "BSIT",
        "password": "not-a-real-hash",
        "status": "Active",
        "faceData": {"descriptors": [[0.0, 0.0, 0.0]], "verificationAttempts": 0},
    }
    doc.update(overrides)
    return doc


@pytest.fixture
def election_repo() -> MagicMock:
    return MagicMock(spec=ElectionRepository)


@pytest.fixture
def student_repo() -> MagicMock:
    return MagicMock(spec=StudentRepository)


@pytest.fixture
def admin_repo() -> MagicMock:
    return MagicMock(spec=AdminRepository)


@pytest.fixture
def client(election_repo, student_repo, admin_repo):
    app.dependency_overrides[dependencies.get_election_repository] = lambda: election_repo
    app.dependency_overrides[dependencies.get_student_repository] = lambda: student_repo
    app.dependency_overrides[dependencies.get_admin_repository] = lambda: admin_repo
    app.dependency_overrides[dependencies.get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token({"sub": "admin-1", "userType": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers() -> dict:
    token = create_access_token({"sub": "2021-0001", "userType": "student"})
    return {"Authorization": f"Bearer {token}"}

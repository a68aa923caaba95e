from typing import Any, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from ..config import FACULTIES, FACULTY_PROGRAMS, STUDENT_EMAIL_DOMAIN


class FaceData(BaseModel):
    # Unvalidated: a malformed capture is a failed match, not a 422
    descriptors: Optional[List[Any]] = None

    def first(self) -> Any:
        if not self.descriptors:
            return None
        return self.descriptors[0]


class StudentRegistration(BaseModel):
    firstName: str = Field(..., min_length=1)
    middleName: Optional[str] = None
    lastName: str = Field(..., min_length=1)
    studentId: str = Field(..., pattern=r"^\d{4}-\d{4}$", examples=["2021-0001"])
    email: EmailStr
    faculty: str
    program: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)

    @field_validator("firstName", "lastName", "middleName")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else None

    @field_validator("email")
    @classmethod
    def _school_email(cls, v: str) -> str:
        if not v.lower().endswith("@" + STUDENT_EMAIL_DOMAIN):
            raise ValueError(f"Email must be a @{STUDENT_EMAIL_DOMAIN} address")
        return v

    @field_validator("faculty")
    @classmethod
    def _known_faculty(cls, v: str) -> str:
        if v not in FACULTIES:
            raise ValueError(f"Faculty must be one of {', '.join(FACULTIES)}")
        return v

    @model_validator(mode="after")
    def _program_in_faculty(self):
        if self.program not in FACULTY_PROGRAMS.get(self.faculty, ()):
            raise ValueError("Invalid program for selected faculty")
        return self


class CompleteRegistrationRequest(BaseModel):
    tempToken: str
    faceData: FaceData


class StudentLoginRequest(BaseModel):
    email: EmailStr
    password: str
    faceData: Optional[FaceData] = None


class FaceVerifyRequest(BaseModel):
    studentId: str
    faceData: FaceData


class StudentOut(BaseModel):
    studentId: str
    firstName: str
    middleName: Optional[str] = None
    lastName: str
    email: str
    faculty: str
    program: str

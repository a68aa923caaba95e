from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..status_scheduler import ElectionStatus, as_utc

NO_RESTRICTION = "None"
DATE_ORDER_ERROR = "End date and time must be after start date and time"


class ElectionType(str, Enum):
    GENERAL = "General"
    FACULTY = "Faculty"
    PROGRAM = "Program"


def normalize_restriction(election_type: ElectionType, restriction: Optional[str]) -> str:
    """General elections carry the literal "None"; the others need a faculty or program code."""
    election_type = ElectionType(election_type)
    if election_type == ElectionType.GENERAL:
        return NO_RESTRICTION
    if not restriction or not restriction.strip() or restriction == NO_RESTRICTION:
        raise ValueError(f"A restriction is required for {election_type.value} elections")
    return restriction.strip()


class ElectionCreate(BaseModel):
    # status is derived, never taken from the client
    model_config = ConfigDict(extra="ignore")

    election_name: str = Field(..., min_length=1, examples=["SSC General Election 2024"])
    description: str = Field(..., min_length=1)
    election_type: ElectionType
    restriction: Optional[str] = Field(default=None, examples=["FaCET"])
    start_date: datetime
    end_date: datetime

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def _check(self):
        if self.end_date <= self.start_date:
            raise ValueError(DATE_ORDER_ERROR)
        self.restriction = normalize_restriction(self.election_type, self.restriction)
        return self


class ElectionUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    election_name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    restriction: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _check(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError(DATE_ORDER_ERROR)
        return self


class ElectionOut(BaseModel):
    id: str
    election_id: str
    election_name: str
    description: str
    election_type: ElectionType
    restriction: str
    start_date: datetime
    end_date: datetime
    status: ElectionStatus
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "ElectionOut":
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        if data.get("created_by") is not None:
            data["created_by"] = str(data["created_by"])
        return cls(**data)

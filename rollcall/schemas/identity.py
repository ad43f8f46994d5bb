from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from rollcall.core.types import EnrolledIdentity


class IdentityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    employee_id: str = Field(min_length=1, max_length=64)
    department: str = Field(min_length=1, max_length=120)
    position: str = Field(min_length=1, max_length=120)
    image_reference: str = Field(min_length=1)
    descriptor: list[float] = Field(min_length=1)


class IdentityResponse(BaseModel):
    identity_id: uuid.UUID
    name: str
    employee_id: str
    department: str
    position: str
    image_reference: str
    created_at: datetime | None = None

    @classmethod
    def from_identity(cls, identity: EnrolledIdentity) -> IdentityResponse:
        return cls(
            identity_id=identity.identity_id,
            name=identity.display_name,
            employee_id=identity.employee_id,
            department=identity.department,
            position=identity.position,
            image_reference=identity.image_reference,
            created_at=identity.created_at,
        )

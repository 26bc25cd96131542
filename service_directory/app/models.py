"""
Freelancer data models for the Directory Service.

Domain records are plain dataclasses owned by the persistence layer; the
pydantic models are the request/response shapes seen at the HTTP boundary and
the projection stored in the cache.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass
class Skillset:
    """Skill tag owned by one freelancer."""
    name: str
    id: Optional[int] = None
    freelancer_id: Optional[int] = None


@dataclass
class Hobby:
    """Hobby tag owned by one freelancer."""
    name: str
    id: Optional[int] = None
    freelancer_id: Optional[int] = None


@dataclass
class Freelancer:
    """Freelancer profile with its owned tag collections."""
    username: str
    email: str
    phone_number: Optional[str] = None
    is_archived: bool = False
    skillsets: List[Skillset] = field(default_factory=list)
    hobbies: List[Hobby] = field(default_factory=list)
    id: Optional[int] = None


class FreelancerInput(BaseModel):
    """Fields accepted by register and update.

    Required-field checks live in the directory service so that a missing or
    blank username/email is reported as INVALID_INPUT with the same message
    regardless of how it was omitted.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = Field(None, description="Unique handle")
    email: Optional[str] = Field(None, description="Contact email")
    phone_number: Optional[str] = Field(None, alias="phoneNumber", description="Contact phone number")
    skillsets: Optional[List[str]] = Field(None, description="Skill tag names, in order")
    hobbies: Optional[List[str]] = Field(None, description="Hobby tag names, in order")


class FreelancerCreateRequest(FreelancerInput):
    """Request model for registering a freelancer."""


class FreelancerUpdateRequest(FreelancerInput):
    """Request model for replacing a freelancer's profile."""


class FreelancerResponse(BaseModel):
    """External view of one freelancer."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str
    email: str
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    is_archived: bool = Field(False, alias="isArchived")
    skillsets: List[str] = Field(default_factory=list)
    hobbies: List[str] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, freelancer: Freelancer) -> "FreelancerResponse":
        """Project a stored freelancer, flattening tag records to names."""
        return cls(
            id=freelancer.id,
            username=freelancer.username,
            email=freelancer.email,
            phone_number=freelancer.phone_number,
            is_archived=freelancer.is_archived,
            skillsets=[s.name for s in freelancer.skillsets],
            hobbies=[h.name for h in freelancer.hobbies],
        )

    def to_cache(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class StatusMessage(BaseModel):
    """Acknowledgement / informational envelope."""
    status: int
    message: str

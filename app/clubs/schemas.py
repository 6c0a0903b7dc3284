from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator


class PresidentOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class ClubCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)


class ClubUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator('name')
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("Le nom du club est obligatoire")
        return v


class ClubResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    logo: Optional[str] = None
    image: Optional[str] = None
    status: str
    points: int
    created_at: datetime
    president_id: int
    president: Optional[PresidentOut] = None

    model_config = ConfigDict(from_attributes=True)


class ClubListResponse(BaseModel):
    items: List[ClubResponse]
    total: int
    page: int
    per_page: int
    pages: int


class PopularClub(BaseModel):
    club: ClubResponse
    members_count: int


class MembershipCreate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)


class MemberOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class MembershipResponse(BaseModel):
    id: int
    user_id: int
    club_id: int
    description: Optional[str] = None
    statut: str
    date_request: datetime
    user: Optional[MemberOut] = None

    model_config = ConfigDict(from_attributes=True)


class MembershipCounts(BaseModel):
    pending: int
    accepted: int
    refused: int
    total: int

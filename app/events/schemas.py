from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import List, Optional
from datetime import datetime

from app.events.models import EventType


# ===========================
# CATÉGORIES
# ===========================
class CategorieCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)


class CategorieResponse(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


class CategorieStats(BaseModel):
    id: int
    name: str
    events_count: int


# ===========================
# ÉVÉNEMENTS
# ===========================
class ClubOut(BaseModel):
    id: int
    name: str
    logo: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class EventBase(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    type: EventType = EventType.OPEN
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    start_date: datetime
    end_date: datetime
    categorie_id: Optional[int] = None


class EventCreate(EventBase):
    club_id: int

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("La date de fin doit être postérieure à la date de début")
        return self


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    type: Optional[EventType] = None
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    categorie_id: Optional[int] = None

    @field_validator('name', 'type', 'start_date', 'end_date')
    @classmethod
    def not_null(cls, v):
        # absent = inchangé ; null explicite interdit
        if v is None:
            raise ValueError("Ce champ ne peut pas être vidé")
        return v


class EventResponse(BaseModel):
    id: int
    name: str
    type: str
    description: Optional[str] = None
    image: Optional[str] = None
    location: Optional[str] = None
    start_date: datetime
    end_date: datetime
    created_at: datetime
    club_id: int
    club: Optional[ClubOut] = None
    categorie_id: Optional[int] = None
    categorie: Optional[CategorieResponse] = None

    model_config = ConfigDict(from_attributes=True)


class EventListResponse(BaseModel):
    items: List[EventResponse]
    total: int
    page: int
    per_page: int
    pages: int


class EventFilters(BaseModel):
    club_id: Optional[int] = None
    categorie_id: Optional[int] = None
    type: Optional[EventType] = None
    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    upcoming: bool = False


# ===========================
# PARTICIPATION
# ===========================
class ParticipantOut(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    email: str
    date_participation: datetime


class ParticipationResponse(BaseModel):
    success: bool
    message: str
    participant_count: int
    user_id: int

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from app.competitions.models import GoalType


class SaisonBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    end_date: Optional[datetime] = None


class SaisonCreate(SaisonBase):
    pass


class SaisonUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    end_date: Optional[datetime] = None

    @field_validator('name')
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("Le nom de la saison est obligatoire")
        return v


class SaisonResponse(SaisonBase):
    id: int
    image: Optional[str] = None
    updated_at: Optional[datetime] = None
    competitions_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class CompetitionBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    points: int = Field(0, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    goal_type: GoalType = GoalType.EVENT_COUNT
    goal: int = Field(1, ge=1)
    saison_id: Optional[int] = None

    @field_validator('goal_type', mode='before')
    @classmethod
    def parse_goal_type(cls, v):
        return GoalType.parse(v)


class CompetitionCreate(CompetitionBase):
    @model_validator(mode='after')
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("La date de fin doit être postérieure à la date de début")
        return self


class CompetitionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    goal_type: Optional[GoalType] = None
    goal: Optional[int] = Field(None, ge=1)
    saison_id: Optional[int] = None

    @field_validator('goal_type', mode='before')
    @classmethod
    def parse_goal_type(cls, v):
        return GoalType.parse(v) if v is not None else v

    @field_validator('name', 'points', 'goal_type', 'goal')
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Ce champ ne peut pas être vidé")
        return v


class CompetitionResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    points: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    goal_type: str
    goal: int
    status: str
    saison_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MissionProgressResponse(BaseModel):
    id: int
    club_id: int
    competition_id: int
    competition_name: str
    goal_type: str
    goal: int
    progress: int
    is_completed: bool
    percentage: float


class LeaderboardEntry(BaseModel):
    rank: int
    club_id: int
    club_name: str
    points: int
    completed_missions: int


class RefreshResult(BaseModel):
    activated: List[int]
    deactivated: List[int]

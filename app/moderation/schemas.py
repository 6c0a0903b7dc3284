from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field


class IncidentOut(BaseModel):
    user_id: int
    field: str
    severity: str
    action: str
    censored_text: str
    timestamp: datetime


class ActivityOut(BaseModel):
    actor_id: int
    action: str
    target_type: str
    target_id: Optional[int] = None
    details: str = ""
    timestamp: datetime


class CommentStats(BaseModel):
    total: int
    today: int
    flagged: int


class SentimentStats(BaseModel):
    positive: float
    negative: float
    neutral: float
    total_comments: int


class MonthCount(BaseModel):
    month: str
    count: int


class PollSummary(BaseModel):
    summary: str
    source: str


class TextCheck(BaseModel):
    text: str = Field(..., max_length=5000)


class ToxicityResult(BaseModel):
    toxic: bool
    score: float
    toxic_words: List[str] = []
    reason: Optional[str] = None
    cleaned: Optional[str] = None

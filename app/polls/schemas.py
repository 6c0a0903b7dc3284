from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.polls.models import FLAGGED_PREFIX

MIN_QUESTION_LENGTH = 5
MIN_OPTIONS = 2
OPTION_MIN_LENGTH = 2
OPTION_MAX_LENGTH = 100


def check_options(contents: List[str]) -> List[str]:
    cleaned = [(c or "").strip() for c in contents]
    if len(cleaned) < MIN_OPTIONS:
        raise ValueError(f"Un sondage doit avoir au moins {MIN_OPTIONS} options")
    for content in cleaned:
        if not OPTION_MIN_LENGTH <= len(content) <= OPTION_MAX_LENGTH:
            raise ValueError(
                f"Chaque option doit contenir entre {OPTION_MIN_LENGTH} et {OPTION_MAX_LENGTH} caractères"
            )
    lowered = [c.lower() for c in cleaned]
    if len(set(lowered)) != len(lowered):
        raise ValueError("Les options doivent être uniques")
    return cleaned


def check_question(v: str) -> str:
    v = (v or "").strip()
    if len(v) < MIN_QUESTION_LENGTH:
        raise ValueError(f"La question doit contenir au moins {MIN_QUESTION_LENGTH} caractères")
    return v


class PollCreate(BaseModel):
    question: str = Field(..., max_length=255)
    club_id: int
    options: List[str]

    @field_validator('question')
    @classmethod
    def validate_question(cls, v):
        return check_question(v)

    @field_validator('options')
    @classmethod
    def validate_options(cls, v):
        return check_options(v)


class OptionIn(BaseModel):
    id: Optional[int] = None
    content: str


class PollUpdate(BaseModel):
    question: Optional[str] = Field(None, max_length=255)
    options: Optional[List[OptionIn]] = None

    @field_validator('question')
    @classmethod
    def validate_question(cls, v):
        return check_question(v) if v is not None else v

    @field_validator('options')
    @classmethod
    def validate_options(cls, v):
        if v is None:
            return v
        ids = [o.id for o in v if o.id is not None]
        if len(set(ids)) != len(ids):
            raise ValueError("Une option ne peut apparaître qu'une seule fois")
        contents = check_options([o.content for o in v])
        return [OptionIn(id=o.id, content=c) for o, c in zip(v, contents)]


class OptionResponse(BaseModel):
    id: int
    content: str
    model_config = ConfigDict(from_attributes=True)


class AuthorOut(BaseModel):
    id: int
    first_name: str
    last_name: str
    model_config = ConfigDict(from_attributes=True)


class PollClubOut(BaseModel):
    id: int
    name: str
    model_config = ConfigDict(from_attributes=True)


class PollResponse(BaseModel):
    id: int
    question: str
    created_at: datetime
    user_id: int
    club_id: int
    user: Optional[AuthorOut] = None
    club: Optional[PollClubOut] = None
    options: List[OptionResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PollListResponse(BaseModel):
    items: List[PollResponse]
    total: int
    page: int
    per_page: int
    pages: int


class OptionResult(BaseModel):
    id: int
    content: str
    votes: int
    percentage: float
    color: str


class PollResults(BaseModel):
    poll_id: int
    total_votes: int
    options: List[OptionResult]


class PollDetail(PollResponse):
    user_vote: Optional[int] = None
    results: Optional[PollResults] = None


# ===========================
# VOTES
# ===========================
class VoteCreate(BaseModel):
    choix_id: int


class VoteChange(VoteCreate):
    confirm: bool = False


class VoteResponse(BaseModel):
    id: int
    user_id: int
    sondage_id: int
    choix_id: int
    date_reponse: datetime
    model_config = ConfigDict(from_attributes=True)


# ===========================
# STATISTIQUES
# ===========================
class PollStats(BaseModel):
    total_polls: int
    total_votes: int
    total_comments: int
    polls_last_7_days: int


class TopRespondent(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    votes: int


class ParticipationStats(BaseModel):
    club_id: int
    total_votes: int
    unique_participants: int
    most_popular_poll: Optional[dict] = None


# ===========================
# COMMENTAIRES
# ===========================
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator('content')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError("Le commentaire ne peut pas être vide")
        # préfixe réservé aux commentaires masqués par la modération
        if v.strip().startswith(FLAGGED_PREFIX):
            raise ValueError("Ce texte est réservé à la modération")
        return v.strip()


class CommentResponse(BaseModel):
    id: int
    content: str
    date_comment: datetime
    updated_at: Optional[datetime] = None
    user_id: int
    sondage_id: int
    user: Optional[AuthorOut] = None
    flagged: bool = False

    model_config = ConfigDict(from_attributes=True)


class CommentListResponse(BaseModel):
    items: List[CommentResponse]
    total: int
    page: int
    per_page: int
    pages: int

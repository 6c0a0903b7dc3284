from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.session import Base


class GoalType(str, Enum):
    EVENT_COUNT = "EVENT_COUNT"
    EVENT_LIKES = "EVENT_LIKES"
    MEMBER_COUNT = "MEMBER_COUNT"

    @classmethod
    def parse(cls, value) -> "GoalType":
        """Accepte les anciens libellés (EVENTS_COUNT...), EVENT_COUNT par défaut"""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.EVENT_COUNT
        key = str(value).strip().upper()
        aliases = {
            "EVENTS_COUNT": cls.EVENT_COUNT,
            "EVENTS_LIKES": cls.EVENT_LIKES,
            "MEMBERS_COUNT": cls.MEMBER_COUNT,
        }
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            return cls.EVENT_COUNT


class CompetitionStatus(str, Enum):
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"


class Saison(Base):
    __tablename__ = "saisons"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    end_date = Column(DateTime, nullable=True)
    image = Column(String(500), nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Saison(id={self.id}, name='{self.name}')>"


class Competition(Base):
    __tablename__ = "competitions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    points = Column(Integer, default=0, nullable=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    goal_type = Column(String(20), default=GoalType.EVENT_COUNT.value, nullable=False)
    goal = Column(Integer, default=1, nullable=False)
    status = Column(String(20), default=CompetitionStatus.DEACTIVATED.value, nullable=False, index=True)

    saison_id = Column(Integer, ForeignKey('saisons.id'), nullable=True)
    saison = relationship("Saison", lazy="joined")

    def __repr__(self):
        return f"<Competition(id={self.id}, name='{self.name}', status='{self.status}')>"


class MissionProgress(Base):
    __tablename__ = "mission_progress"
    __table_args__ = (UniqueConstraint('club_id', 'competition_id', name='uq_progress_club_competition'),)

    id = Column(Integer, primary_key=True, index=True)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)
    competition_id = Column(Integer, ForeignKey('competitions.id'), nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    is_completed = Column(Boolean, default=False, nullable=False)

    club = relationship("Club", lazy="joined")
    competition = relationship("Competition", lazy="joined")

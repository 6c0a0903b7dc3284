from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from enum import Enum
from app.db.session import Base
from datetime import datetime


class EventType(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Categorie(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)

    def __repr__(self):
        return f"<Categorie(id={self.id}, name='{self.name}')>"


class Evenement(Base):
    __tablename__ = "evenements"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    type = Column(String(20), default=EventType.OPEN.value, nullable=False)
    description = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)
    location = Column(String(255), nullable=True)

    start_date = Column(DateTime, nullable=False, index=True)
    end_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)
    club = relationship("Club", lazy="joined")

    categorie_id = Column(Integer, ForeignKey('categories.id'), nullable=True)
    categorie = relationship("Categorie", lazy="joined")

    def __repr__(self):
        return f"<Evenement(id={self.id}, name='{self.name}', start_date='{self.start_date}')>"


class ParticipationEvent(Base):
    __tablename__ = "participation_event"
    __table_args__ = (UniqueConstraint('user_id', 'event_id', name='uq_participation_event'),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    event_id = Column(Integer, ForeignKey('evenements.id'), nullable=False, index=True)
    date_participation = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", lazy="joined")

    def __repr__(self):
        return f"<ParticipationEvent(user_id={self.user_id}, event_id={self.event_id})>"

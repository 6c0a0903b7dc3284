from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.session import Base


class ClubStatus(str, Enum):
    EN_ATTENTE = "en_attente"
    ACCEPTE = "accepte"
    REFUSE = "refuse"


# Même cycle de vie pour les demandes d'adhésion
MembershipStatus = ClubStatus


class Club(Base):
    __tablename__ = "clubs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    logo = Column(String(500), nullable=True)
    image = Column(String(500), nullable=True)
    status = Column(String(20), default=ClubStatus.EN_ATTENTE.value, nullable=False, index=True)
    points = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    president_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    president = relationship("User", lazy="joined")

    def __repr__(self):
        return f"<Club(id={self.id}, name='{self.name}', status='{self.status}')>"


class ParticipationMembre(Base):
    __tablename__ = "participation_membre"
    __table_args__ = (UniqueConstraint('user_id', 'club_id', name='uq_participation_user_club'),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)
    description = Column(Text, nullable=True)
    statut = Column(String(20), default=MembershipStatus.EN_ATTENTE.value, nullable=False)
    date_request = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", lazy="joined")
    club = relationship("Club", lazy="joined")

    def __repr__(self):
        return f"<ParticipationMembre(user_id={self.user_id}, club_id={self.club_id}, statut='{self.statut}')>"

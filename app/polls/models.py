from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.session import Base

# Préfixe des commentaires masqués par la modération
FLAGGED_PREFIX = "⚠️ Comment hidden: This content was flagged by our AI moderation system"


class Sondage(Base):
    __tablename__ = "sondages"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    club_id = Column(Integer, ForeignKey('clubs.id'), nullable=False, index=True)

    user = relationship("User", lazy="joined")
    club = relationship("Club", lazy="joined")
    options = relationship(
        "ChoixSondage",
        back_populates="sondage",
        cascade="all, delete-orphan",
        order_by="ChoixSondage.id",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Sondage(id={self.id}, club_id={self.club_id})>"


class ChoixSondage(Base):
    __tablename__ = "choix_sondage"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(String(100), nullable=False)
    sondage_id = Column(Integer, ForeignKey('sondages.id', ondelete="CASCADE"), nullable=False, index=True)

    sondage = relationship("Sondage", back_populates="options")


class Reponse(Base):
    __tablename__ = "reponses"
    __table_args__ = (UniqueConstraint('user_id', 'sondage_id', name='uq_reponse_user_sondage'),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    sondage_id = Column(Integer, ForeignKey('sondages.id', ondelete="CASCADE"), nullable=False, index=True)
    choix_id = Column(Integer, ForeignKey('choix_sondage.id', ondelete="CASCADE"), nullable=False)
    date_reponse = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", lazy="joined")


class Commentaire(Base):
    __tablename__ = "commentaires"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    date_comment = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=True)

    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    sondage_id = Column(Integer, ForeignKey('sondages.id', ondelete="CASCADE"), nullable=False, index=True)

    user = relationship("User", lazy="joined")
    sondage = relationship("Sondage", lazy="joined")

    def __repr__(self):
        return f"<Commentaire(id={self.id}, sondage_id={self.sondage_id}, user_id={self.user_id})>"

    @property
    def flagged(self) -> bool:
        return bool(self.content) and self.content.startswith(FLAGGED_PREFIX)

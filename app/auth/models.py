# app/auth/models.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean

from app.db.session import Base


class RoleEnum(str, Enum):
    NON_MEMBRE = "NON_MEMBRE"
    MEMBRE = "MEMBRE"
    PRESIDENT_CLUB = "PRESIDENT_CLUB"
    ADMINISTRATEUR = "ADMINISTRATEUR"

    @classmethod
    def values(cls) -> list[str]:
        return [role.value for role in cls]


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), unique=True, nullable=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), default=RoleEnum.NON_MEMBRE.value, nullable=False)
    profile_picture = Column(String(500), nullable=True)
    status = Column(String(20), default=UserStatus.ACTIVE.value, nullable=False)

    is_verified = Column(Boolean, default=False, nullable=False)
    confirmation_token = Column(String(20), nullable=True)
    confirmation_token_expires_at = Column(DateTime, nullable=True)
    verification_attempts = Column(Integer, default=0, nullable=False)
    last_code_sent_time = Column(DateTime, nullable=True)

    warning_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    @property
    def full_name(self):
        """Propriété calculée pour le nom complet"""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMINISTRATEUR.value

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

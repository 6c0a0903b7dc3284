import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import password
from app.auth.jwt_handler import create_access_token
from app.auth.models import User, RoleEnum, UserStatus
from app.auth.schemas import UserRegister
from app.utils import email
from app.utils.code import generate_verification_code
from app.utils.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    ServiceError,
)
from app.utils.uploads import generate_default_avatar_url

logger = logging.getLogger(__name__)

MAX_VERIFICATION_ATTEMPTS = 5
VERIFICATION_EXPIRY = timedelta(hours=2)
RESEND_COOLDOWN = timedelta(minutes=1)


class InvalidCredentialsError(ServiceError):
    status_code = 401


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email_address: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email_address.lower()))
        return result.scalars().first()

    async def _get_or_404(self, email_address: str) -> User:
        user = await self.get_by_email(email_address)
        if not user:
            raise NotFoundError("Utilisateur non trouvé")
        return user

    def _issue_code(self, user: User) -> str:
        code = generate_verification_code()
        now = datetime.utcnow()
        user.confirmation_token = code
        user.confirmation_token_expires_at = now + VERIFICATION_EXPIRY
        user.last_code_sent_time = now
        return code

    @staticmethod
    def _code_matches(user: User, code: str) -> bool:
        if not user.confirmation_token or user.confirmation_token != code:
            return False
        expires = user.confirmation_token_expires_at
        return expires is not None and expires > datetime.utcnow()

    async def register(self, data: UserRegister) -> User:
        filters = [User.email == data.email.lower()]
        if data.phone:
            filters.append(User.phone == data.phone)
        result = await self.db.execute(select(User).where(or_(*filters)))
        existing = result.scalars().first()
        if existing:
            if existing.email == data.email.lower():
                raise ConflictError("Email déjà enregistré")
            raise ConflictError("Téléphone déjà enregistré")

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email.lower(),
            phone=data.phone,
            hashed_password=password.hash_password(data.password),
            role=RoleEnum.NON_MEMBRE.value,
            status=UserStatus.INACTIVE.value,
            is_verified=False,
            verification_attempts=0,
            profile_picture=generate_default_avatar_url(data.first_name, data.last_name),
        )
        code = self._issue_code(user)
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"Utilisateur enregistré: id={user.id}, email={user.email}")

        subject, body = email.verification_email(user.full_name, code)
        await email.notify(subject, user.email, body)
        return user

    async def verify_email(self, email_address: str, code: str) -> User:
        user = await self._get_or_404(email_address)
        if user.is_verified:
            raise ConflictError("Compte déjà vérifié")
        if user.verification_attempts >= MAX_VERIFICATION_ATTEMPTS:
            raise RateLimitedError("Trop de tentatives. Demandez un nouveau code.")

        if not self._code_matches(user, code):
            user.verification_attempts += 1
            await self.db.commit()
            remaining = MAX_VERIFICATION_ATTEMPTS - user.verification_attempts
            logger.warning(f"Code de vérification invalide pour {user.email} ({remaining} restants)")
            raise ServiceError(f"Code invalide ou expiré. Tentatives restantes: {remaining}")

        user.is_verified = True
        user.status = UserStatus.ACTIVE.value
        user.confirmation_token = None
        user.confirmation_token_expires_at = None
        user.verification_attempts = 0
        await self.db.commit()
        logger.info(f"Compte vérifié: {user.email}")
        return user

    async def resend_verification(self, email_address: str) -> None:
        user = await self._get_or_404(email_address)
        if user.is_verified:
            raise ConflictError("Compte déjà vérifié")
        if user.last_code_sent_time and datetime.utcnow() - user.last_code_sent_time < RESEND_COOLDOWN:
            raise RateLimitedError("Veuillez patienter avant de demander un nouveau code")

        code = self._issue_code(user)
        user.verification_attempts = 0
        await self.db.commit()

        subject, body = email.verification_email(user.full_name, code)
        await email.notify(subject, user.email, body)

    async def login(self, email_address: str, plain_password: str) -> tuple[str, User]:
        user = await self.get_by_email(email_address)
        if not user or not password.verify_password(plain_password, user.hashed_password):
            raise InvalidCredentialsError("Email ou mot de passe incorrect")
        if not user.is_verified:
            raise PermissionDeniedError("Compte non vérifié. Veuillez vérifier votre email.")
        if not user.is_active:
            raise PermissionDeniedError("Compte inactif. Contactez l'administrateur.")

        user.last_login_at = datetime.utcnow()
        await self.db.commit()

        token = create_access_token({"user_id": user.id, "role": user.role})
        logger.info(f"Connexion réussie: {user.email}")
        return token, user

    async def forgot_password(self, email_address: str) -> None:
        user = await self._get_or_404(email_address)
        code = self._issue_code(user)
        user.verification_attempts = 0
        await self.db.commit()

        subject, body = email.password_reset_email(user.full_name, code)
        await email.notify(subject, user.email, body)

    async def _check_reset_code(self, user: User, code: str) -> bool:
        """Les échecs sont comptés ; au-delà de la limite il faut redemander un code."""
        if user.verification_attempts >= MAX_VERIFICATION_ATTEMPTS:
            raise RateLimitedError("Trop de tentatives. Demandez un nouveau code.")
        if self._code_matches(user, code):
            return True
        user.verification_attempts += 1
        await self.db.commit()
        logger.warning(f"Code de réinitialisation invalide pour {user.email}")
        return False

    async def verify_reset_code(self, email_address: str, code: str) -> bool:
        user = await self.get_by_email(email_address)
        return bool(user and await self._check_reset_code(user, code))

    async def reset_password(self, email_address: str, code: str, new_password: str) -> None:
        user = await self._get_or_404(email_address)
        if not await self._check_reset_code(user, code):
            raise ServiceError("Code invalide ou expiré")

        user.hashed_password = password.hash_password(new_password)
        user.confirmation_token = None
        user.confirmation_token_expires_at = None
        user.verification_attempts = 0
        await self.db.commit()
        logger.info(f"Mot de passe réinitialisé: {user.email}")

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not password.verify_password(current_password, user.hashed_password):
            raise InvalidCredentialsError("Mot de passe actuel incorrect")
        user.hashed_password = password.hash_password(new_password)
        await self.db.commit()

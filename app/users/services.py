from typing import Optional
import logging

from sqlalchemy import select, or_, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User, RoleEnum, UserStatus
from app.clubs.models import Club, ParticipationMembre
from app.events.models import ParticipationEvent
from app.moderation import profanity
from app.moderation.services import IncidentService
from app.polls.models import Reponse, Commentaire
from app.users.schemas import ProfileUpdate, UserAdminUpdate
from app.utils import email
from app.utils.errors import NotFoundError, ConflictError, ValidationFailedError
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

MAX_WARNINGS = 3


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise NotFoundError("Utilisateur non trouvé")
    return user


async def list_users(
    db: AsyncSession,
    page: int = 1,
    per_page: int = 10,
    search: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> dict:
    """Lister les utilisateurs avec recherche (nom, prénom, email) et filtres"""
    query = select(User).order_by(User.created_at.desc(), User.id.desc())
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    if role:
        query = query.where(User.role == role)
    if status:
        query = query.where(User.status == status)
    return await paginate(db, query, page, per_page)


async def _ensure_phone_free(db: AsyncSession, phone: Optional[str], user_id: int) -> None:
    if not phone:
        return
    result = await db.execute(select(User.id).where(User.phone == phone, User.id != user_id))
    if result.first():
        raise ConflictError("Téléphone déjà enregistré")


async def admin_update_user(db: AsyncSession, user_id: int, data: UserAdminUpdate) -> User:
    user = await get_user(db, user_id)
    updates = data.model_dump(exclude_unset=True)
    await _ensure_phone_free(db, updates.get("phone"), user.id)

    for field, value in updates.items():
        if field in ("role", "status") and value is not None:
            value = value.value
        setattr(user, field, value)

    await db.commit()
    logger.info(f"Utilisateur {user_id} mis à jour par un administrateur: {list(updates)}")
    return user


async def delete_user(db: AsyncSession, user_id: int) -> None:
    user = await get_user(db, user_id)
    result = await db.execute(select(Club.id).where(Club.president_id == user.id))
    if result.first():
        raise ConflictError("Impossible de supprimer le président d'un club")

    await db.execute(delete(ParticipationMembre).where(ParticipationMembre.user_id == user.id))
    await db.execute(delete(ParticipationEvent).where(ParticipationEvent.user_id == user.id))
    await db.execute(delete(Reponse).where(Reponse.user_id == user.id))
    await db.execute(delete(Commentaire).where(Commentaire.user_id == user.id))
    await db.delete(user)
    await db.commit()
    logger.info(f"Utilisateur supprimé: id={user_id}")


async def add_content_warning(db: AsyncSession, user: User, content_type: str = "profil") -> User:
    """
    Ajoute un avertissement et en informe l'utilisateur par email.
    Au troisième, le compte est désactivé.
    """
    user.warning_count = (user.warning_count or 0) + 1
    deactivated = user.warning_count >= MAX_WARNINGS
    if deactivated:
        user.status = UserStatus.INACTIVE.value
        logger.warning(f"Compte désactivé après {user.warning_count} avertissements: user_id={user.id}")
    await db.commit()

    subject, body = email.content_warning_email(user.full_name, user.warning_count, content_type, deactivated)
    await email.notify(subject, user.email, body)
    return user


async def reset_warnings(db: AsyncSession, user_id: int) -> User:
    user = await get_user(db, user_id)
    user.warning_count = 0
    user.status = UserStatus.ACTIVE.value
    await db.commit()
    return user


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    """Mise à jour du profil avec filtrage des grossièretés sur les noms"""
    updates = data.model_dump(exclude_unset=True)

    for field in ("first_name", "last_name"):
        value = updates.get(field)
        if value and profanity.contains_profanity(value):
            label = "First name" if field == "first_name" else "Last name"
            await IncidentService.record(user.id, label, value, action="Profile update rejected")
            await add_content_warning(db, user)
            raise ValidationFailedError(f"Le champ {field} contient un langage inapproprié")

    await _ensure_phone_free(db, updates.get("phone"), user.id)
    for field, value in updates.items():
        setattr(user, field, value)
    await db.commit()
    return user


async def set_profile_picture(db: AsyncSession, user: User, url: str) -> User:
    user.profile_picture = url
    await db.commit()
    return user


async def user_stats(db: AsyncSession) -> dict:
    by_role = dict.fromkeys(RoleEnum.values(), 0)
    rows = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
    by_role.update({role: count for role, count in rows.all()})

    by_status = {s.value: 0 for s in UserStatus}
    rows = await db.execute(select(User.status, func.count(User.id)).group_by(User.status))
    by_status.update({status: count for status, count in rows.all()})

    verified = (await db.execute(select(func.count(User.id)).where(User.is_verified.is_(True)))).scalar_one()
    total = sum(by_role.values())
    return {
        "total": total,
        "by_role": by_role,
        "by_status": by_status,
        "verified": verified,
        "unverified": total - verified,
    }

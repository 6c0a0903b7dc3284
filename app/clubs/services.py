import logging
from typing import Optional

from sqlalchemy import select, func, or_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User, RoleEnum
from app.clubs.models import Club, ClubStatus, ParticipationMembre, MembershipStatus
from app.clubs.schemas import ClubCreate, ClubUpdate
from app.competitions.models import MissionProgress, GoalType
from app.competitions.services import MissionProgressService
from app.events.models import Evenement, ParticipationEvent
from app.polls.models import Sondage, ChoixSondage, Reponse, Commentaire
from app.utils import email
from app.utils.errors import NotFoundError, ConflictError, PermissionDeniedError
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)


def can_manage(user: User, club: Club) -> bool:
    return user.is_admin or club.president_id == user.id


async def is_member(db: AsyncSession, user_id: int, club_id: int) -> bool:
    """Membre accepté ou président du club"""
    result = await db.execute(select(Club.president_id).where(Club.id == club_id))
    president_id = result.scalar_one_or_none()
    if president_id is None:
        return False
    if president_id == user_id:
        return True
    result = await db.execute(
        select(ParticipationMembre.id).where(
            ParticipationMembre.user_id == user_id,
            ParticipationMembre.club_id == club_id,
            ParticipationMembre.statut == MembershipStatus.ACCEPTE.value
        )
    )
    return result.first() is not None


class ClubService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, club_id: int) -> Club:
        result = await self.db.execute(
            select(Club).where(Club.id == club_id).execution_options(populate_existing=True)
        )
        club = result.scalars().first()
        if not club:
            raise NotFoundError("Club non trouvé")
        return club

    async def get_managed(self, club_id: int, user: User) -> Club:
        club = await self.get(club_id)
        if not can_manage(user, club):
            raise PermissionDeniedError("Seul le président du club ou un administrateur peut effectuer cette action")
        return club

    async def list_clubs(
        self,
        page: int = 1,
        per_page: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
        president_id: Optional[int] = None,
    ) -> dict:
        query = select(Club).order_by(Club.created_at.desc(), Club.id.desc())
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Club.name.ilike(pattern), Club.description.ilike(pattern)))
        if status:
            query = query.where(Club.status == status)
        if president_id is not None:
            query = query.where(Club.president_id == president_id)
        return await paginate(self.db, query, page, per_page)

    async def _ensure_name_free(self, name: str, club_id: Optional[int] = None) -> None:
        query = select(Club.id).where(func.lower(Club.name) == name.strip().lower())
        if club_id is not None:
            query = query.where(Club.id != club_id)
        if (await self.db.execute(query)).first():
            raise ConflictError("Un club avec ce nom existe déjà")

    async def create(self, user: User, data: ClubCreate) -> Club:
        await self._ensure_name_free(data.name)
        club = Club(
            name=data.name.strip(),
            description=data.description,
            status=ClubStatus.EN_ATTENTE.value,
            points=0,
            president_id=user.id,
        )
        self.db.add(club)
        await self.db.commit()
        logger.info(f"Club créé: id={club.id}, nom={club.name}, président={user.id}")
        return await self.get(club.id)

    async def update(self, club_id: int, user: User, data: ClubUpdate) -> Club:
        club = await self.get_managed(club_id, user)
        updates = data.model_dump(exclude_unset=True)
        if updates.get("name"):
            await self._ensure_name_free(updates["name"], club.id)
            updates["name"] = updates["name"].strip()
        for field, value in updates.items():
            setattr(club, field, value)
        await self.db.commit()
        return await self.get(club.id)

    async def set_images(self, club: Club, logo: Optional[str] = None, image: Optional[str] = None) -> Club:
        if logo:
            club.logo = logo
        if image:
            club.image = image
        await self.db.commit()
        return await self.get(club.id)

    async def delete(self, club_id: int, user: User) -> None:
        club = await self.get_managed(club_id, user)

        poll_ids = select(Sondage.id).where(Sondage.club_id == club.id)
        await self.db.execute(delete(Reponse).where(Reponse.sondage_id.in_(poll_ids)))
        await self.db.execute(delete(Commentaire).where(Commentaire.sondage_id.in_(poll_ids)))
        await self.db.execute(delete(ChoixSondage).where(ChoixSondage.sondage_id.in_(poll_ids)))
        await self.db.execute(delete(Sondage).where(Sondage.club_id == club.id))

        event_ids = select(Evenement.id).where(Evenement.club_id == club.id)
        await self.db.execute(delete(ParticipationEvent).where(ParticipationEvent.event_id.in_(event_ids)))
        await self.db.execute(delete(Evenement).where(Evenement.club_id == club.id))

        await self.db.execute(delete(MissionProgress).where(MissionProgress.club_id == club.id))
        await self.db.execute(delete(ParticipationMembre).where(ParticipationMembre.club_id == club.id))
        await self.db.delete(club)
        await self.db.commit()
        logger.info(f"Club supprimé: id={club_id}")

    async def approve(self, club_id: int) -> Club:
        """Accepte le club, promeut son président et initialise ses missions"""
        club = await self.get(club_id)
        club.status = ClubStatus.ACCEPTE.value
        president = club.president
        if president and not president.is_admin:
            president.role = RoleEnum.PRESIDENT_CLUB.value

        await MissionProgressService(self.db).initialize_for_club(club.id)
        await self.db.commit()
        logger.info(f"Club accepté: id={club.id}")
        return await self.get(club.id)

    async def reject(self, club_id: int) -> Club:
        club = await self.get(club_id)
        club.status = ClubStatus.REFUSE.value
        await self.db.commit()
        logger.info(f"Club refusé: id={club.id}")
        return await self.get(club.id)

    async def popularity(self, limit: int = 10) -> list[tuple[Club, int]]:
        """Clubs classés par nombre de membres acceptés"""
        members = (
            select(ParticipationMembre.club_id, func.count(ParticipationMembre.id).label("n"))
            .where(ParticipationMembre.statut == MembershipStatus.ACCEPTE.value)
            .group_by(ParticipationMembre.club_id)
            .subquery()
        )
        count = func.coalesce(members.c.n, 0)
        result = await self.db.execute(
            select(Club, count)
            .outerjoin(members, members.c.club_id == Club.id)
            .where(Club.status == ClubStatus.ACCEPTE.value)
            .order_by(count.desc(), Club.name.asc())
            .limit(limit)
        )
        return [(club, n) for club, n in result.unique().all()]


class MembershipService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.clubs = ClubService(db)

    async def get(self, request_id: int) -> ParticipationMembre:
        result = await self.db.execute(
            select(ParticipationMembre)
            .where(ParticipationMembre.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalars().first()
        if not request:
            raise NotFoundError("Demande d'adhésion non trouvée")
        return request

    async def request(self, user: User, club_id: int, description: Optional[str] = None) -> ParticipationMembre:
        club = await self.clubs.get(club_id)
        if club.status != ClubStatus.ACCEPTE.value:
            raise ConflictError("Ce club n'accepte pas encore de membres")
        if club.president_id == user.id:
            raise ConflictError("Le président ne peut pas demander à rejoindre son propre club")

        existing = await self.db.execute(
            select(ParticipationMembre.id).where(
                ParticipationMembre.user_id == user.id,
                ParticipationMembre.club_id == club_id
            )
        )
        if existing.first():
            raise ConflictError("Une demande existe déjà pour ce club")

        request = ParticipationMembre(
            user_id=user.id,
            club_id=club_id,
            description=description,
            statut=MembershipStatus.EN_ATTENTE.value,
        )
        self.db.add(request)
        await self.db.commit()
        logger.info(f"Demande d'adhésion: user_id={user.id}, club_id={club_id}")
        return await self.get(request.id)

    async def cancel(self, user: User, request_id: int) -> None:
        request = await self.get(request_id)
        if request.user_id != user.id:
            raise PermissionDeniedError("Cette demande ne vous appartient pas")
        if request.statut != MembershipStatus.EN_ATTENTE.value:
            raise ConflictError("Seule une demande en attente peut être annulée")
        await self.db.delete(request)
        await self.db.commit()

    async def decide(self, request_id: int, user: User, accept: bool) -> ParticipationMembre:
        request = await self.get(request_id)
        club = await self.clubs.get_managed(request.club_id, user)
        if request.statut != MembershipStatus.EN_ATTENTE.value:
            raise ConflictError("Cette demande a déjà été traitée")

        if accept:
            request.statut = MembershipStatus.ACCEPTE.value
            member = request.user
            if member.role == RoleEnum.NON_MEMBRE.value:
                member.role = RoleEnum.MEMBRE.value
            await self.db.commit()
            await MissionProgressService(self.db).increment_progress(club.id, GoalType.MEMBER_COUNT)
        else:
            request.statut = MembershipStatus.REFUSE.value
            await self.db.commit()

        logger.info(f"Demande {request_id} {'acceptée' if accept else 'refusée'} (club {club.id})")
        subject, body = email.membership_email(request.user.full_name, club.name, accept)
        await email.notify(subject, request.user.email, body)
        return await self.get(request_id)

    async def _list(self, *conditions) -> list[ParticipationMembre]:
        result = await self.db.execute(
            select(ParticipationMembre)
            .where(*conditions)
            .order_by(ParticipationMembre.date_request.desc())
        )
        return list(result.scalars().unique().all())

    async def pending(self, club_id: int) -> list[ParticipationMembre]:
        return await self._list(
            ParticipationMembre.club_id == club_id,
            ParticipationMembre.statut == MembershipStatus.EN_ATTENTE.value
        )

    async def members(self, club_id: int) -> list[ParticipationMembre]:
        return await self._list(
            ParticipationMembre.club_id == club_id,
            ParticipationMembre.statut == MembershipStatus.ACCEPTE.value
        )

    async def for_user(self, user_id: int) -> list[ParticipationMembre]:
        return await self._list(ParticipationMembre.user_id == user_id)

    async def counts(self, club_id: int) -> dict:
        result = await self.db.execute(
            select(ParticipationMembre.statut, func.count(ParticipationMembre.id))
            .where(ParticipationMembre.club_id == club_id)
            .group_by(ParticipationMembre.statut)
        )
        by_status = dict(result.all())
        pending = by_status.get(MembershipStatus.EN_ATTENTE.value, 0)
        accepted = by_status.get(MembershipStatus.ACCEPTE.value, 0)
        refused = by_status.get(MembershipStatus.REFUSE.value, 0)
        return {"pending": pending, "accepted": accepted, "refused": refused, "total": pending + accepted + refused}

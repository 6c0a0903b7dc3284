import logging
from calendar import monthrange
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, or_, and_, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.clubs.models import Club, ClubStatus
from app.clubs.services import can_manage, is_member
from app.competitions.models import GoalType
from app.competitions.services import MissionProgressService
from app.events.models import Evenement, Categorie, ParticipationEvent, EventType
from app.events.schemas import EventCreate, EventUpdate, EventFilters, CategorieCreate
from app.utils.dates import naive_utc
from app.utils.errors import NotFoundError, ConflictError, PermissionDeniedError, ValidationFailedError
from app.utils.pagination import paginate


logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, categorie_id: int) -> Categorie:
        result = await self.db.execute(select(Categorie).where(Categorie.id == categorie_id))
        categorie = result.scalars().first()
        if not categorie:
            raise NotFoundError("Catégorie non trouvée")
        return categorie

    async def list_all(self) -> list[Categorie]:
        result = await self.db.execute(select(Categorie).order_by(Categorie.name.asc()))
        return list(result.scalars().all())

    async def _ensure_name_free(self, name: str, categorie_id: Optional[int] = None) -> None:
        query = select(Categorie.id).where(func.lower(Categorie.name) == name.strip().lower())
        if categorie_id is not None:
            query = query.where(Categorie.id != categorie_id)
        if (await self.db.execute(query)).first():
            raise ConflictError("Cette catégorie existe déjà")

    async def create(self, data: CategorieCreate) -> Categorie:
        await self._ensure_name_free(data.name)
        categorie = Categorie(name=data.name.strip())
        self.db.add(categorie)
        await self.db.commit()
        await self.db.refresh(categorie)
        return categorie

    async def update(self, categorie_id: int, data: CategorieCreate) -> Categorie:
        categorie = await self.get(categorie_id)
        await self._ensure_name_free(data.name, categorie.id)
        categorie.name = data.name.strip()
        await self.db.commit()
        return categorie

    async def delete(self, categorie_id: int) -> None:
        categorie = await self.get(categorie_id)
        used = await self.db.execute(select(Evenement.id).where(Evenement.categorie_id == categorie.id).limit(1))
        if used.first():
            raise ConflictError("Catégorie utilisée par des événements")
        await self.db.delete(categorie)
        await self.db.commit()

    async def stats(self) -> list[dict]:
        """Nombre d'événements par catégorie"""
        result = await self.db.execute(
            select(Categorie.id, Categorie.name, func.count(Evenement.id))
            .outerjoin(Evenement, Evenement.categorie_id == Categorie.id)
            .group_by(Categorie.id, Categorie.name)
            .order_by(func.count(Evenement.id).desc(), Categorie.name.asc())
        )
        return [{"id": cid, "name": name, "events_count": count} for cid, name, count in result.all()]


class EventService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_event(self, event_id: int) -> Evenement:
        result = await self.db.execute(
            select(Evenement).where(Evenement.id == event_id).execution_options(populate_existing=True)
        )
        event = result.scalars().first()
        if not event:
            raise NotFoundError("Événement non trouvé")
        return event

    async def _managed_event(self, event_id: int, user: User) -> Evenement:
        event = await self.get_event(event_id)
        if not can_manage(user, event.club):
            raise PermissionDeniedError("Seul le président du club ou un administrateur peut modifier cet événement")
        return event

    async def _check_categorie(self, categorie_id: Optional[int]) -> None:
        if categorie_id is not None:
            await CategoryService(self.db).get(categorie_id)

    async def create_event(self, data: EventCreate, user: User, image: Optional[str] = None) -> Evenement:
        club = (await self.db.execute(select(Club).where(Club.id == data.club_id))).scalars().first()
        if not club:
            raise NotFoundError("Club non trouvé")
        if not can_manage(user, club):
            raise PermissionDeniedError("Seul le président du club ou un administrateur peut créer un événement")
        if club.status != ClubStatus.ACCEPTE.value:
            raise ConflictError("Le club doit être accepté pour organiser des événements")
        await self._check_categorie(data.categorie_id)

        event = Evenement(
            name=data.name,
            type=data.type.value,
            description=data.description,
            location=data.location,
            start_date=naive_utc(data.start_date),
            end_date=naive_utc(data.end_date),
            club_id=club.id,
            categorie_id=data.categorie_id,
            image=image,
        )
        self.db.add(event)
        await self.db.commit()
        logger.info(f"Event created: id={event.id}, name={event.name}, club_id={club.id}")

        completed = await MissionProgressService(self.db).increment_progress(club.id, GoalType.EVENT_COUNT)
        if completed:
            logger.info(f"Missions terminées par le club {club.id}: {completed}")
        return await self.get_event(event.id)

    async def update_event(self, event_id: int, data: EventUpdate, user: User, image: Optional[str] = None) -> Evenement:
        event = await self._managed_event(event_id, user)
        updates = data.model_dump(exclude_unset=True)
        if "categorie_id" in updates:
            await self._check_categorie(updates["categorie_id"])

        for field, value in updates.items():
            if field in ("start_date", "end_date"):
                value = naive_utc(value)
            elif field == "type" and value is not None:
                value = value.value
            setattr(event, field, value)
        if image:
            event.image = image

        if event.end_date <= event.start_date:
            raise ValidationFailedError("La date de fin doit être postérieure à la date de début")

        await self.db.commit()
        return await self.get_event(event.id)

    async def delete_event(self, event_id: int, user: User) -> None:
        event = await self._managed_event(event_id, user)
        await self.db.execute(delete(ParticipationEvent).where(ParticipationEvent.event_id == event.id))
        await self.db.delete(event)
        await self.db.commit()
        logger.info(f"Event deleted: id={event_id}")

    async def get_events(self, page: int = 1, per_page: int = 10, filters: Optional[EventFilters] = None) -> dict:
        query = select(Evenement).order_by(Evenement.start_date.asc(), Evenement.id.asc())

        if filters:
            if filters.club_id is not None:
                query = query.where(Evenement.club_id == filters.club_id)
            if filters.categorie_id is not None:
                query = query.where(Evenement.categorie_id == filters.categorie_id)
            if filters.type:
                query = query.where(Evenement.type == filters.type.value)
            if filters.date_from:
                query = query.where(Evenement.end_date >= naive_utc(filters.date_from))
            if filters.date_to:
                query = query.where(Evenement.start_date <= naive_utc(filters.date_to))
            if filters.upcoming:
                query = query.where(Evenement.start_date >= datetime.utcnow())
            if filters.search:
                search = f"%{filters.search}%"
                query = query.where(
                    or_(
                        Evenement.name.ilike(search),
                        Evenement.description.ilike(search),
                        Evenement.location.ilike(search)
                    )
                )

        page_data = await paginate(self.db, query, page, per_page)
        logger.info(f"Total events: {page_data['total']}, Returned events count: {len(page_data['items'])}")
        return page_data

    async def calendar(self, year: int, month: int, club_id: Optional[int] = None) -> dict[str, list[Evenement]]:
        """Événements qui chevauchent le mois, regroupés par jour (date ISO)"""
        month_start = datetime(year, month, 1)
        month_end = month_start + timedelta(days=monthrange(year, month)[1])

        query = (
            select(Evenement)
            .where(and_(Evenement.start_date < month_end, Evenement.end_date >= month_start))
            .order_by(Evenement.start_date.asc())
        )
        if club_id is not None:
            query = query.where(Evenement.club_id == club_id)
        events = (await self.db.execute(query)).scalars().unique().all()

        days: dict[str, list[Evenement]] = {}
        for event in events:
            day = max(event.start_date, month_start).date()
            last = min(event.end_date, month_end - timedelta(microseconds=1)).date()
            while day <= last:
                days.setdefault(day.isoformat(), []).append(event)
                day += timedelta(days=1)
        return dict(sorted(days.items()))

    # ----- Participation -----

    async def participant_count(self, event_id: int) -> int:
        result = await self.db.execute(
            select(func.count(ParticipationEvent.id)).where(ParticipationEvent.event_id == event_id)
        )
        return result.scalar_one()

    async def join_event(self, event_id: int, user: User) -> int:
        event = await self.get_event(event_id)
        if event.end_date < datetime.utcnow():
            raise ConflictError("Cet événement est terminé")
        if event.type == EventType.CLOSED.value and not user.is_admin and not await is_member(self.db, user.id, event.club_id):
            raise PermissionDeniedError("Événement réservé aux membres du club")

        existing = await self.db.execute(
            select(ParticipationEvent.id).where(
                ParticipationEvent.event_id == event_id,
                ParticipationEvent.user_id == user.id
            )
        )
        if existing.first():
            raise ConflictError("Vous participez déjà à cet événement")

        self.db.add(ParticipationEvent(user_id=user.id, event_id=event_id))
        await self.db.commit()
        logger.info(f"User {user.id} joined event {event_id}")
        return await self.participant_count(event_id)

    async def cancel_participation(self, event_id: int, user: User) -> int:
        await self.get_event(event_id)
        result = await self.db.execute(
            delete(ParticipationEvent).where(
                ParticipationEvent.event_id == event_id,
                ParticipationEvent.user_id == user.id
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Vous ne participez pas à cet événement")
        await self.db.commit()
        logger.info(f"User {user.id} left event {event_id}")
        return await self.participant_count(event_id)

    async def participants(self, event_id: int) -> list[dict]:
        await self.get_event(event_id)
        result = await self.db.execute(
            select(ParticipationEvent)
            .where(ParticipationEvent.event_id == event_id)
            .order_by(ParticipationEvent.date_participation.asc())
        )
        return [
            {
                "user_id": p.user.id,
                "first_name": p.user.first_name,
                "last_name": p.user.last_name,
                "email": p.user.email,
                "date_participation": p.date_participation,
            }
            for p in result.scalars().unique().all()
        ]

    async def user_events(self, user_id: int) -> list[Evenement]:
        result = await self.db.execute(
            select(Evenement)
            .join(ParticipationEvent, ParticipationEvent.event_id == Evenement.id)
            .where(ParticipationEvent.user_id == user_id)
            .order_by(Evenement.start_date.asc())
        )
        return list(result.scalars().unique().all())

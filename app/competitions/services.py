import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.clubs.models import Club, ClubStatus
from app.competitions.models import Saison, Competition, MissionProgress, GoalType, CompetitionStatus
from app.competitions.schemas import (
    SaisonCreate, SaisonUpdate, CompetitionCreate, CompetitionUpdate
)
from app.utils.dates import naive_utc
from app.utils.errors import NotFoundError, ValidationFailedError

logger = logging.getLogger(__name__)


def compute_status(start_date: Optional[datetime], end_date: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Une compétition est active strictement entre ses dates de début et de fin"""
    if start_date is None or end_date is None:
        return CompetitionStatus.DEACTIVATED.value
    now = now or datetime.utcnow()
    if start_date < now < end_date:
        return CompetitionStatus.ACTIVATED.value
    return CompetitionStatus.DEACTIVATED.value


class MissionProgressService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_row(self, club_id: int, competition_id: int) -> Optional[MissionProgress]:
        result = await self.db.execute(
            select(MissionProgress).where(
                MissionProgress.club_id == club_id,
                MissionProgress.competition_id == competition_id
            )
        )
        return result.scalars().first()

    async def ensure_rows_for_competition(self, competition: Competition) -> int:
        """Crée une ligne de progression pour chaque club accepté qui n'en a pas"""
        result = await self.db.execute(select(Club.id).where(Club.status == ClubStatus.ACCEPTE.value))
        club_ids = result.scalars().all()
        existing = await self.db.execute(
            select(MissionProgress.club_id).where(MissionProgress.competition_id == competition.id)
        )
        known = set(existing.scalars().all())

        created = 0
        for club_id in club_ids:
            if club_id not in known:
                self.db.add(MissionProgress(club_id=club_id, competition_id=competition.id, progress=0, is_completed=False))
                created += 1
        await self.db.flush()
        if created:
            logger.info(f"{created} progression(s) initialisée(s) pour la compétition {competition.id}")
        return created

    async def initialize_for_club(self, club_id: int) -> int:
        """Crée les lignes de progression d'un club pour toutes les compétitions actives"""
        result = await self.db.execute(
            select(Competition.id).where(Competition.status == CompetitionStatus.ACTIVATED.value)
        )
        created = 0
        for competition_id in result.scalars().all():
            if not await self._get_row(club_id, competition_id):
                self.db.add(MissionProgress(club_id=club_id, competition_id=competition_id, progress=0, is_completed=False))
                created += 1
        await self.db.flush()
        return created

    async def reset_for_competition(self, competition_id: int) -> None:
        await self.db.execute(
            update(MissionProgress)
            .where(MissionProgress.competition_id == competition_id)
            .values(progress=0, is_completed=False)
            .execution_options(synchronize_session="fetch")
        )

    async def increment_progress(self, club_id: int, goal_type: GoalType | str, amount: int = 1) -> list[int]:
        """
        Fait avancer la progression du club sur toutes les compétitions actives
        du type d'objectif donné. Retourne les ids des compétitions terminées
        par cet appel ; leurs points sont ajoutés au club.
        """
        goal_type = GoalType.parse(goal_type)
        result = await self.db.execute(
            select(Competition).where(
                Competition.status == CompetitionStatus.ACTIVATED.value,
                Competition.goal_type == goal_type.value
            )
        )
        competitions = result.scalars().unique().all()

        completed = []
        for competition in competitions:
            row = await self._get_row(club_id, competition.id)
            if row is None:
                row = MissionProgress(club_id=club_id, competition_id=competition.id, progress=0, is_completed=False)
                self.db.add(row)
            elif row.is_completed:
                continue

            row.progress = max(0, row.progress + amount)
            if row.progress >= competition.goal:
                row.is_completed = True
                completed.append(competition.id)
                await self._award_points(club_id, competition)

        await self.db.commit()
        return completed

    async def _award_points(self, club_id: int, competition: Competition) -> None:
        if competition.points <= 0:
            return
        club = (await self.db.execute(select(Club).where(Club.id == club_id))).scalars().first()
        if club:
            club.points = (club.points or 0) + competition.points
            logger.info(f"Club {club_id} gagne {competition.points} points (mission '{competition.name}')")

    async def club_progress(self, club_id: int) -> list[dict]:
        result = await self.db.execute(
            select(MissionProgress)
            .join(Competition, MissionProgress.competition_id == Competition.id)
            .where(MissionProgress.club_id == club_id)
            .order_by(Competition.end_date.asc())
        )
        rows = result.scalars().unique().all()
        return [
            {
                "id": row.id,
                "club_id": row.club_id,
                "competition_id": row.competition_id,
                "competition_name": row.competition.name,
                "goal_type": row.competition.goal_type,
                "goal": row.competition.goal,
                "progress": row.progress,
                "is_completed": row.is_completed,
                "percentage": round(min(row.progress / row.competition.goal, 1) * 100, 2) if row.competition.goal else 0.0,
            }
            for row in rows
        ]

    async def leaderboard(self, limit: int = 10) -> list[dict]:
        completed = (
            select(MissionProgress.club_id, func.count(MissionProgress.id).label("completed"))
            .where(MissionProgress.is_completed.is_(True))
            .group_by(MissionProgress.club_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Club.id, Club.name, Club.points, func.coalesce(completed.c.completed, 0))
            .outerjoin(completed, completed.c.club_id == Club.id)
            .where(Club.status == ClubStatus.ACCEPTE.value)
            .order_by(Club.points.desc(), Club.name.asc())
            .limit(limit)
        )
        return [
            {"rank": rank, "club_id": club_id, "club_name": name, "points": points, "completed_missions": done}
            for rank, (club_id, name, points, done) in enumerate(result.all(), start=1)
        ]


class CompetitionService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.progress = MissionProgressService(db)

    async def get(self, competition_id: int) -> Competition:
        result = await self.db.execute(select(Competition).where(Competition.id == competition_id))
        competition = result.scalars().first()
        if not competition:
            raise NotFoundError("Compétition non trouvée")
        return competition

    async def list_all(self, saison_id: Optional[int] = None, status: Optional[str] = None) -> list[Competition]:
        query = select(Competition).order_by(Competition.start_date.desc(), Competition.id.desc())
        if saison_id is not None:
            query = query.where(Competition.saison_id == saison_id)
        if status:
            query = query.where(Competition.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().unique().all())

    async def _check_saison(self, saison_id: Optional[int]) -> None:
        if saison_id is None:
            return
        result = await self.db.execute(select(Saison.id).where(Saison.id == saison_id))
        if not result.first():
            raise NotFoundError("Saison non trouvée")

    async def _apply_status(self, competition: Competition, now: Optional[datetime] = None) -> Optional[str]:
        """
        Recalcule le statut. Tout changement remet les progressions à zéro ;
        une compétition active reçoit une ligne par club accepté.
        """
        previous = competition.status
        competition.status = compute_status(competition.start_date, competition.end_date, now)
        changed = previous != competition.status
        if changed:
            await self.progress.reset_for_competition(competition.id)
            logger.info(f"Compétition {competition.id}: {previous} -> {competition.status}")
        if competition.status == CompetitionStatus.ACTIVATED.value:
            await self.progress.ensure_rows_for_competition(competition)
        return competition.status if changed else None

    async def create(self, data: CompetitionCreate) -> Competition:
        await self._check_saison(data.saison_id)
        competition = Competition(
            name=data.name,
            description=data.description,
            points=data.points,
            start_date=naive_utc(data.start_date),
            end_date=naive_utc(data.end_date),
            goal_type=data.goal_type.value,
            goal=data.goal,
            saison_id=data.saison_id,
            status=CompetitionStatus.DEACTIVATED.value,
        )
        self.db.add(competition)
        await self.db.flush()
        await self._apply_status(competition)
        await self.db.commit()
        logger.info(f"Compétition créée: id={competition.id}, statut={competition.status}")
        return await self.get(competition.id)

    async def update(self, competition_id: int, data: CompetitionUpdate) -> Competition:
        competition = await self.get(competition_id)
        updates = data.model_dump(exclude_unset=True)
        if "saison_id" in updates:
            await self._check_saison(updates["saison_id"])

        for field, value in updates.items():
            if field in ("start_date", "end_date"):
                value = naive_utc(value)
            elif field == "goal_type" and value is not None:
                value = value.value
            setattr(competition, field, value)

        if competition.start_date and competition.end_date and competition.end_date <= competition.start_date:
            raise ValidationFailedError("La date de fin doit être postérieure à la date de début")

        await self._apply_status(competition)
        await self.db.commit()
        return await self.get(competition.id)

    async def delete(self, competition_id: int) -> None:
        competition = await self.get(competition_id)
        await self.db.execute(delete(MissionProgress).where(MissionProgress.competition_id == competition.id))
        await self.db.delete(competition)
        await self.db.commit()
        logger.info(f"Compétition supprimée: id={competition_id}")

    async def refresh_statuses(self, now: Optional[datetime] = None) -> dict:
        result = await self.db.execute(select(Competition))
        changes = {"activated": [], "deactivated": []}
        for competition in result.scalars().unique().all():
            new_status = await self._apply_status(competition, now)
            if new_status:
                changes[new_status].append(competition.id)
        await self.db.commit()
        return changes


class SeasonService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, saison_id: int) -> Saison:
        result = await self.db.execute(select(Saison).where(Saison.id == saison_id))
        saison = result.scalars().first()
        if not saison:
            raise NotFoundError("Saison non trouvée")
        return saison

    async def competitions_count(self, saison_id: int) -> int:
        result = await self.db.execute(select(func.count(Competition.id)).where(Competition.saison_id == saison_id))
        return result.scalar_one()

    async def list_all(self) -> list[tuple[Saison, int]]:
        counts = (
            select(Competition.saison_id, func.count(Competition.id).label("n"))
            .group_by(Competition.saison_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Saison, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.saison_id == Saison.id)
            .order_by(Saison.end_date.desc(), Saison.id.desc())
        )
        return [(saison, count) for saison, count in result.all()]

    async def create(self, data: SaisonCreate, image: Optional[str] = None) -> Saison:
        saison = Saison(
            name=data.name,
            description=data.description,
            end_date=naive_utc(data.end_date),
            image=image,
        )
        self.db.add(saison)
        await self.db.commit()
        await self.db.refresh(saison)
        logger.info(f"Saison créée: id={saison.id}")
        return saison

    async def update(self, saison_id: int, data: SaisonUpdate, image: Optional[str] = None) -> Saison:
        saison = await self.get(saison_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(saison, field, naive_utc(value) if field == "end_date" else value)
        if image:
            saison.image = image
        saison.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(saison)
        return saison

    async def delete(self, saison_id: int) -> None:
        saison = await self.get(saison_id)
        competition_ids = select(Competition.id).where(Competition.saison_id == saison.id)
        await self.db.execute(delete(MissionProgress).where(MissionProgress.competition_id.in_(competition_ids)))
        await self.db.execute(delete(Competition).where(Competition.saison_id == saison.id))
        await self.db.delete(saison)
        await self.db.commit()
        logger.info(f"Saison supprimée: id={saison_id}")

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, func, or_, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.clubs.models import Club
from app.clubs.services import can_manage, is_member
from app.moderation.services import CommentModerator
from app.polls.models import Sondage, ChoixSondage, Reponse, Commentaire
from app.polls.schemas import PollCreate, PollUpdate, MIN_OPTIONS
from app.utils.errors import (
    NotFoundError, ConflictError, PermissionDeniedError, ValidationFailedError, ServiceError
)
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

POLLS_PER_PAGE = 3
COMMENTS_PER_PAGE = 3

# Seuils (pourcentage max inclus) -> couleur de la barre de résultat
RESULT_COLORS = [
    (20, "#e74c3c"),
    (40, "#f39c12"),
    (60, "#f1c40f"),
    (80, "#2ecc71"),
]
TOP_COLOR = "#3498db"


def result_color(percentage: float) -> str:
    for threshold, color in RESULT_COLORS:
        if percentage <= threshold:
            return color
    return TOP_COLOR


class PollService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_poll(self, poll_id: int) -> Sondage:
        result = await self.db.execute(
            select(Sondage).where(Sondage.id == poll_id).execution_options(populate_existing=True)
        )
        poll = result.scalars().first()
        if not poll:
            raise NotFoundError("Sondage non trouvé")
        return poll

    def _can_edit(self, user: User, poll: Sondage) -> bool:
        return poll.user_id == user.id or can_manage(user, poll.club)

    async def create_poll(self, user: User, data: PollCreate) -> Sondage:
        club = (await self.db.execute(select(Club).where(Club.id == data.club_id))).scalars().first()
        if not club:
            raise NotFoundError("Club non trouvé")
        if not can_manage(user, club):
            raise PermissionDeniedError("Seul le président du club ou un administrateur peut créer un sondage")

        poll = Sondage(
            question=data.question,
            user_id=user.id,
            club_id=club.id,
            options=[ChoixSondage(content=content) for content in data.options],
        )
        self.db.add(poll)
        await self.db.commit()
        logger.info(f"Sondage créé: id={poll.id}, club_id={club.id}, options={len(data.options)}")
        return await self.get_poll(poll.id)

    async def update_poll(self, poll_id: int, user: User, data: PollUpdate) -> Sondage:
        poll = await self.get_poll(poll_id)
        if not self._can_edit(user, poll):
            raise PermissionDeniedError("Vous ne pouvez pas modifier ce sondage")

        if data.question is not None:
            poll.question = data.question

        if data.options is not None:
            current = {option.id: option for option in poll.options}
            kept_ids = {o.id for o in data.options if o.id is not None}
            unknown = kept_ids - current.keys()
            if unknown:
                raise ValidationFailedError(f"Options inconnues pour ce sondage: {sorted(unknown)}")

            removed = [option for oid, option in current.items() if oid not in kept_ids]
            if removed:
                voted = await self.db.execute(
                    select(Reponse.choix_id)
                    .where(Reponse.choix_id.in_([o.id for o in removed]))
                    .distinct()
                )
                if voted.first():
                    raise ConflictError("Impossible de supprimer une option qui a déjà reçu des votes")
                for option in removed:
                    poll.options.remove(option)

            for option_in in data.options:
                if option_in.id is None:
                    poll.options.append(ChoixSondage(content=option_in.content))
                else:
                    current[option_in.id].content = option_in.content

            if len(poll.options) < MIN_OPTIONS:
                raise ValidationFailedError(f"Un sondage doit avoir au moins {MIN_OPTIONS} options")

        await self.db.commit()
        return await self.get_poll(poll.id)

    async def delete_poll(self, poll_id: int, user: User) -> None:
        poll = await self.get_poll(poll_id)
        if not self._can_edit(user, poll):
            raise PermissionDeniedError("Vous ne pouvez pas supprimer ce sondage")

        await self.db.execute(delete(Reponse).where(Reponse.sondage_id == poll.id))
        await self.db.execute(delete(Commentaire).where(Commentaire.sondage_id == poll.id))
        await self.db.delete(poll)
        await self.db.commit()
        logger.info(f"Sondage supprimé: id={poll_id}")

    async def list_polls(
        self,
        page: int = 1,
        per_page: int = POLLS_PER_PAGE,
        club_id: Optional[int] = None,
        search: Optional[str] = None,
        days: Optional[int] = None,
    ) -> dict:
        query = select(Sondage).order_by(Sondage.created_at.desc(), Sondage.id.desc())
        if club_id is not None:
            query = query.where(Sondage.club_id == club_id)
        if search:
            pattern = f"%{search.strip()}%"
            club_ids = select(Club.id).where(Club.name.ilike(pattern))
            query = query.where(or_(Sondage.question.ilike(pattern), Sondage.club_id.in_(club_ids)))
        if days:
            query = query.where(Sondage.created_at >= datetime.utcnow() - timedelta(days=days))
        return await paginate(self.db, query, page, per_page)

    # ----- Résultats -----

    async def results(self, poll_id: int) -> dict:
        poll = await self.get_poll(poll_id)
        rows = await self.db.execute(
            select(Reponse.choix_id, func.count(Reponse.id))
            .where(Reponse.sondage_id == poll.id)
            .group_by(Reponse.choix_id)
        )
        counts = dict(rows.all())
        total = sum(counts.values())

        options = []
        for option in poll.options:
            votes = counts.get(option.id, 0)
            percentage = round(votes * 100 / total, 2) if total else 0.0
            options.append({
                "id": option.id,
                "content": option.content,
                "votes": votes,
                "percentage": percentage,
                "color": result_color(percentage),
            })
        return {"poll_id": poll.id, "total_votes": total, "options": options}

    async def detail(self, poll_id: int, user: Optional[User] = None) -> dict:
        poll = await self.get_poll(poll_id)
        user_vote = None
        if user:
            vote = await VoteService(self.db).get_user_vote(poll.id, user.id)
            user_vote = vote.choix_id if vote else None
        return {
            "id": poll.id,
            "question": poll.question,
            "created_at": poll.created_at,
            "user_id": poll.user_id,
            "club_id": poll.club_id,
            "user": poll.user,
            "club": poll.club,
            "options": poll.options,
            "user_vote": user_vote,
            "results": await self.results(poll.id),
        }

    # ----- Statistiques -----

    async def global_stats(self) -> dict:
        async def count(query) -> int:
            return (await self.db.execute(query)).scalar_one()

        return {
            "total_polls": await count(select(func.count(Sondage.id))),
            "total_votes": await count(select(func.count(Reponse.id))),
            "total_comments": await count(select(func.count(Commentaire.id))),
            "polls_last_7_days": await count(
                select(func.count(Sondage.id)).where(Sondage.created_at >= datetime.utcnow() - timedelta(days=7))
            ),
        }

    async def top_respondents(self, club_id: int, limit: int = 5) -> list[dict]:
        result = await self.db.execute(
            select(User.id, User.first_name, User.last_name, func.count(Reponse.id).label("votes"))
            .join(Reponse, Reponse.user_id == User.id)
            .join(Sondage, Sondage.id == Reponse.sondage_id)
            .where(Sondage.club_id == club_id)
            .group_by(User.id, User.first_name, User.last_name)
            .order_by(func.count(Reponse.id).desc(), User.id.asc())
            .limit(limit)
        )
        return [
            {"user_id": uid, "first_name": first, "last_name": last, "votes": votes}
            for uid, first, last, votes in result.all()
        ]

    async def participation_stats(self, club_id: int) -> dict:
        base = (
            select(Reponse.id, Reponse.user_id, Reponse.sondage_id)
            .join(Sondage, Sondage.id == Reponse.sondage_id)
            .where(Sondage.club_id == club_id)
            .subquery()
        )
        total = (await self.db.execute(select(func.count(base.c.id)))).scalar_one()
        unique = (await self.db.execute(select(func.count(func.distinct(base.c.user_id))))).scalar_one()

        most_popular = None
        row = (await self.db.execute(
            select(Sondage.id, Sondage.question, func.count(base.c.id).label("votes"))
            .join(base, base.c.sondage_id == Sondage.id)
            .group_by(Sondage.id, Sondage.question)
            .order_by(func.count(base.c.id).desc(), Sondage.id.asc())
            .limit(1)
        )).first()
        if row:
            most_popular = {"id": row[0], "question": row[1], "votes": row[2]}

        return {
            "club_id": club_id,
            "total_votes": total,
            "unique_participants": unique,
            "most_popular_poll": most_popular,
        }


class VoteService:
    """
    Protocole de vote : pour un couple (utilisateur, sondage) l'état est soit
    "pas de vote", soit "a voté pour l'option X".
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_vote(self, poll_id: int, user_id: int) -> Optional[Reponse]:
        result = await self.db.execute(
            select(Reponse).where(Reponse.sondage_id == poll_id, Reponse.user_id == user_id)
        )
        return result.scalars().first()

    async def _check_vote(self, poll_id: int, user: User, choix_id: int) -> Sondage:
        poll = await PollService(self.db).get_poll(poll_id)
        if choix_id not in {option.id for option in poll.options}:
            raise ValidationFailedError("Cette option n'appartient pas au sondage")
        if not user.is_admin and not await is_member(self.db, user.id, poll.club_id):
            raise PermissionDeniedError("Seuls les membres du club peuvent voter")
        return poll

    async def submit_vote(self, poll_id: int, user: User, choix_id: int) -> Reponse:
        await self._check_vote(poll_id, user, choix_id)
        if await self.get_user_vote(poll_id, user.id):
            raise ConflictError("Vous avez déjà voté pour ce sondage")

        vote = Reponse(user_id=user.id, sondage_id=poll_id, choix_id=choix_id)
        self.db.add(vote)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Vous avez déjà voté pour ce sondage")
        logger.info(f"Vote enregistré: user_id={user.id}, sondage={poll_id}, option={choix_id}")
        return vote

    async def change_vote(self, poll_id: int, user: User, choix_id: int, confirm: bool) -> Reponse:
        await self._check_vote(poll_id, user, choix_id)
        vote = await self.get_user_vote(poll_id, user.id)
        if not vote:
            raise NotFoundError("Aucun vote à modifier pour ce sondage")
        if vote.choix_id == choix_id:
            raise ConflictError("Vous avez déjà voté pour cette option")
        if not confirm:
            raise ServiceError("Le changement de vote doit être confirmé")

        vote.choix_id = choix_id
        vote.date_reponse = datetime.utcnow()
        await self.db.commit()
        logger.info(f"Vote modifié: user_id={user.id}, sondage={poll_id}, option={choix_id}")
        return vote

    async def delete_vote(self, poll_id: int, user: User) -> None:
        await PollService(self.db).get_poll(poll_id)
        vote = await self.get_user_vote(poll_id, user.id)
        if not vote:
            raise NotFoundError("Aucun vote à supprimer pour ce sondage")
        await self.db.delete(vote)
        await self.db.commit()
        logger.info(f"Vote supprimé: user_id={user.id}, sondage={poll_id}")


class CommentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.moderator = CommentModerator(db)

    async def get_comment(self, comment_id: int) -> Commentaire:
        result = await self.db.execute(
            select(Commentaire).where(Commentaire.id == comment_id).execution_options(populate_existing=True)
        )
        comment = result.scalars().first()
        if not comment:
            raise NotFoundError("Commentaire non trouvé")
        return comment

    async def add_comment(self, poll_id: int, user: User, content: str) -> Commentaire:
        await PollService(self.db).get_poll(poll_id)
        stored, flagged = await self.moderator.screen(user, content)

        comment = Commentaire(content=stored, user_id=user.id, sondage_id=poll_id)
        self.db.add(comment)
        await self.db.commit()
        logger.info(f"Commentaire ajouté: id={comment.id}, sondage={poll_id}, masqué={flagged}")
        return await self.get_comment(comment.id)

    async def update_comment(self, comment_id: int, user: User, content: str) -> Commentaire:
        comment = await self.get_comment(comment_id)
        if comment.user_id != user.id:
            raise PermissionDeniedError("Vous ne pouvez modifier que vos propres commentaires")
        if comment.flagged:
            raise ConflictError("Un commentaire masqué par la modération ne peut pas être modifié")

        stored, _ = await self.moderator.screen(user, content)
        comment.content = stored
        comment.updated_at = datetime.utcnow()
        await self.db.commit()
        return await self.get_comment(comment.id)

    async def delete_comment(self, comment_id: int, user: User) -> None:
        comment = await self.get_comment(comment_id)
        if comment.user_id != user.id and not user.is_admin:
            raise PermissionDeniedError("Vous ne pouvez supprimer que vos propres commentaires")
        await self.db.delete(comment)
        await self.db.commit()

    async def list_for_poll(self, poll_id: int, page: int = 1, per_page: int = COMMENTS_PER_PAGE) -> dict:
        await PollService(self.db).get_poll(poll_id)
        query = (
            select(Commentaire)
            .where(Commentaire.sondage_id == poll_id)
            .order_by(Commentaire.date_comment.desc(), Commentaire.id.desc())
        )
        return await paginate(self.db, query, page, per_page)

    async def admin_list(
        self,
        page: int = 1,
        per_page: int = 10,
        search: Optional[str] = None,
        club_id: Optional[int] = None,
    ) -> dict:
        query = select(Commentaire).order_by(Commentaire.date_comment.desc(), Commentaire.id.desc())
        if club_id is not None:
            query = query.where(
                Commentaire.sondage_id.in_(select(Sondage.id).where(Sondage.club_id == club_id))
            )
        if search:
            pattern = f"%{search.strip()}%"
            user_ids = select(User.id).where(or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern)))
            query = query.where(or_(Commentaire.content.ilike(pattern), Commentaire.user_id.in_(user_ids)))
        return await paginate(self.db, query, page, per_page)

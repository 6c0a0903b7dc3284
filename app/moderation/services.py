import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.db import mongo
from app.moderation import ai, profanity
from app.polls.models import Commentaire, Sondage, FLAGGED_PREFIX
from app.utils import email
from app.utils.errors import PermissionDeniedError

logger = logging.getLogger(__name__)

FLAGGED_NOTICE = (
    FLAGGED_PREFIX + " for potentially inappropriate language. "
    "We encourage respectful and constructive discussions. "
    "If you believe this is an error, please contact our support team."
)
MAX_FLAGGED_COMMENTS = 3

POSITIVE_WORDS = ("good", "great", "excellent", "love", "awesome", "nice")
NEGATIVE_WORDS = ("bad", "poor", "terrible", "hate", "worst", "awful")

NO_COMMENTS_SUMMARY = "No comments available to summarize."


def classify_sentiment(content: str) -> str:
    lowered = (content or "").lower()
    if any(word in lowered for word in POSITIVE_WORDS):
        return "positive"
    if any(word in lowered for word in NEGATIVE_WORDS):
        return "negative"
    return "neutral"


def manual_summary(comments: list[Commentaire]) -> str:
    """Résumé de secours sans IA : liste numérotée + statistiques"""
    if not comments:
        return NO_COMMENTS_SUMMARY

    lines = ["Summary of comments:", ""]
    for i, comment in enumerate(comments, start=1):
        author = comment.user.full_name if comment.user else "Unknown"
        lines.append(f"{i}. {author}: {comment.content} ({comment.date_comment.date().isoformat()})")

    unique_users = len({c.user_id for c in comments})
    lines += [
        "",
        "--- Statistics ---",
        f"Total Comments: {len(comments)}",
        f"Unique Commenters: {unique_users}",
    ]
    return "\n".join(lines) + "\n"


class IncidentService:
    """Journal des incidents de modération (collection Mongo)"""

    @staticmethod
    async def record(user_id: int, field: str, text: str, action: str, severity: Optional[str] = None) -> dict:
        doc = {
            "user_id": user_id,
            "field": field,
            "severity": severity or profanity.determine_severity(field),
            "action": action,
            "censored_text": profanity.censor_for_log(text),
            "timestamp": datetime.utcnow(),
        }
        await mongo.incidents_collection.insert_one(doc)
        logger.info(f"Incident de modération: user_id={user_id}, champ={field}, action={action}")
        doc.pop("_id", None)
        return doc

    @staticmethod
    async def list_for_user(user_id: int) -> list[dict]:
        cursor = mongo.incidents_collection.find({"user_id": user_id}, {"_id": 0}).sort("timestamp", -1)
        return await cursor.to_list(length=None)

    @staticmethod
    async def clear_for_user(user_id: int) -> int:
        result = await mongo.incidents_collection.delete_many({"user_id": user_id})
        logger.info(f"{result.deleted_count} incident(s) supprimé(s) pour user_id={user_id}")
        return result.deleted_count


class ActivityLogService:
    """Journal des actions d'administration (collection Mongo)"""

    @staticmethod
    async def log(actor_id: int, action: str, target_type: str, target_id: Optional[int] = None, details: str = "") -> None:
        await mongo.activity_collection.insert_one({
            "actor_id": actor_id,
            "action": action,
            "target_type": target_type,
            "target_id": target_id,
            "details": details,
            "timestamp": datetime.utcnow(),
        })

    @staticmethod
    async def recent(limit: int = 50, target_type: Optional[str] = None) -> list[dict]:
        query = {"target_type": target_type} if target_type else {}
        cursor = mongo.activity_collection.find(query, {"_id": 0}).sort("timestamp", -1).limit(limit)
        return await cursor.to_list(length=limit)


class CommentModerator:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def flagged_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Commentaire.id)).where(
                Commentaire.user_id == user_id,
                Commentaire.content.like(f"{FLAGGED_PREFIX}%")
            )
        )
        return result.scalar_one()

    async def screen(self, user: User, content: str) -> tuple[str, bool]:
        """
        Vérifie un commentaire avant enregistrement.

        Retourne le contenu à stocker et un booléen indiquant s'il a été masqué.
        Lève PermissionDeniedError si l'auteur est banni des commentaires.
        """
        flagged = await self.flagged_count(user.id)
        if flagged >= MAX_FLAGGED_COMMENTS:
            raise PermissionDeniedError(
                "This user is banned from commenting due to multiple violations of our community guidelines."
            )

        analysis = await ai.check_toxicity(content)
        if not analysis["toxic"]:
            return content, False

        warning_level = flagged + 1
        logger.warning(f"Commentaire toxique de user_id={user.id} (avertissement {warning_level}/3)")

        await IncidentService.record(
            user.id, "comment", content, action="Comment hidden", severity="Medium"
        )
        subject, body = email.content_warning_email(user.full_name, warning_level, "commentaire")
        await email.notify(subject, user.email, body)
        return FLAGGED_NOTICE, True


class CommentInsightsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _comments_query(self, club_id: Optional[int] = None):
        query = select(Commentaire).order_by(Commentaire.date_comment.asc())
        if club_id is not None:
            query = query.join(Sondage, Commentaire.sondage_id == Sondage.id).where(Sondage.club_id == club_id)
        return query

    async def _comments(self, club_id: Optional[int] = None) -> list[Commentaire]:
        result = await self.db.execute(self._comments_query(club_id))
        return list(result.scalars().unique().all())

    async def stats(self) -> dict:
        total = (await self.db.execute(select(func.count(Commentaire.id)))).scalar_one()
        start_of_day = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        today = (await self.db.execute(
            select(func.count(Commentaire.id)).where(
                Commentaire.date_comment >= start_of_day,
                Commentaire.date_comment < start_of_day + timedelta(days=1)
            )
        )).scalar_one()
        flagged = (await self.db.execute(
            select(func.count(Commentaire.id)).where(Commentaire.content.like(f"{FLAGGED_PREFIX}%"))
        )).scalar_one()
        return {"total": total, "today": today, "flagged": flagged}

    async def sentiment(self, club_id: Optional[int] = None) -> dict:
        comments = await self._comments(club_id)
        counts = Counter(classify_sentiment(c.content) for c in comments)
        total = len(comments)

        def ratio(key: str) -> float:
            return round(counts[key] / total, 4) if total else 0.0

        return {
            "positive": ratio("positive"),
            "negative": ratio("negative"),
            "neutral": ratio("neutral"),
            "total_comments": total,
        }

    async def by_month(self, club_id: Optional[int] = None) -> list[dict]:
        comments = await self._comments(club_id)
        counts = Counter(c.date_comment.strftime("%Y-%m") for c in comments)
        return [{"month": month, "count": counts[month]} for month in sorted(counts)]

    async def summarize_poll(self, sondage_id: int) -> dict:
        result = await self.db.execute(
            select(Commentaire)
            .where(Commentaire.sondage_id == sondage_id)
            .order_by(Commentaire.date_comment.asc())
        )
        comments = list(result.scalars().unique().all())
        if not comments:
            return {"summary": NO_COMMENTS_SUMMARY, "source": "manual"}

        texts = [c.content for c in comments if not c.flagged]
        summary = await ai.summarize(texts)
        if summary:
            return {"summary": summary, "source": "ai"}
        return {"summary": manual_summary(comments), "source": "manual"}

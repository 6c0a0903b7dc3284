from typing import Optional, List
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.models import User
from app.auth.permissions import require_admin
from app.db.session import get_db
from app.moderation import ai, profanity
from app.moderation.schemas import (
    IncidentOut, ActivityOut, CommentStats, SentimentStats, MonthCount, PollSummary,
    TextCheck, ToxicityResult
)
from app.moderation.services import (
    IncidentService, ActivityLogService, CommentInsightsService
)
from app.polls.services import PollService
from app.users.services import get_user
from app.utils.errors import ServiceError, to_http

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/moderation", tags=["moderation"])


# 🚨 Incidents
@router.get("/incidents/{user_id}", response_model=List[IncidentOut])
async def user_incidents(user_id: int, admin: User = Depends(require_admin)):
    return await IncidentService.list_for_user(user_id)


@router.delete("/incidents/{user_id}")
async def clear_incidents(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        await get_user(db, user_id)
    except ServiceError as e:
        raise to_http(e)
    deleted = await IncidentService.clear_for_user(user_id)
    await ActivityLogService.log(admin.id, "incidents_cleared", "user", user_id, f"{deleted} incident(s)")
    return {"user_id": user_id, "deleted": deleted}


# 📊 Statistiques des commentaires
@router.get("/comments/stats", response_model=CommentStats)
async def comment_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await CommentInsightsService(db).stats()


@router.get("/comments/sentiment", response_model=SentimentStats)
async def comment_sentiment(
    club_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CommentInsightsService(db).sentiment(club_id)


@router.get("/comments/by-month", response_model=List[MonthCount])
async def comments_by_month(
    club_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CommentInsightsService(db).by_month(club_id)


@router.get("/polls/{poll_id}/summary", response_model=PollSummary)
async def poll_summary(
    poll_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Résumé IA des commentaires, résumé manuel si l'IA est indisponible"""
    try:
        await PollService(db).get_poll(poll_id)
    except ServiceError as e:
        raise to_http(e)
    return await CommentInsightsService(db).summarize_poll(poll_id)


# 📝 Journal d'activité
@router.get("/activity", response_model=List[ActivityOut])
async def activity_log(
    limit: int = Query(50, ge=1, le=500),
    target_type: Optional[str] = None,
    admin: User = Depends(require_admin)
):
    return await ActivityLogService.recent(limit, target_type)


# 🔎 Vérification de texte
@router.post("/check", response_model=ToxicityResult)
async def check_text(data: TextCheck, current_user: User = Depends(get_current_user)):
    result = await ai.check_toxicity(data.text)
    return {**result, "cleaned": profanity.clean_text(data.text)}

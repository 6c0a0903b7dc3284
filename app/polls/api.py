from typing import Optional, List
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user, get_current_user_optional
from app.auth.models import User
from app.auth.permissions import require_admin
from app.db.session import get_db
from app.polls.schemas import (
    PollCreate, PollUpdate, PollResponse, PollListResponse, PollDetail, PollResults,
    VoteCreate, VoteChange, VoteResponse, PollStats, TopRespondent, ParticipationStats,
    CommentCreate, CommentResponse, CommentListResponse
)
from app.polls.services import PollService, VoteService, CommentService, POLLS_PER_PAGE, COMMENTS_PER_PAGE
from app.utils.errors import ServiceError, to_http

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/polls", tags=["polls"])


# ===============================
# SONDAGES
# ===============================
@router.post("", response_model=PollResponse, status_code=status.HTTP_201_CREATED)
async def create_poll(
    data: PollCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await PollService(db).create_poll(current_user, data)
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Error creating poll")
        raise HTTPException(status_code=500, detail="Erreur interne lors de la création du sondage")


@router.get("", response_model=PollListResponse)
async def list_polls(
    page: int = Query(1, ge=1),
    per_page: int = Query(POLLS_PER_PAGE, ge=1, le=100),
    club_id: Optional[int] = None,
    search: Optional[str] = None,
    days: Optional[int] = Query(None, ge=1, description="Créés dans les N derniers jours"),
    db: AsyncSession = Depends(get_db)
):
    return await PollService(db).list_polls(page, per_page, club_id, search, days)


@router.get("/stats", response_model=PollStats)
async def poll_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await PollService(db).global_stats()


@router.get("/comments", response_model=CommentListResponse)
async def admin_comments(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    club_id: Optional[int] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await CommentService(db).admin_list(page, per_page, search, club_id)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await CommentService(db).update_comment(comment_id, current_user, data.content)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await CommentService(db).delete_comment(comment_id, current_user)
    except ServiceError as e:
        raise to_http(e)


@router.get("/clubs/{club_id}/top-respondents", response_model=List[TopRespondent])
async def top_respondents(
    club_id: int,
    limit: int = Query(5, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PollService(db).top_respondents(club_id, limit)


@router.get("/clubs/{club_id}/participation", response_model=ParticipationStats)
async def participation_stats(
    club_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await PollService(db).participation_stats(club_id)


@router.get("/{poll_id}", response_model=PollDetail)
async def get_poll(
    poll_id: int,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await PollService(db).detail(poll_id, current_user)
    except ServiceError as e:
        raise to_http(e)


@router.put("/{poll_id}", response_model=PollResponse)
async def update_poll(
    poll_id: int,
    data: PollUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await PollService(db).update_poll(poll_id, current_user, data)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/{poll_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_poll(
    poll_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await PollService(db).delete_poll(poll_id, current_user)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{poll_id}/results", response_model=PollResults)
async def poll_results(poll_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await PollService(db).results(poll_id)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# VOTES
# ===============================
@router.get("/{poll_id}/vote", response_model=Optional[VoteResponse])
async def my_vote(
    poll_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await VoteService(db).get_user_vote(poll_id, current_user.id)


@router.post("/{poll_id}/vote", response_model=VoteResponse, status_code=status.HTTP_201_CREATED)
async def submit_vote(
    poll_id: int,
    data: VoteCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await VoteService(db).submit_vote(poll_id, current_user, data.choix_id)
    except ServiceError as e:
        raise to_http(e)


@router.put("/{poll_id}/vote", response_model=VoteResponse)
async def change_vote(
    poll_id: int,
    data: VoteChange,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Le changement de vote n'est appliqué qu'avec `confirm=true`"""
    try:
        return await VoteService(db).change_vote(poll_id, current_user, data.choix_id, data.confirm)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/{poll_id}/vote", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vote(
    poll_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await VoteService(db).delete_vote(poll_id, current_user)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# COMMENTAIRES
# ===============================
@router.get("/{poll_id}/comments", response_model=CommentListResponse)
async def list_comments(
    poll_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(COMMENTS_PER_PAGE, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await CommentService(db).list_for_poll(poll_id, page, per_page)
    except ServiceError as e:
        raise to_http(e)


@router.post("/{poll_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    poll_id: int,
    data: CommentCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await CommentService(db).add_comment(poll_id, current_user, data.content)
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Error adding comment")
        raise HTTPException(status_code=500, detail="Erreur interne lors de l'ajout du commentaire")

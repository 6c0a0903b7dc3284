from typing import Optional, List
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Query, Form, UploadFile, File
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.permissions import require_admin
from app.competitions.models import CompetitionStatus
from app.competitions.schemas import (
    SaisonCreate, SaisonUpdate, SaisonResponse,
    CompetitionCreate, CompetitionUpdate, CompetitionResponse,
    MissionProgressResponse, LeaderboardEntry, RefreshResult
)
from app.competitions.services import SeasonService, CompetitionService, MissionProgressService
from app.db.session import get_db
from app.moderation.services import ActivityLogService
from app.utils.errors import ServiceError, to_http
from app.utils.uploads import save_image

logger = logging.getLogger(__name__)
router = APIRouter(tags=["competitions"])


def _season_out(saison, count: int) -> SaisonResponse:
    out = SaisonResponse.model_validate(saison)
    out.competitions_count = count
    return out


# ===============================
# SAISONS
# ===============================
@router.get("/seasons", response_model=List[SaisonResponse])
async def list_seasons(db: AsyncSession = Depends(get_db)):
    return [_season_out(saison, count) for saison, count in await SeasonService(db).list_all()]


@router.get("/seasons/{saison_id}", response_model=SaisonResponse)
async def get_season(saison_id: int, db: AsyncSession = Depends(get_db)):
    try:
        service = SeasonService(db)
        saison = await service.get(saison_id)
        return _season_out(saison, await service.competitions_count(saison_id))
    except ServiceError as e:
        raise to_http(e)


@router.post("/seasons", response_model=SaisonResponse, status_code=status.HTTP_201_CREATED)
async def create_season(
    season_data: str = Form(...),
    image: UploadFile = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Créer une saison avec une image optionnelle
    - **season_data**: JSON de la saison
    - **image**: image optionnelle
    """
    try:
        data = SaisonCreate(**json.loads(season_data))
        image_url = await save_image(image, "seasons", "season") if image and image.filename else None
        saison = await SeasonService(db).create(data, image_url)
        await ActivityLogService.log(admin.id, "season_created", "season", saison.id, saison.name)
        return _season_out(saison, 0)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"Invalid JSON format: {str(e)}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Validation error: {e.errors()}")


@router.put("/seasons/{saison_id}", response_model=SaisonResponse)
async def update_season(
    saison_id: int,
    season_data: str = Form(...),
    image: UploadFile = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        data = SaisonUpdate(**json.loads(season_data))
        image_url = await save_image(image, "seasons", f"season_{saison_id}") if image and image.filename else None
        service = SeasonService(db)
        saison = await service.update(saison_id, data, image_url)
        return _season_out(saison, await service.competitions_count(saison_id))
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"Invalid JSON format: {str(e)}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Validation error: {e.errors()}")
    except ServiceError as e:
        raise to_http(e)


@router.delete("/seasons/{saison_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_season(saison_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        await SeasonService(db).delete(saison_id)
        await ActivityLogService.log(admin.id, "season_deleted", "season", saison_id)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# COMPETITIONS
# ===============================
@router.get("/competitions", response_model=List[CompetitionResponse])
async def list_competitions(
    saison_id: Optional[int] = None,
    status: Optional[CompetitionStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    return await CompetitionService(db).list_all(saison_id, status.value if status else None)


@router.get("/competitions/leaderboard", response_model=List[LeaderboardEntry])
async def leaderboard(limit: int = Query(10, ge=1, le=100), db: AsyncSession = Depends(get_db)):
    return await MissionProgressService(db).leaderboard(limit)


@router.post("/competitions/refresh", response_model=RefreshResult)
async def refresh_statuses(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    """Recalcule le statut de toutes les compétitions selon leurs dates"""
    return await CompetitionService(db).refresh_statuses()


@router.get("/competitions/clubs/{club_id}/progress", response_model=List[MissionProgressResponse])
async def club_progress(club_id: int, db: AsyncSession = Depends(get_db)):
    return await MissionProgressService(db).club_progress(club_id)


@router.get("/competitions/{competition_id}", response_model=CompetitionResponse)
async def get_competition(competition_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await CompetitionService(db).get(competition_id)
    except ServiceError as e:
        raise to_http(e)


@router.post("/competitions", response_model=CompetitionResponse, status_code=status.HTTP_201_CREATED)
async def create_competition(
    data: CompetitionCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        competition = await CompetitionService(db).create(data)
        await ActivityLogService.log(admin.id, "competition_created", "competition", competition.id, competition.name)
        return competition
    except ServiceError as e:
        raise to_http(e)


@router.put("/competitions/{competition_id}", response_model=CompetitionResponse)
async def update_competition(
    competition_id: int,
    data: CompetitionUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        competition = await CompetitionService(db).update(competition_id, data)
        await ActivityLogService.log(admin.id, "competition_updated", "competition", competition_id, competition.status)
        return competition
    except ServiceError as e:
        raise to_http(e)


@router.delete("/competitions/{competition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_competition(
    competition_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        await CompetitionService(db).delete(competition_id)
        await ActivityLogService.log(admin.id, "competition_deleted", "competition", competition_id)
    except ServiceError as e:
        raise to_http(e)

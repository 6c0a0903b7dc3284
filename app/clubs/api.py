from typing import Optional, List
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.models import User
from app.auth.permissions import require_admin
from app.clubs.models import ClubStatus
from app.clubs.schemas import (
    ClubCreate, ClubUpdate, ClubResponse, ClubListResponse, PopularClub,
    MembershipCreate, MembershipResponse, MembershipCounts
)
from app.clubs.services import ClubService, MembershipService, is_member
from app.db.session import get_db
from app.moderation.services import ActivityLogService
from app.utils.errors import ServiceError, to_http
from app.utils.uploads import save_image

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/clubs", tags=["clubs"])


# ===============================
# CLUBS
# ===============================
@router.post("", response_model=ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club(
    data: ClubCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Le créateur devient président ; le club reste en attente de validation"""
    try:
        return await ClubService(db).create(current_user, data)
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Error creating club")
        raise HTTPException(status_code=500, detail="Erreur interne lors de la création du club")


@router.get("", response_model=ClubListResponse)
async def list_clubs(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[ClubStatus] = None,
    db: AsyncSession = Depends(get_db)
):
    return await ClubService(db).list_clubs(page, per_page, search, status.value if status else None)


@router.get("/popular", response_model=List[PopularClub])
async def popular_clubs(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    ranking = await ClubService(db).popularity(limit)
    return [{"club": club, "members_count": count} for club, count in ranking]


@router.get("/mine", response_model=ClubListResponse)
async def my_clubs(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ClubService(db).list_clubs(page, per_page, president_id=current_user.id)


@router.get("/memberships/me", response_model=List[MembershipResponse])
async def my_requests(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await MembershipService(db).for_user(current_user.id)


@router.delete("/memberships/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await MembershipService(db).cancel(current_user, request_id)
    except ServiceError as e:
        raise to_http(e)


@router.post("/memberships/{request_id}/accept", response_model=MembershipResponse)
async def accept_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await MembershipService(db).decide(request_id, current_user, accept=True)
    except ServiceError as e:
        raise to_http(e)


@router.post("/memberships/{request_id}/refuse", response_model=MembershipResponse)
async def refuse_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await MembershipService(db).decide(request_id, current_user, accept=False)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{club_id}", response_model=ClubResponse)
async def get_club(club_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await ClubService(db).get(club_id)
    except ServiceError as e:
        raise to_http(e)


@router.put("/{club_id}", response_model=ClubResponse)
async def update_club(
    club_id: int,
    data: ClubUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await ClubService(db).update(club_id, current_user, data)
    except ServiceError as e:
        raise to_http(e)


@router.post("/{club_id}/images", response_model=ClubResponse)
async def upload_club_images(
    club_id: int,
    logo: UploadFile = File(None),
    image: UploadFile = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        service = ClubService(db)
        club = await service.get_managed(club_id, current_user)
        logo_url = await save_image(logo, "clubs", f"logo_{club.id}") if logo and logo.filename else None
        image_url = await save_image(image, "clubs", f"club_{club.id}") if image and image.filename else None
        return await service.set_images(club, logo_url, image_url)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/{club_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_club(
    club_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await ClubService(db).delete(club_id, current_user)
        await ActivityLogService.log(current_user.id, "club_deleted", "club", club_id)
    except ServiceError as e:
        raise to_http(e)


@router.post("/{club_id}/approve", response_model=ClubResponse)
async def approve_club(club_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        club = await ClubService(db).approve(club_id)
        await ActivityLogService.log(admin.id, "club_approved", "club", club_id, club.name)
        return club
    except ServiceError as e:
        raise to_http(e)


@router.post("/{club_id}/reject", response_model=ClubResponse)
async def reject_club(club_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        club = await ClubService(db).reject(club_id)
        await ActivityLogService.log(admin.id, "club_rejected", "club", club_id, club.name)
        return club
    except ServiceError as e:
        raise to_http(e)


# ===============================
# MEMBERSHIPS
# ===============================
@router.post("/{club_id}/memberships", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def request_membership(
    club_id: int,
    data: MembershipCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await MembershipService(db).request(current_user, club_id, data.description)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{club_id}/memberships/pending", response_model=List[MembershipResponse])
async def pending_requests(
    club_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        service = MembershipService(db)
        await service.clubs.get_managed(club_id, current_user)
        return await service.pending(club_id)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{club_id}/memberships/counts", response_model=MembershipCounts)
async def membership_counts(club_id: int, db: AsyncSession = Depends(get_db)):
    try:
        service = MembershipService(db)
        await service.clubs.get(club_id)
        return await service.counts(club_id)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{club_id}/members", response_model=List[MembershipResponse])
async def club_members(club_id: int, db: AsyncSession = Depends(get_db)):
    try:
        service = MembershipService(db)
        await service.clubs.get(club_id)
        return await service.members(club_id)
    except ServiceError as e:
        raise to_http(e)


@router.get("/{club_id}/is-member")
async def check_membership(
    club_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return {"club_id": club_id, "is_member": await is_member(db, current_user.id, club_id)}

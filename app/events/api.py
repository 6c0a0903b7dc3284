from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File, Form
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional, List
from datetime import datetime
import logging
import json
from pydantic import ValidationError

from app.db.session import get_db
from app.events.models import EventType
from app.events.services import EventService, CategoryService
from .schemas import (
    EventCreate, EventUpdate, EventFilters, EventResponse, EventListResponse,
    ParticipationResponse, ParticipantOut, CategorieCreate, CategorieResponse, CategorieStats
)
from app.auth.models import User
from app.auth.dependencies import get_current_user
from app.auth.permissions import require_admin
from app.utils.errors import ServiceError, to_http
from app.utils.uploads import save_image

logger = logging.getLogger(__name__)
router = APIRouter(tags=["events"])


# ===============================
# CATEGORIES
# ===============================
@router.get("/categories", response_model=List[CategorieResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).list_all()


@router.get("/categories/stats", response_model=List[CategorieStats])
async def categories_stats(db: AsyncSession = Depends(get_db)):
    return await CategoryService(db).stats()


@router.post("/categories", response_model=CategorieResponse, status_code=status.HTTP_201_CREATED)
async def create_category(data: CategorieCreate, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        return await CategoryService(db).create(data)
    except ServiceError as e:
        raise to_http(e)


@router.put("/categories/{categorie_id}", response_model=CategorieResponse)
async def update_category(
    categorie_id: int,
    data: CategorieCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await CategoryService(db).update(categorie_id, data)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/categories/{categorie_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(categorie_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        await CategoryService(db).delete(categorie_id)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# EVENT CREATION
# ===============================
@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: str = Form(...),
    image: UploadFile = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new event with an optional image
    - **event_data**: JSON string representing the event
    - **image**: Optional image of the event
    """
    try:
        event = EventCreate(**json.loads(event_data))
        logger.info(f"Validated event: {event.name} (club {event.club_id})")

        image_path = None
        if image and image.filename:
            image_path = await save_image(image, "events", f"event_{current_user.id}")

        return await EventService(db).create_event(event, current_user, image_path)

    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error: {e}, raw data: {event_data}")
        raise HTTPException(status_code=422, detail=f"Invalid JSON format: {str(e)}")

    except ValidationError as e:
        logger.error(f"Pydantic validation error: {e}")
        raise HTTPException(status_code=422, detail=f"Validation error: {e.errors(include_url=False, include_context=False)}")

    except ServiceError as e:
        raise to_http(e)

    except HTTPException:
        raise

    except Exception:
        logger.exception("Error creating event:")
        raise HTTPException(status_code=500, detail="Internal error while creating the event")


# ===============================
# GET EVENTS
# ===============================
@router.get("/events", response_model=EventListResponse)
async def get_events(
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Items per page"),
    club_id: Optional[int] = Query(None, description="Club ID"),
    categorie_id: Optional[int] = Query(None, description="Category ID"),
    type: Optional[EventType] = Query(None, description="open / closed"),
    date_from: Optional[datetime] = Query(None, description="Start date"),
    date_to: Optional[datetime] = Query(None, description="End date"),
    search: Optional[str] = Query(None, description="Text search"),
    upcoming: bool = Query(False, description="Only upcoming events"),
    db: AsyncSession = Depends(get_db)
):
    filters = EventFilters(
        club_id=club_id,
        categorie_id=categorie_id,
        type=type,
        date_from=date_from,
        date_to=date_to,
        search=search,
        upcoming=upcoming,
    )
    return await EventService(db).get_events(page, per_page, filters)


@router.get("/events/calendar", response_model=dict[str, List[EventResponse]])
async def calendar(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    club_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db)
):
    return await EventService(db).calendar(year, month, club_id)


@router.get("/events/me", response_model=List[EventResponse])
async def my_events(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await EventService(db).user_events(current_user.id)


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(event_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await EventService(db).get_event(event_id)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# UPDATE / DELETE
# ===============================
@router.put("/events/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: int,
    event_data: str = Form(...),
    image: UploadFile = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        updates = EventUpdate(**json.loads(event_data))
        image_path = None
        if image and image.filename:
            image_path = await save_image(image, "events", f"event_{current_user.id}")
        return await EventService(db).update_event(event_id, updates, current_user, image_path)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"Invalid JSON format: {str(e)}")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Validation error: {e.errors(include_url=False, include_context=False)}")
    except ServiceError as e:
        raise to_http(e)


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await EventService(db).delete_event(event_id, current_user)
    except ServiceError as e:
        raise to_http(e)


# ===============================
# PARTICIPATION
# ===============================
@router.post("/events/{event_id}/join", response_model=ParticipationResponse)
async def join_event(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        count = await EventService(db).join_event(event_id, current_user)
        return ParticipationResponse(
            success=True,
            message="Participation enregistrée",
            participant_count=count,
            user_id=current_user.id
        )
    except ServiceError as e:
        raise to_http(e)


@router.delete("/events/{event_id}/join", response_model=ParticipationResponse)
async def cancel_participation(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        count = await EventService(db).cancel_participation(event_id, current_user)
        return ParticipationResponse(
            success=True,
            message="Participation annulée",
            participant_count=count,
            user_id=current_user.id
        )
    except ServiceError as e:
        raise to_http(e)


@router.get("/events/{event_id}/participants", response_model=List[ParticipantOut])
async def list_participants(event_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await EventService(db).participants(event_id)
    except ServiceError as e:
        raise to_http(e)


@router.get("/events/{event_id}/participants/count")
async def participants_count(event_id: int, db: AsyncSession = Depends(get_db)):
    try:
        service = EventService(db)
        await service.get_event(event_id)
        return {"event_id": event_id, "participant_count": await service.participant_count(event_id)}
    except ServiceError as e:
        raise to_http(e)

from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.models import User, RoleEnum, UserStatus
from app.auth.permissions import require_admin
from app.auth.schemas import UserSchema
from app.db.session import get_db
from app.moderation.services import ActivityLogService
from app.users import services
from app.users.schemas import ProfileUpdate, UserAdminUpdate, UserListResponse, UserStats
from app.utils.errors import ServiceError, to_http
from app.utils.uploads import save_image, remove_local_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


# 👤 Profil de l'utilisateur connecté
@router.put("/me/profile", response_model=UserSchema)
async def update_my_profile(
    updates: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await services.update_profile(db, current_user, updates)
    except ServiceError as e:
        raise to_http(e)


@router.post("/me/avatar", response_model=UserSchema)
async def change_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Changer la photo de profil (png, jpg, jpeg, gif, webp, 5MB max)"""
    try:
        old_url = current_user.profile_picture
        url = await save_image(file, "profileImage", f"avatar_{current_user.id}")
        user = await services.set_profile_picture(db, current_user, url)
        remove_local_image(old_url)
        return user
    except HTTPException:
        raise
    except Exception:
        logger.exception("Erreur upload avatar")
        raise HTTPException(status_code=500, detail="Erreur lors de l'upload de l'avatar")


# 📋 Administration des utilisateurs
@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Recherche par nom ou email"),
    role: Optional[RoleEnum] = None,
    status: Optional[UserStatus] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await services.list_users(
        db, page, per_page, search,
        role.value if role else None,
        status.value if status else None,
    )


@router.get("/stats", response_model=UserStats)
async def user_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await services.user_stats(db)


@router.get("/{user_id}", response_model=UserSchema)
async def get_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        return await services.get_user(db, user_id)
    except ServiceError as e:
        raise to_http(e)


@router.put("/{user_id}", response_model=UserSchema)
async def update_user(
    user_id: int,
    updates: UserAdminUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        user = await services.admin_update_user(db, user_id, updates)
        await ActivityLogService.log(
            admin.id, "user_updated", "user", user_id,
            ", ".join(updates.model_dump(exclude_unset=True))
        )
        return user
    except ServiceError as e:
        raise to_http(e)


@router.delete("/{user_id}")
async def delete_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    if user_id == admin.id:
        raise HTTPException(status_code=400, detail="Impossible de supprimer son propre compte")
    try:
        await services.delete_user(db, user_id)
        await ActivityLogService.log(admin.id, "user_deleted", "user", user_id)
        return {"msg": "Utilisateur supprimé"}
    except ServiceError as e:
        raise to_http(e)


@router.post("/{user_id}/warnings", response_model=UserSchema)
async def add_warning(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        user = await services.get_user(db, user_id)
        return await services.add_content_warning(db, user)
    except ServiceError as e:
        raise to_http(e)


@router.delete("/{user_id}/warnings", response_model=UserSchema)
async def reset_warnings(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    try:
        user = await services.reset_warnings(db, user_id)
        await ActivityLogService.log(admin.id, "warnings_reset", "user", user_id)
        return user
    except ServiceError as e:
        raise to_http(e)

from pydantic import BaseModel, field_validator
from typing import Optional, List

from app.auth.models import RoleEnum, UserStatus
from app.auth.schemas import UserSchema, check_name, check_phone


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_names(cls, v):
        if v is None:
            raise ValueError("Le nom et le prénom sont obligatoires")
        return check_name(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)


class UserAdminUpdate(ProfileUpdate):
    role: Optional[RoleEnum] = None
    status: Optional[UserStatus] = None

    @field_validator('role', 'status')
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Ce champ ne peut pas être vidé")
        return v


class UserListResponse(BaseModel):
    items: List[UserSchema]
    total: int
    page: int
    per_page: int
    pages: int


class UserStats(BaseModel):
    total: int
    by_role: dict[str, int]
    by_status: dict[str, int]
    verified: int
    unverified: int

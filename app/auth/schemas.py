import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, ConfigDict, field_validator, model_validator

from app.auth.password import is_strong_password

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s'-]+$")
PHONE_PATTERN = re.compile(r"^((\+|00)216)?([2579][0-9]{7}|(3[012]|4[01]|8[0128])[0-9]{6}|42[16][0-9]{5})$")

PASSWORD_RULES = "Le mot de passe doit contenir au moins 8 caractères avec majuscule, minuscule, chiffre et caractère spécial"


def check_name(v: str) -> str:
    v = (v or "").strip()
    if len(v) < 2:
        raise ValueError("Le nom doit contenir au moins 2 caractères")
    if not NAME_PATTERN.match(v):
        raise ValueError("Le nom ne peut contenir que des lettres, espaces, tirets et apostrophes")
    return v


def check_phone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.replace(' ', '')
    if not PHONE_PATTERN.match(v):
        raise ValueError("Format de téléphone invalide")
    return v


class UserRegister(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    password: str
    password_confirm: str

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_names(cls, v):
        return check_name(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return check_phone(v)

    @field_validator('password')
    @classmethod
    def password_policy(cls, v):
        if not is_strong_password(v):
            raise ValueError(PASSWORD_RULES)
        return v

    @model_validator(mode='after')
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError('Les mots de passe ne correspondent pas')
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class VerifyEmailRequest(BaseModel):
    email: EmailStr
    code: str

    @field_validator('code')
    @classmethod
    def code_required(cls, v):
        if not v or v.strip() == "":
            raise ValueError("Code de vérification requis")
        return v.strip()


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(VerifyEmailRequest):
    new_password: str
    confirm_password: str

    @model_validator(mode='after')
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError('Les mots de passe ne correspondent pas')
        if not is_strong_password(self.new_password):
            raise ValueError(PASSWORD_RULES)
        return self


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def password_policy(cls, v):
        if not is_strong_password(v):
            raise ValueError(PASSWORD_RULES)
        return v


class UserSchema(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    role: str
    status: str
    is_verified: bool
    profile_picture: Optional[str] = None
    warning_count: int = 0
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserSchema


class MessageResponse(BaseModel):
    msg: str

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.auth import schemas
from app.auth.dependencies import get_current_user, oauth2_scheme, blacklist
from app.auth.models import User
from app.auth.services import AuthService
from app.db.session import get_db
from app.utils.errors import ServiceError, to_http

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(user: schemas.UserRegister, db: AsyncSession = Depends(get_db)):
    try:
        new_user = await AuthService(db).register(user)
        return {
            "msg": "Utilisateur enregistré. Un code de vérification a été envoyé par email.",
            "user_id": new_user.id,
        }
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors de l'inscription")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/verify-email", response_model=schemas.MessageResponse)
async def verify_email(data: schemas.VerifyEmailRequest, db: AsyncSession = Depends(get_db)):
    try:
        await AuthService(db).verify_email(data.email, data.code)
        return {"msg": "Compte vérifié avec succès"}
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors de la vérification de l'email")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/resend-code", response_model=schemas.MessageResponse)
async def resend_code(data: schemas.EmailRequest, db: AsyncSession = Depends(get_db)):
    try:
        await AuthService(db).resend_verification(data.email)
        return {"msg": "Nouveau code envoyé"}
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors du renvoi du code")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/login", response_model=schemas.TokenResponse)
async def login(user: schemas.UserLogin, db: AsyncSession = Depends(get_db)):
    try:
        token, db_user = await AuthService(db).login(user.email, user.password)
        return {"access_token": token, "token_type": "bearer", "user": db_user}
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors de la connexion")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/logout", response_model=schemas.MessageResponse)
async def logout(token: str = Depends(oauth2_scheme), current_user: User = Depends(get_current_user)):
    blacklist.add(token)
    logger.info(f"Déconnexion: user_id={current_user.id}")
    return {"msg": "Déconnecté avec succès"}


@router.post("/forgot-password", response_model=schemas.MessageResponse)
async def forgot_password(data: schemas.EmailRequest, db: AsyncSession = Depends(get_db)):
    try:
        await AuthService(db).forgot_password(data.email)
        return {"msg": "Code de réinitialisation envoyé"}
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors de la demande de réinitialisation")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/verify-reset-code")
async def verify_reset_code(data: schemas.VerifyEmailRequest, db: AsyncSession = Depends(get_db)):
    try:
        valid = await AuthService(db).verify_reset_code(data.email, data.code)
    except ServiceError as e:
        raise to_http(e)
    if not valid:
        raise HTTPException(status_code=400, detail="Code invalide ou expiré")
    return {"msg": "Code vérifié avec succès", "valid": True}


@router.post("/reset-password", response_model=schemas.MessageResponse)
async def reset_password(data: schemas.ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    try:
        await AuthService(db).reset_password(data.email, data.code, data.new_password)
        return {"msg": "Mot de passe réinitialisé avec succès"}
    except ServiceError as e:
        raise to_http(e)
    except Exception:
        logger.exception("Erreur lors de la réinitialisation du mot de passe")
        raise HTTPException(status_code=500, detail="Erreur interne")


@router.post("/change-password", response_model=schemas.MessageResponse)
async def change_password(
    data: schemas.ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        await AuthService(db).change_password(current_user, data.current_password, data.new_password)
        return {"msg": "Mot de passe modifié avec succès"}
    except ServiceError as e:
        raise to_http(e)


@router.get("/me", response_model=schemas.UserSchema)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user

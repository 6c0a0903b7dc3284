from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
import logging

from app.db.session import get_db
from app.auth.models import User
from app.auth.jwt_handler import decode_access_token

# Initialiser le logger
logger = logging.getLogger(__name__)

# Utilisé pour extraire le token depuis le header Authorization
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# Blacklist en mémoire pour tokens invalidés (logout)
blacklist: set[str] = set()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _user_from_token(token: str, db: AsyncSession) -> User:
    if token in blacklist:
        logger.warning("Accès refusé : token révoqué")
        raise _unauthorized("Token révoqué")

    payload = decode_access_token(token)
    if not payload:
        raise _unauthorized("Token invalide ou expiré")

    try:
        user_id_int = int(payload.get("user_id"))
    except (ValueError, TypeError) as e:
        logger.warning(f"Champ 'user_id' mal formé dans token : {payload.get('user_id')} ({e})")
        raise _unauthorized("Token invalide : 'user_id' mal formé")

    result = await db.execute(select(User).where(User.id == user_id_int))
    user = result.scalars().first()
    if not user:
        logger.warning(f"Utilisateur introuvable : id={user_id_int}")
        raise _unauthorized("Utilisateur non trouvé")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Compte inactif")
    return user


# Récupération obligatoire de l'utilisateur courant
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Récupère l'utilisateur courant à partir du token JWT.
    """
    if not token:
        logger.warning("Accès refusé : token manquant")
        raise _unauthorized("Token d'authentification manquant")

    user = await _user_from_token(token, db)
    logger.debug(f"Utilisateur authentifié : id={user.id}, email={user.email}")
    return user


# Version optionnelle : None si pas de token ou token invalide
async def get_current_user_optional(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    if not token:
        return None
    try:
        return await _user_from_token(token, db)
    except HTTPException:
        logger.warning("Token optionnel invalide, requête traitée en anonyme")
        return None

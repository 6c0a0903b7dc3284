# app/utils/uploads.py - Enregistrement des images uploadées
import uuid
import logging
from pathlib import Path
from urllib.parse import quote

import aiofiles
from fastapi import HTTPException, UploadFile

from app.config import settings

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB


def generate_default_avatar_url(first_name: str, last_name: str) -> str:
    name = f"{first_name} {last_name}"
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=0D8ABC&color=fff&size=128"


def validate_image_file(file: UploadFile) -> str:
    """Valide le fichier image uploadé et retourne son extension"""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Nom de fichier manquant")

    ext = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Extension non autorisée. Extensions autorisées: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    if not file.content_type or not file.content_type.startswith('image/'):
        raise HTTPException(status_code=400, detail="Le fichier doit être une image")
    return ext


async def save_image(file: UploadFile, folder: str, prefix: str) -> str:
    """
    Sauvegarde une image sous UPLOAD_DIR/<folder> et retourne son URL publique.

    :param folder: sous-dossier (profileImage, clubs, events, seasons)
    :param prefix: préfixe du nom de fichier (ex: "avatar_12")
    """
    ext = validate_image_file(file)
    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(status_code=413, detail="Fichier trop volumineux")

    directory = Path(settings.UPLOAD_DIR) / folder
    directory.mkdir(parents=True, exist_ok=True)

    filename = f"{prefix}_{uuid.uuid4().hex[:8]}.{ext}"
    async with aiofiles.open(directory / filename, "wb") as f:
        await f.write(content)

    logger.info(f"Image enregistrée: {directory / filename}")
    return f"/static/upload/{folder}/{filename}"


def remove_local_image(url: str | None) -> None:
    """Supprime une ancienne image si elle a été uploadée localement"""
    if not url or not url.startswith('/static/upload/'):
        return
    path = Path(settings.UPLOAD_DIR) / url.split('/static/upload/')[-1]
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Erreur lors de la suppression de l'ancienne image: {e}")

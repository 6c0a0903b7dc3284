import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.db.session import AsyncSessionLocal
from app.auth.api import router as auth_router
from app.users.api import router as users_router
from app.clubs.api import router as clubs_router
from app.competitions.api import router as competitions_router
from app.competitions.services import CompetitionService
from app.events.api import router as event_router
from app.polls.api import router as polls_router
from app.moderation.api import router as moderation_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Synchronise le statut des compétitions avec la date du jour
    try:
        async with AsyncSessionLocal() as db:
            changes = await CompetitionService(db).refresh_statuses()
            logger.info(f"Statuts des compétitions rafraîchis: {changes}")
    except SQLAlchemyError:
        logger.exception("Impossible de rafraîchir les statuts des compétitions au démarrage")
    yield


app = FastAPI(title="UniClubs API", lifespan=lifespan)

# Création dossier statique uploads
upload_dir = Path(settings.UPLOAD_DIR)
upload_dir.mkdir(parents=True, exist_ok=True)

# Monture des fichiers statiques
app.mount("/static/upload", StaticFiles(directory=upload_dir), name="static")

# Ajout des routers avec préfixes
app.include_router(auth_router, prefix="/auth")
app.include_router(users_router)
app.include_router(clubs_router)
app.include_router(competitions_router)
app.include_router(event_router)
app.include_router(polls_router)
app.include_router(moderation_router)

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "Bienvenue sur l'API UniClubs !"}

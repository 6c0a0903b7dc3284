from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    DATABASE_URL: str = Field(...)
    DB_ECHO: bool = Field(default=False)
    MONGO_URL: str = Field(...)
    MONGO_DB: str = Field(default="uniclubs")

    JWT_SECRET: str = Field(...)
    ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    MAIL_USERNAME: str = Field(default="")
    MAIL_PASSWORD: str = Field(default="")
    MAIL_FROM: str = Field(default="no-reply@uniclubs.com")
    MAIL_PORT: int = Field(default=587)
    MAIL_SERVER: str = Field(default="localhost")

    UPLOAD_DIR: str = Field(default="static/upload")
    CORS_ORIGINS: str = Field(default="*")

    # Génération de résumés (API compatible OpenAI)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_API_URL: str = Field(default="https://api.openai.com/v1/chat/completions")
    OPENAI_MODEL: str = Field(default="gpt-3.5-turbo")

    # Détection de toxicité (classifieur distant, facultatif)
    TOXICITY_API_URL: str = Field(
        default="https://api-inference.huggingface.co/models/unitary/toxic-bert"
    )
    TOXICITY_API_KEY: Optional[str] = Field(default=None)
    TOXICITY_THRESHOLD: float = Field(default=0.7)

    class Config:
        env_file = ".env"


settings = Settings()

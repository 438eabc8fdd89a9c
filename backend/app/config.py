from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/dbname"

    AWS_ENDPOINT_URL: str
    AWS_ACCESS_KEY_ID: str
    AWS_SECRET_ACCESS_KEY: str
    AWS_REGION_NAME: str = "ru-1"

    # Fixed, separate namespaces for raw inputs and generated previews
    S3_ORIGINALS_BUCKET: str = "fit-originals"
    S3_PREVIEWS_BUCKET: str = "fit-previews"
    UPLOAD_URL_TTL_SECONDS: int = 600

    IDENTITY_URL: str = "http://127.0.0.1:54321"
    IDENTITY_SERVICE_KEY: str = ""
    IDENTITY_JWT_SECRET: str
    IDENTITY_JWT_AUDIENCE: str = "authenticated"

    GEMINI_LIVE_MODE: bool = False
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash-image-preview"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"

    GENERATION_MAX_DURATION_MS: int = 60000
    GENERATION_TIMEOUT_MS: int = 30000
    GENERATION_RETRY_ATTEMPTS: int = 2
    GENERATION_RETRY_DELAY_MS: int = 2000

    # No default: a missing TTL must stop the process at startup
    SHARE_LINK_TTL_DAYS: float

    class Config:
        env_file = ".env"

    @model_validator(mode="after")
    def _check_live_mode(self):
        if self.GEMINI_LIVE_MODE and not self.GEMINI_API_KEY:
            raise ValueError("GEMINI_API_KEY is required when GEMINI_LIVE_MODE is enabled")
        return self

settings = Settings()

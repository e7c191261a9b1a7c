"""
AgriSupply Configuration
Core settings for the supply intake service
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Application Info
    APP_NAME: str = "AgriSupply Intake API"
    APP_VERSION: str = "1.4.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "postgresql://agrisupply@localhost:5432/agrisupply"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # CORS
    ALLOWED_HOSTS: list = ["*"]
    CORS_ORIGINS: list = [
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
    ]

    # Object storage (local bucket directory)
    STORAGE_ROOT: Path = Path("storage")
    STORAGE_BUCKET: str = "documents"
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"

    # Supplies
    SUPPLY_LIST_LIMIT: int = 500
    SUPPLY_PAGE_SIZE: int = 20
    DOC_NUMBER_PREFIX: str = "SUP"
    LOT_NUMBER_PREFIX: str = "LOT"


    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    @field_validator("STORAGE_ROOT", mode="before")
    @classmethod
    def create_storage_root(cls, v):
        """Ensure storage directory exists"""
        path = Path(v) if isinstance(v, str) else v
        path.mkdir(exist_ok=True, parents=True)
        return path

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def create_log_dir(cls, v):
        """Ensure logs directory exists"""
        path = Path(v) if isinstance(v, str) else v
        path.mkdir(exist_ok=True, parents=True)
        return path


# Global settings instance
settings = Settings()

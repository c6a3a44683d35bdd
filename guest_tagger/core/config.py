"""Configuration settings for the guest tagging service."""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        MATCH_DISTANCE_THRESHOLD: Maximum Euclidean distance between a face embedding
            and a guest reference embedding that still counts as the same person
        BATCH_SIZE: Number of photos processed concurrently during a full corpus rescan
        RESCAN_ALL: Whether a full rescan revisits photos that were already processed
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"
    )

    # Core Settings
    PROJECT_NAME: str = "Wedding Guest Tagging Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Face Model Settings
    MODEL_CACHE_DIR: str = ".model_cache"
    FACE_MODEL_PACK: str = "buffalo_l"  # Accurate detector + the shared recognizer
    FAST_FACE_MODEL_PACK: str = "buffalo_s"  # Light detector, used as fallback
    DETECTION_SIZE: int = 640
    FAST_DETECTION_SIZE: int = 640
    EXECUTION_PROVIDERS: str = "CPUExecutionProvider"
    EMBEDDING_DIMENSION: int = 512

    @property
    def execution_providers(self) -> List[str]:
        """Get list of onnxruntime execution providers."""
        return [p.strip() for p in self.EXECUTION_PROVIDERS.split(",") if p.strip()]

    # Detection cascade, most restrictive first
    DETECTION_MIN_CONFIDENCE: float = 0.5
    DETECTION_RETRY_MIN_CONFIDENCE: float = 0.3
    FAST_DETECTION_MIN_CONFIDENCE: float = 0.3
    FAST_DETECTION_RETRY_MIN_CONFIDENCE: float = 0.15
    MAX_FACES_PER_IMAGE: int = 20

    # Face matching settings
    MATCH_DISTANCE_THRESHOLD: float = 1.0

    # Photo processing settings
    BATCH_SIZE: int = 10
    RESCAN_ALL: bool = True
    MAX_IMAGE_DIMENSION: int = 1600  # Longest side, in pixels
    FETCH_TIMEOUT_SECONDS: float = 30.0

    # Progress stream settings
    PROGRESS_KEEPALIVE_SECONDS: float = 30.0
    PROGRESS_RETENTION_SECONDS: float = 120.0  # How long a finished, unwatched scan stays replayable

    # Selfie quality gate
    SELFIE_MIN_FACE_RATIO: float = 0.2
    SELFIE_EDGE_MARGIN: float = 0.1

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./guest_tagger.db"
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    CREATE_TABLES_ON_STARTUP: bool = True

    # AWS Settings
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET: str = ""

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()

"""Application configuration via environment variables.

Provides type-safe settings loading using pydantic-settings.
Environment variables can be loaded from a .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development. Remote object storage
    is only used when AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and
    AWS_S3_BUCKET_NAME are all set; otherwise documents go to local disk
    (when STORAGE_ALLOW_LOCAL_FALLBACK is enabled).

    Environment Variables:
        AWS_ACCESS_KEY_ID: S3 access key
        AWS_SECRET_ACCESS_KEY: S3 secret key
        AWS_REGION: Region the bucket lives in (default us-east-1)
        AWS_S3_BUCKET_NAME: Bucket for employee and compliance documents
        AWS_S3_ENDPOINT: S3-compatible endpoint (MinIO, Spaces); unset for AWS
        STORAGE_ALLOW_LOCAL_FALLBACK: Fall back to local disk on S3 problems
        LOCAL_STORAGE_PATH: Root directory for local fallback storage
        DOCUSEAL_API_KEY: DocuSeal API token
        DOCUSEAL_BASE_URL: DocuSeal API base URL
        DOCUSEAL_WEBHOOK_SECRET: Shared secret for webhook signatures
        DOCUSEAL_SIMULATE: Use the in-memory signature provider
        LOG_LEVEL: Logging level (default INFO)
        CORS_ORIGINS: Comma-separated allowed browser origins
    """

    # Object Storage (S3)
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET_NAME: Optional[str] = None
    AWS_S3_ENDPOINT: Optional[str] = None
    S3_SERVER_SIDE_ENCRYPTION: Optional[str] = "AES256"

    # Local fallback storage
    STORAGE_ALLOW_LOCAL_FALLBACK: bool = True
    LOCAL_STORAGE_PATH: str = "./uploads"
    SIGNED_URL_EXPIRY_SECONDS: int = 3600

    # E-signature provider (DocuSeal)
    DOCUSEAL_API_KEY: Optional[str] = None
    DOCUSEAL_BASE_URL: str = "https://api.docuseal.co"
    DOCUSEAL_WEBHOOK_SECRET: Optional[str] = None
    DOCUSEAL_TIMEOUT_SECONDS: float = 30.0
    DOCUSEAL_SIMULATE: bool = False

    # Submission lifecycle timing (seconds unless noted)
    SUBMISSION_SEND_DELAY_SECONDS: float = 0.1
    SUBMISSION_OPEN_DELAY_SECONDS: float = 0.2
    SUBMISSION_EXPIRY_DAYS: int = 30
    SUBMISSION_CALLBACK_DELAY_SECONDS: float = 0.0

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache for singleton behavior.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()

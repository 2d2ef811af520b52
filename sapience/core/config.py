from pydantic_settings import BaseSettings
from typing import List, Union, Optional
from pydantic import field_validator


class Settings(BaseSettings):
    # Database
    DATABASE_URL: Optional[str] = None  # Overrides the POSTGRES_* components
    POSTGRES_USER: str = "sapience"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "sapience"

    @property
    def database_url(self) -> str:
        """Explicit DATABASE_URL, or one built from the POSTGRES_* components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # LLM
    OPENAI_API_KEY: str
    LLM_MODEL: str = "o4-mini"
    LLM_TPM_LIMIT: int = 90000  # Tokens per minute limit (adjust per your tier)
    LLM_MAX_INPUT_CHARS: int = 4000  # Article text sent for summarization

    # Feed fetching
    FEED_FETCH_TIMEOUT: float = 15.0  # seconds
    FEED_USER_AGENT: str = "Sapience RSS Reader/1.0"

    # Content backfill
    CONTENT_FETCH_TIMEOUT: float = 5.0  # seconds, shorter than feed fetch
    CONTENT_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )
    MIN_CONTENT_LENGTH: int = 500  # Bodies shorter than this get backfilled

    # Processing
    SUMMARY_BATCH_SIZE: int = 5  # Articles summarized per processing pass
    MIN_RELEVANCE_SCORE: int = 50  # 1-100 scale, recommend at or above
    RESCORE_WINDOW: int = 20  # Recent articles rescored after a vote

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    FEED_REFRESH_INTERVAL: int = 30  # minutes
    ARTICLE_PROCESSING_INTERVAL: int = 10  # minutes

    # Bootstrap
    BOOTSTRAP_DEFAULT_USER: bool = True
    DEFAULT_USERNAME: str = "defaultuser"
    DEFAULT_USER_EMAIL: str = "default@example.com"
    DEFAULT_INTERESTS: str = (
        "General technology news, programming, science, and current events."
    )

    # Application
    SECRET_KEY: str
    DEBUG: bool = False
    DEV_MODE: bool = False  # Issues tokens for the default user without credentials
    COOKIE_SECURE: bool = False  # Set True when served over HTTPS
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Split by comma or keep as single item
            return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()

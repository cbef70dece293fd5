"""Centralized configuration management using environment variables."""

import os
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Load environment variables from .env file
load_dotenv()

# Project root directory
ROOT_DIR = Path(__file__).parent.parent


class Settings:
    """Application settings loaded from environment variables."""

    # Tracking constants (not configurable: recovery and tests depend on them)
    MIN_DISPLACEMENT_METERS: float = 3.0
    DURATION_TICK_SECONDS: float = 1.0
    AUTO_SAVE_INTERVAL_SECONDS: float = 10.0
    SIMPLIFY_TOLERANCE_METERS: float = 5.0
    LOCATION_DISTANCE_FILTER_METERS: float = 5.0
    LOCATION_INTERVAL_SECONDS: float = 2.0
    PACE_MIN_DISTANCE_METERS: float = 10.0
    SYNC_STATUS_RESET_SECONDS: float = 3.0

    ACTIVITY_TYPES = ("run", "walk", "bike", "hike")

    def __init__(self):
        """Initialize settings from the environment."""
        # Supabase (hosted record store)
        self.SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
        self.SUPABASE_ANON_KEY: Optional[str] = os.getenv("SUPABASE_ANON_KEY")
        self.SUPABASE_ACCESS_TOKEN: Optional[str] = os.getenv("SUPABASE_ACCESS_TOKEN")
        self.SUPABASE_USER_ID: Optional[str] = os.getenv("SUPABASE_USER_ID")

        # Local durable store
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL",
            f"sqlite:///{ROOT_DIR}/data/trailzap.db"
        )

        # Ensure data directory exists for SQLite
        if self.DATABASE_URL.startswith("sqlite") and ":memory:" not in self.DATABASE_URL:
            data_dir = ROOT_DIR / "data"
            data_dir.mkdir(exist_ok=True)

        # App Settings
        self.APP_NAME: str = os.getenv("APP_NAME", "TrailZap")
        self.DEBUG: bool = os.getenv("DEBUG", "True").lower() == "true"
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR: Path = Path(os.getenv("LOG_DIR", str(ROOT_DIR / "logs")))

        # Remote client
        self.REMOTE_TIMEOUT_SECONDS: float = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))
        self.REMOTE_MAX_RETRIES: int = int(os.getenv("REMOTE_MAX_RETRIES", "3"))

        # Connectivity
        self.CONNECTIVITY_PROBE_HOSTS: List[str] = [
            host.strip()
            for host in os.getenv("CONNECTIVITY_PROBE_HOSTS", "8.8.8.8,1.1.1.1").split(",")
            if host.strip()
        ]
        self.CONNECTIVITY_PROBE_URL: Optional[str] = os.getenv("CONNECTIVITY_PROBE_URL") or None
        self.CONNECTIVITY_CHECK_INTERVAL: float = float(os.getenv("CONNECTIVITY_CHECK_INTERVAL", "15"))

        # Location
        self.LOCATION_FIX_TIMEOUT: float = float(os.getenv("LOCATION_FIX_TIMEOUT", "15"))

    @staticmethod
    def _get_required_env(key: str) -> str:
        """Get required environment variable or raise error."""
        value = os.getenv(key)
        if not value:
            raise ValueError(
                f"Required environment variable '{key}' is not set. "
                f"Please check your .env file."
            )
        return value

    def get_required(self, key: str) -> str:
        """Get a setting that must be present, falling back to the environment."""
        value = getattr(self, key, None)
        if value:
            return value
        return self._get_required_env(key)

    def get_database_url(self) -> str:
        """Get database URL."""
        return self.DATABASE_URL

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.DEBUG


# Global settings instance
settings = Settings()


# Database engine and session management
_engine: Optional[object] = None
_SessionLocal: Optional[sessionmaker] = None


def get_database_engine():
    """Get or create database engine singleton."""
    global _engine
    if _engine is None:
        connect_args = {}
        if settings.DATABASE_URL.startswith("sqlite"):
            # SQLite specific configuration
            connect_args = {"check_same_thread": False}

        _engine = create_engine(
            settings.DATABASE_URL,
            connect_args=connect_args,
            pool_pre_ping=True,  # Verify connections before using
        )
    return _engine


def get_session_maker() -> sessionmaker:
    """Get or create session maker."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_database_engine()
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=engine
        )
    return _SessionLocal


def get_database_session() -> Session:
    """Get a new database session."""
    SessionLocal = get_session_maker()
    return SessionLocal()


def validate_settings():
    """Validate all settings are correctly configured."""
    errors = []

    if not settings.SUPABASE_URL:
        errors.append("SUPABASE_URL is not configured")

    if not settings.SUPABASE_ANON_KEY or settings.SUPABASE_ANON_KEY == "your_anon_key":
        errors.append("SUPABASE_ANON_KEY is not configured")

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not configured")

    if errors:
        error_msg = "\n".join([f"  - {err}" for err in errors])
        raise ValueError(f"Configuration errors:\n{error_msg}\n\nPlease update your .env file.")

    return True

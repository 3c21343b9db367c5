"""
Configuration settings for the application
"""

import os
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Storage
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./unhangout.db")
    USE_FIREBASE: bool = os.getenv("USE_FIREBASE", "false").lower() in ("1", "true", "yes")
    FIREBASE_CREDENTIALS_JSON: str | None = os.getenv("FIREBASE_CREDENTIALS_JSON")
    FIREBASE_CREDENTIALS_FILE: str | None = os.getenv("FIREBASE_CREDENTIALS_FILE")
    FIREBASE_CREDENTIALS_B64: str | None = os.getenv("FIREBASE_CREDENTIALS_B64")

    # Security
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "fake secret")
    ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "admin_token_123")
    ADMIN_EMAILS: List[str] = []

    # Application
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:7777")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Hangouts
    HANGOUT_APP_ID: str = os.getenv("HANGOUT_APP_ID", "rofl")
    HANGOUT_CREATE_URL: str = "https://plus.google.com/hangouts/_"
    HANGOUT_CREATION_TIMEOUT: float = 30.0  # seconds
    HANGOUT_CONNECTION_TIMEOUT: float = 30.0  # seconds

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:7777",
        "https://*.googleusercontent.com",
    ]

    class Config:
        env_file = ".env"

settings = Settings()

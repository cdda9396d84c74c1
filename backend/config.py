import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the same directory as this file, regardless of where Flask is run from
load_dotenv(Path(__file__).parent / ".env")


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-in-production")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL", "sqlite:///chatbot_builder.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    MAX_TURN_STEPS = int(os.getenv("MAX_TURN_STEPS", "250"))
    RESTART_AFTER_END = _env_bool("RESTART_AFTER_END", True)
    API_VERSION = "1.0.0"

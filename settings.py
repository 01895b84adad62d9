import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env", override=False)
load_dotenv(BASE_DIR / ".env.local", override=True)


def as_bool(v: str, default=False) -> bool:
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def as_list(v: str, sep=","):
    if not v:
        return []
    return [x.strip() for x in str(v).split(sep) if x.strip()]


DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "househunt")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_UPLOAD_PRESET = os.getenv("CLOUDINARY_UPLOAD_PRESET", "househunt_unsigned")
CLOUDINARY_UPLOAD_FOLDER = os.getenv("CLOUDINARY_UPLOAD_FOLDER", "properties")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")
MEDIA_DELETE_URL = os.getenv("MEDIA_DELETE_URL", "http://localhost:4000/delete-image")
MEDIA_TIMEOUT = float(os.getenv("MEDIA_TIMEOUT", "30"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = as_list(os.getenv("CORS_ORIGINS", "*"))

DEBUG = as_bool(os.getenv("DEBUG", "false"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "media": {"handlers": ["console"], "level": LOG_LEVEL},
        "properties": {"handlers": ["console"], "level": LOG_LEVEL},
        "shortlists": {"handlers": ["console"], "level": LOG_LEVEL},
        "main": {"handlers": ["console"], "level": LOG_LEVEL},
        "pymongo": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}

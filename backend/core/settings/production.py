# flake8: noqa
"""
Production environment settings for the project collaboration backend.

Extends the base settings for deployment: secure cookies, SMTP mail,
whitenoise static files and JSON file logging.
"""

from .base import *
import logging

from decouple import Csv

from .utils import load_environment_config

# Load environment configuration
config = load_environment_config("production")

# Environment identification
ENVIRONMENT = "production"

# Security settings for production
DEBUG = False
SECRET_KEY = config("SECRET_KEY")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="", cast=Csv())

# CORS settings for production
CORS_ALLOWED_ORIGINS = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CORS_ALLOW_ALL_ORIGINS = False

# Security headers for production
SECURE_SSL_REDIRECT = True
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_CONTENT_TYPE_NOSNIFF = True

# Email configuration for production
EMAIL_BACKEND = "django.core.mail.backends.smtp.EmailBackend"
EMAIL_HOST = config("EMAIL_HOST")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_USE_TLS = True
EMAIL_HOST_USER = config("EMAIL_HOST_USER")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD")
DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="noreply@projects.local")
FRONTEND_HOST = config("FRONTEND_HOST")

# Uploaded files
MEDIA_ROOT = config("MEDIA_ROOT", default=str(BASE_DIR / "media"))
STORAGES["staticfiles"] = {
    "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
}

# Database configuration for production
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": config("POSTGRES_DB"),
        "USER": config("POSTGRES_USER"),
        "PASSWORD": config("POSTGRES_PASSWORD"),
        "HOST": config("DB_HOST"),
        "PORT": "5432",
        "CONN_MAX_AGE": 60,  # Connection pooling 1 minute
        "OPTIONS": {
            "connect_timeout": 5,  # Max 5 second waiting for DB connection
        }
    }
}

# Production logging: JSON lines for the log shipper
LOG_DIR = config("LOG_DIR", default="/var/log/django")
os.makedirs(LOG_DIR, exist_ok=True)


def _json_file_handler(level, file_name, max_megabytes):
    return {
        "level": level,
        "class": "logging.handlers.RotatingFileHandler",
        "filename": os.path.join(LOG_DIR, file_name),
        "maxBytes": 1024 * 1024 * max_megabytes,
        "backupCount": 10,
        "formatter": "json",
        "encoding": "utf-8",
    }


LOGGING["handlers"].update(
    {
        "production_file": _json_file_handler("INFO", "production.log", 100),
        "production_errors": _json_file_handler("ERROR", "production_errors.log", 50),
        "production_security": _json_file_handler("WARNING", "security.log", 50),
    }
)

# Application loggers: console plus the JSON files
for logger_name in ["django", "users", "projects"]:
    LOGGING["loggers"][logger_name].update(
        handlers=["console", "production_file", "production_errors"], level="INFO"
    )

LOGGING["loggers"]["django.security"].update(
    handlers=["production_security"], level="WARNING"
)
LOGGING["loggers"]["django.db.backends"]["level"] = "ERROR"
LOGGING["loggers"]["django.request"]["level"] = "WARNING"

logger = logging.getLogger(__name__)
logger.info(
    "Production environment initialized",
    extra={
        "environment": ENVIRONMENT,
        "debug_mode": DEBUG,
        "allowed_hosts": ALLOWED_HOSTS,
        "action": "environment_startup",
        "component": "settings",
        "severity": "info",
    },
)

# Static files served by whitenoise right after SecurityMiddleware
MIDDLEWARE.insert(1, "whitenoise.middleware.WhiteNoiseMiddleware")

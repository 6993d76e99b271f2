"""
Configuration for the PrintIt order builder.

Page counting for DOCX and order creation are external services; their
addresses and the per-page tariff come from the environment (or .env).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB uploads
    SESSION_COOKIE_NAME = "print_order_session"
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # External services
    PAGE_COUNT_SERVICE_URL = os.environ.get(
        "PAGE_COUNT_SERVICE_URL", "http://localhost:5000/api/count-docx-pages"
    )
    ORDER_SERVICE_URL = os.environ.get(
        "ORDER_SERVICE_URL", "http://localhost:5000/api/orders"
    )
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30"))

    # How long a request thread waits for the order loop
    ORDER_REQUEST_TIMEOUT_SECONDS = float(
        os.environ.get("ORDER_REQUEST_TIMEOUT_SECONDS", "60")
    )

    # Idle order sessions (and their uploaded bytes) are dropped after this
    ORDER_SESSION_IDLE_SECONDS = float(
        os.environ.get("ORDER_SESSION_IDLE_SECONDS", "1800")
    )

    # Send base64 document content with the order payload
    ORDER_INCLUDE_CONTENT = _env_bool("ORDER_INCLUDE_CONTENT", "1")

    # ==========================================================================
    # Tariff
    # ==========================================================================
    # Integer price units per printed side.
    # Formula: price = effective_pages × copies × rate
    #   effective_pages = ceil(pages / 2) when duplex, else pages
    # ==========================================================================
    PRICE_PER_PAGE_MONOCHROME = int(os.environ.get("PRICE_PER_PAGE_MONOCHROME", "2"))
    PRICE_PER_PAGE_COLOR = int(os.environ.get("PRICE_PER_PAGE_COLOR", "8"))
    PRICE_CURRENCY = os.environ.get("PRICE_CURRENCY", "INR")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ORDER_INCLUDE_CONTENT = False
    ORDER_REQUEST_TIMEOUT_SECONDS = 10.0

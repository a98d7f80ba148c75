"""
Configuration for LabelSheetPrint.

All settings come from the environment (optionally a .env file).
The registration backend is required for printing - jobs fail closed
with a "not configured" result when LABEL_API_BASE_URL is empty.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # JSON bodies only
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Registration backend
    # ==========================================================================
    # Every QR code printed on a label is registered here BEFORE rendering.
    # An empty base URL means printing is not configured.
    # ==========================================================================
    LABEL_API_BASE_URL = os.environ.get("LABEL_API_BASE_URL", "")
    LABEL_API_KEY = os.environ.get("LABEL_API_KEY", "")
    LABEL_PREPARE_PATH = os.environ.get(
        "LABEL_PREPARE_PATH", "/functions/v1/prepare-print-labels"
    )
    LABEL_TRACK_PATH = os.environ.get("LABEL_TRACK_PATH", "/functions/v1/qr-register")
    LABEL_API_TIMEOUT_SECONDS = float(os.environ.get("LABEL_API_TIMEOUT_SECONDS", "30"))

    # Literal prefix encoded into every code image: {base}/{code}
    QR_TRACKING_BASE_URL = os.environ.get(
        "QR_TRACKING_BASE_URL", "https://floradistro.com/qr"
    )

    # Registration retry policy: delay = base * 2^(attempt-1)
    REGISTRATION_MAX_ATTEMPTS = int(os.environ.get("REGISTRATION_MAX_ATTEMPTS", "3"))
    REGISTRATION_BASE_DELAY_SECONDS = float(
        os.environ.get("REGISTRATION_BASE_DELAY_SECONDS", "1.0")
    )

    # Best-effort tracking call after a successful print
    TRACK_PRINT_EVENTS = _env_bool("TRACK_PRINT_EVENTS", "0")

    # ==========================================================================
    # Printer
    # ==========================================================================
    PRINTER_SETTINGS_PATH = os.environ.get(
        "PRINTER_SETTINGS_PATH", str(BASE_DIR / "instance" / "printer_settings.json")
    )
    PRINTER_SPOOL_DIR = os.environ.get(
        "PRINTER_SPOOL_DIR", str(BASE_DIR / "instance" / "spool")
    )
    PRINTER_SOCKET_TIMEOUT_SECONDS = float(
        os.environ.get("PRINTER_SOCKET_TIMEOUT_SECONDS", "10")
    )

    # ==========================================================================
    # Label branding
    # ==========================================================================
    LABEL_BRAND_FALLBACK = os.environ.get("LABEL_BRAND_FALLBACK", "W")
    LABEL_DEFAULT_LOCATION_NAME = os.environ.get(
        "LABEL_DEFAULT_LOCATION_NAME", "Licensed Dispensary"
    )
    QR_LOGO_SIZE_RATIO = float(os.environ.get("QR_LOGO_SIZE_RATIO", "0.22"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "production"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    LABEL_API_BASE_URL = "https://backend.test"
    LABEL_API_KEY = "test-key"
    REGISTRATION_BASE_DELAY_SECONDS = 0.0
    TRACK_PRINT_EVENTS = False
    PRINTER_SETTINGS_PATH = None  # in-memory settings store

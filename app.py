"""
LabelSheetPrint - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration and sets up logging
2. Builds the registration client and printer sinks
3. Loads the process-wide printer settings store
4. Creates the label job service (thread-per-job)
5. Registers route blueprints and JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling
    └── Cleanup on shutdown (join job threads)

    Job Threads (one per submission / reprint)
    └── Each with OWN event loop, OWN orchestrator, settings SNAPSHOT

NO SHARED MUTABLE STATE between jobs. Job threads report back only
through the JobResultStore.
"""

from __future__ import annotations

import atexit
import functools
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.registration_client import RegistrationClient
from core.retry import RetryPolicy
from modules.image_prefetch import prefetch_images
from modules.printer_config import PrinterSettingsStore
from modules.printer_sink import (
    PreviewSink,
    PrinterSink,
    PrinterSinkRouter,
    SocketPrinterSink,
    SpoolDirectoryPrinterSink,
)
from services.job_service import LabelJobService
from services.print_orchestrator import PrintJobOrchestrator
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _get_base_path() -> Path:
    """
    Get the base path for the application.

    In PyInstaller bundle: Returns the directory containing the executable
    In development: Returns the directory containing app.py
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def create_app(
    config_object: str = "config.Config",
    overrides: Optional[Dict[str, Any]] = None,
    *,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    printer_sink: Optional[PrinterSink] = None,
    preview_sink: Optional[PreviewSink] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Dotted path of the config class
        overrides: Extra config values applied after the config class
        http_transport: httpx transport for backend and image calls (tests)
        printer_sink: Replaces the socket/spool router (tests)
        preview_sink: Interactive sink for jobs submitted with preview

    Returns:
        Configured Flask application
    """
    # Load .env from base path (next to executable in production)
    # Use override=True so .env file always takes precedence over shell environment
    env_file = _get_base_path() / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)

    # Create Flask app
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        app_name="label_print",
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting LabelSheetPrint in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE INITIALIZATION
    # =========================================================================

    client = RegistrationClient(
        app.config["LABEL_API_BASE_URL"],
        app.config.get("LABEL_API_KEY", ""),
        prepare_path=app.config["LABEL_PREPARE_PATH"],
        track_path=app.config["LABEL_TRACK_PATH"],
        timeout_seconds=app.config["LABEL_API_TIMEOUT_SECONDS"],
        tracking_base_url=app.config["QR_TRACKING_BASE_URL"],
        transport=http_transport,
    )
    if not client.is_configured:
        # Not fatal: jobs fail closed with a "not configured" result
        logger.warning("LABEL_API_BASE_URL is not set - label jobs will fail until configured")

    if printer_sink is None:
        printer_sink = PrinterSinkRouter({
            "socket": SocketPrinterSink(app.config["PRINTER_SOCKET_TIMEOUT_SECONDS"]),
            "file": SpoolDirectoryPrinterSink(app.config["PRINTER_SPOOL_DIR"]),
        })

    settings_store = PrinterSettingsStore(app.config.get("PRINTER_SETTINGS_PATH"))

    retry_policy = RetryPolicy(
        max_attempts=app.config["REGISTRATION_MAX_ATTEMPTS"],
        base_delay=app.config["REGISTRATION_BASE_DELAY_SECONDS"],
    )

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    def orchestrator_factory(settings, on_status, job_logger) -> PrintJobOrchestrator:
        return PrintJobOrchestrator(
            client,
            printer_sink,
            settings=settings,
            preview_sink=preview_sink,
            retry_policy=retry_policy,
            image_loader=functools.partial(prefetch_images, transport=http_transport),
            on_status=on_status,
            track_print_events=app.config["TRACK_PRINT_EVENTS"],
            default_location_name=app.config["LABEL_DEFAULT_LOCATION_NAME"],
            brand_logo_fallback=app.config["LABEL_BRAND_FALLBACK"],
            tracking_base_url=app.config["QR_TRACKING_BASE_URL"],
            logo_size_ratio=app.config["QR_LOGO_SIZE_RATIO"],
            logger=job_logger,
        )

    job_service = LabelJobService(orchestrator_factory, settings_store)

    # Store in app config for access by routes
    app.config["REGISTRATION_CLIENT"] = client
    app.config["PRINTER_SETTINGS_STORE"] = settings_store
    app.config["JOB_SERVICE"] = job_service
    logger.info("Label job service initialized")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        job_service.shutdown()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return {"error": e.name, "message": e.description}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {"error": "Internal Server Error", "message": "An unexpected error occurred"}, 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)

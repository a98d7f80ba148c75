"""
API routes (JSON endpoints).

Handles:
- /api/printer/settings - Read or update the printer settings
- /health               - Health check endpoint
"""

from flask import Blueprint, current_app, request

from routes.labels import sanitize_text
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/api/printer/settings", methods=["GET"])
def get_printer_settings():
    """Current printer settings (what the next job will snapshot)."""
    store = current_app.config["PRINTER_SETTINGS_STORE"]
    return store.to_dict()


@api_bp.route("/api/printer/settings", methods=["PUT"])
def update_printer_settings():
    """
    Update one or more printer settings.

    Accepts any of destination_id, printer_name, auto_print_enabled,
    start_position. Jobs already running keep the settings they started with.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not body:
        return {"error": "Bad Request", "message": "Request body must be a non-empty JSON object"}, 400

    fields = dict(body)
    if "printer_name" in fields:
        fields["printer_name"] = sanitize_text(fields["printer_name"], 100)
    if "destination_id" in fields and fields["destination_id"] is not None:
        fields["destination_id"] = str(fields["destination_id"]).strip()

    store = current_app.config["PRINTER_SETTINGS_STORE"]
    try:
        store.update(**fields)
    except (ValueError, TypeError) as e:
        logger.warning(f"Rejected printer settings update: {e}")
        return {"error": "Bad Request", "message": str(e)}, 400
    except OSError as e:
        logger.error(f"Printer settings could not be saved: {e}")
        return {"error": "Internal Server Error", "message": "Printer settings could not be saved"}, 500

    return store.to_dict()


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Check registration backend configuration
    client = current_app.config.get("REGISTRATION_CLIENT")
    if client and client.is_configured:
        health_status["checks"]["registration_backend"] = "configured"
    else:
        health_status["checks"]["registration_backend"] = "not_configured"
        health_status["status"] = "degraded"

    # Check printer selection
    store = current_app.config.get("PRINTER_SETTINGS_STORE")
    if store and store.snapshot().is_printer_configured:
        health_status["checks"]["printer"] = "selected"
    else:
        health_status["checks"]["printer"] = "not_selected"

    # Check job service
    job_service = current_app.config.get("JOB_SERVICE")
    if job_service:
        health_status["checks"]["job_service"] = "ok"
    else:
        health_status["checks"]["job_service"] = "not_available"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code

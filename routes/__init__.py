"""
Flask route blueprints for LabelSheetPrint.

This module contains all route handlers organized by functionality:
- labels: Label job submission, status polling, reprint
- api: Printer settings and health check

Each blueprint is registered with the Flask app in create_app().
"""

from .labels import labels_bp
from .api import api_bp

__all__ = [
    "labels_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(labels_bp)
    app.register_blueprint(api_bp)

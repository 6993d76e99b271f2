"""
Flask route blueprints for the order builder.

This module contains all route handlers organized by functionality:
- main: Health check and tariff
- upload: Add files to the order
- order: Snapshot, remove, preferences, reset, cancel
- submit: Send the order to the order service

Each blueprint is registered with the Flask app in create_app().
"""

from .main import main_bp
from .upload import upload_bp
from .order import order_bp
from .submit import submit_bp

__all__ = [
    "main_bp",
    "upload_bp",
    "order_bp",
    "submit_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(main_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(order_bp)
    app.register_blueprint(submit_bp)

"""
PrintIt order builder - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration (.env next to the executable wins)
2. Starts the order session service (separate event-loop thread)
3. Registers route blueprints
4. Sets up JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling
    └── Cleanup on shutdown

    OrderLoop Thread (background)
    ├── One OrderController per browser session
    ├── Page counts run concurrently as asyncio tasks
    └── Shared httpx.AsyncClient for counting / order services

Request threads never touch a controller directly; they hand work to the
loop and get plain results back.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.exceptions import (
    PrintOrderError,
    DocumentError,
    DuplicateFilesError,
    EmptyOrderError,
    IndexOutOfRangeError,
    InvalidPreferencesError,
    OrderSubmissionError,
)
from services.order_session_service import OrderSessionService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)

# Status code per user-facing error type (most specific first)
ERROR_STATUS = (
    (IndexOutOfRangeError, 404),
    (InvalidPreferencesError, 400),
    (EmptyOrderError, 400),
    (DuplicateFilesError, 409),
    (DocumentError, 422),
    (OrderSubmissionError, 502),
)


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


def _status_for(error: PrintOrderError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 400


def create_app(
    config_object: str = "config.Config",
    session_service: Optional[OrderSessionService] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        session_service: Pre-built (not yet started) service, mainly for tests

    Returns:
        Configured Flask application
    """
    # Load .env from base path (next to executable in production)
    # Use override=True so .env file always takes precedence over shell environment
    base_path = _get_base_path()
    env_file = base_path / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)  # Default behavior

    # Create Flask app
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting PrintIt order builder in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    order_service = session_service or OrderSessionService(app.config)
    order_service.start()
    app.config["ORDER_SESSION_SERVICE"] = order_service
    logger.info("Order session service started")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown (no-op once the service is stopped)."""
        if not order_service.is_running:
            return
        logger.info("Shutting down...")
        order_service.stop()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(PrintOrderError)
    def handle_order_error(e: PrintOrderError):
        status = _status_for(e)
        if status >= 500:
            logger.error(f"{type(e).__name__}: {e}")
        else:
            logger.info(f"{type(e).__name__}: {e.message}")
        return jsonify({
            "error": e.message,
            "type": type(e).__name__,
            "details": e.details,
        }), status

    @app.errorhandler(TimeoutError)
    def handle_timeout(e):
        return jsonify({"error": str(e) or "Order service is busy, please retry"}), 503

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        max_mb = app.config.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024) / (1024 * 1024)
        return jsonify({"error": f"File too large. Maximum upload size is {max_mb:.0f} MB."}), 413

    @app.errorhandler(404)
    def handle_not_found(e):
        return jsonify({"error": "Not found."}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(e):
        return jsonify({"error": "Method not allowed."}), 405

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred. Please try again."}), 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    # The reloader would start a second order loop in the parent process
    app.run(debug=debug_mode, use_reloader=False)

"""Per-browser order session helpers shared by the route blueprints."""

import uuid

from flask import current_app, session

from services.order_session_service import OrderSessionService


SESSION_KEY = "order_session_id"


def current_session_id() -> str:
    """Return this browser's order session id, creating one on first use."""
    session_id = session.get(SESSION_KEY)
    if not session_id:
        session_id = uuid.uuid4().hex
        session[SESSION_KEY] = session_id
        session.modified = True
    return session_id


def order_service() -> OrderSessionService:
    """
    Get the order session service from app config.

    Raises:
        RuntimeError: If the app was created without one
    """
    service = current_app.config.get("ORDER_SESSION_SERVICE")
    if service is None:
        raise RuntimeError("Order session service unavailable")
    return service

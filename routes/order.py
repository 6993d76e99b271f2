"""
Order routes.

Handles:
- GET    /api/order                                  - Order snapshot (poll while ingesting)
- DELETE /api/order/files/<file_key>                 - Remove a file (or cancel it in flight)
- PATCH  /api/order/files/<file_key>/preferences     - Partial preference update
- POST   /api/order/reset                            - Clear the order
- POST   /api/order/cancel                           - Abandon in-flight ingestion
- POST   /api/order/dismiss-error                    - Clear the last error message

Files are addressed by FileKey, never by position, so a removal or an
insert landing in between cannot shift which entry a request targets.
"""

from flask import (
    Blueprint,
    jsonify,
    request,
)

from core.exceptions import InvalidPreferencesError
from logging_config import get_logger
from .session import current_session_id, order_service


# Module logger
logger = get_logger(__name__)

order_bp = Blueprint("order", __name__)

PREFERENCE_FIELDS = ("print_mode", "copies", "duplex")


@order_bp.route("/api/order", methods=["GET"])
def get_order():
    """Return the current order with per-entry prices and totals."""
    order = order_service().call(current_session_id(), lambda c: c.snapshot())
    return jsonify({"order": order})


@order_bp.route("/api/order/files/<path:file_key>", methods=["DELETE"])
def remove_file(file_key: str):
    """Remove a file from the order, or cancel it if it is still counting."""
    service = order_service()
    session_id = current_session_id()

    service.call(session_id, lambda c: c.remove_file(file_key))
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"removed": file_key, "order": order})


@order_bp.route("/api/order/files/<path:file_key>/preferences", methods=["PATCH"])
def update_preferences(file_key: str):
    """
    Merge a partial preference update into one file.

    Body: JSON with any of print_mode, copies, duplex.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidPreferencesError("Request body must be a JSON object")

    partial = {k: v for k, v in body.items() if k in PREFERENCE_FIELDS}
    unknown = sorted(set(body) - set(PREFERENCE_FIELDS))
    if unknown:
        raise InvalidPreferencesError(f"Unknown preference: {unknown[0]}", field=unknown[0])

    service = order_service()
    session_id = current_session_id()

    entry = service.call(session_id, lambda c: c.update_preferences(file_key, **partial))
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"preferences": entry.preferences.to_dict(), "order": order})


@order_bp.route("/api/order/reset", methods=["POST"])
def reset_order():
    """Clear all files, preferences and errors."""
    service = order_service()
    session_id = current_session_id()

    service.call(session_id, lambda c: c.reset())
    logger.info(f"Session {session_id[:8]}: order reset")
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"order": order})


@order_bp.route("/api/order/cancel", methods=["POST"])
def cancel_ingestion():
    """Abandon files that are still counting; committed files stay."""
    service = order_service()
    session_id = current_session_id()

    cancelled = service.call(session_id, lambda c: c.cancel_ingestion())
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"cancelled": cancelled, "order": order})


@order_bp.route("/api/order/dismiss-error", methods=["POST"])
def dismiss_error():
    service = order_service()
    session_id = current_session_id()

    service.call(session_id, lambda c: c.dismiss_error())
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"order": order})

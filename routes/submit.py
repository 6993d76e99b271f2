"""
Order submission route.

Sends the current order to the external order-creation service.
The order is NOT cleared on success unless the client asks for it with
?clear=1 - clearing is a deliberate caller choice.
"""

from flask import (
    Blueprint,
    jsonify,
    request,
)

from logging_config import get_logger
from .session import current_session_id, order_service


# Module logger
logger = get_logger(__name__)

submit_bp = Blueprint("submit", __name__)


@submit_bp.route("/api/order/submit", methods=["POST"])
def submit():
    """
    Submit the order.

    Returns:
        201 with the confirmation (order_id / redirect_url for payment),
        400 for an empty order, 502 when the order service fails
    """
    service = order_service()
    session_id = current_session_id()

    logger.info(f"Session {session_id[:8]}: submitting order")
    confirmation = service.call(session_id, lambda c: c.submit())

    if request.args.get("clear") in ("1", "true", "yes"):
        service.call(session_id, lambda c: c.reset())

    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"confirmation": confirmation.to_dict(), "order": order}), 201

"""
Main routes (health, pricing).

Simple read-only endpoints that don't touch an order.
"""

from flask import Blueprint, jsonify

from .session import order_service

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    """Health check: reports whether the order loop is running."""
    service = order_service()
    status = "ok" if service.is_running else "degraded"
    return jsonify({
        "status": status,
        "order_loop_running": service.is_running,
        "sessions": service.session_count,
    }), 200 if service.is_running else 503


@main_bp.route("/api/pricing", methods=["GET"])
def pricing():
    """Per-page tariff by print mode."""
    service = order_service()
    return jsonify({
        "rates": service.pricing(),
        "currency": service.price_engine.currency,
    })

"""
Services layer for the print order builder.

This module contains the business logic services:
- OrderController: The order-building state machine (one per order)
- OrderSessionService: Event-loop thread hosting one controller per session

Thread Model:
    Main Thread (Flask)
    └── OrderLoop thread (asyncio event loop)
        └── One task per page count / batch / submission

Controllers are only ever touched from the OrderLoop thread.
"""

from .order_controller import OrderController
from .order_session_service import OrderSessionService

__all__ = [
    "OrderController",
    "OrderSessionService",
]

"""Helper modules for the PrintIt order builder."""

__all__ = [
    "order_payload",
    "page_counter",
    "pricing",
]

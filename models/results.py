"""
Result data models.

These models carry outcomes from the order controller back to callers:
the controller's lifecycle state, the outcome of one add-files batch,
and the confirmation returned by the order service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import PrintOrderError
from models.document import FileKey


class OrderState(Enum):
    """
    Lifecycle state of an order controller.

    Lifecycle:
        IDLE -> INGESTING -> (READY | ERROR)
        any  -> IDLE  (reset)
    """

    IDLE = "idle"
    """No entries, nothing in flight, no error."""

    INGESTING = "ingesting"
    """At least one add-files batch is still counting pages."""

    READY = "ready"
    """Entries present, nothing in flight."""

    ERROR = "error"
    """The last operation left a user-facing error message."""


@dataclass(frozen=True)
class FileFailure:
    """One file that could not be added to the order."""

    name: str
    key: FileKey
    error: PrintOrderError

    @property
    def message(self) -> str:
        return self.error.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "file_key": self.key,
            "error": type(self.error).__name__,
            "message": self.error.message,
        }


@dataclass(frozen=True)
class IngestionResult:
    """
    Outcome of one add_files() batch.

    Insert-partial policy: files in `added` were committed even when
    `failures` is non-empty.
    """

    added: List[FileKey] = field(default_factory=list)
    """Keys committed to the order, in input order."""

    duplicates: List[str] = field(default_factory=list)
    """Names dropped because they were already in the order (or the batch)."""

    failures: List[FileFailure] = field(default_factory=list)
    """Files whose page count could not be resolved."""

    discarded: List[FileKey] = field(default_factory=list)
    """Keys resolved but not committed (removed in flight, reset or cancelled)."""

    error: Optional[PrintOrderError] = None
    """Error surfaced to the user for this batch, if any."""

    error_message: str = ""
    """User-facing message (aggregated for per-file failures)."""

    @property
    def ok(self) -> bool:
        return not self.error_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "added": list(self.added),
            "duplicates": list(self.duplicates),
            "failures": [f.to_dict() for f in self.failures],
            "discarded": list(self.discarded),
            "error": self.error_message or None,
        }


@dataclass(frozen=True)
class OrderConfirmation:
    """
    Response from the order-creation service.

    The core only cares about success; order_id and redirect_url are passed
    through so the caller can continue to payment.
    """

    submitted_at: datetime
    total_price: int
    order_id: Optional[str] = None
    redirect_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Any, total_price: int) -> "OrderConfirmation":
        """
        Build from the service's JSON body.

        Accepts 'orderId'/'order_id'/'id' and 'redirectUrl'/'redirect_url'/
        'paymentUrl'/'payment_url'. Non-dict bodies are kept empty.
        """
        body = data if isinstance(data, dict) else {}
        order_id = body.get("orderId", body.get("order_id", body.get("id")))
        redirect_url = (
            body.get("redirectUrl")
            or body.get("redirect_url")
            or body.get("paymentUrl")
            or body.get("payment_url")
        )
        return cls(
            submitted_at=datetime.now(timezone.utc),
            total_price=total_price,
            order_id=str(order_id) if order_id is not None else None,
            redirect_url=redirect_url,
            raw=dict(body),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "submitted_at": self.submitted_at.isoformat(),
            "total_price": self.total_price,
            "order_id": self.order_id,
            "redirect_url": self.redirect_url,
        }

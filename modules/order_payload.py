"""Builds the JSON payload sent to the order-creation service."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from models.order import OrderCollection
from modules.pricing import PriceEngine


class OrderPayloadBuilder:
    """
    Serializes an order collection plus computed prices.

    Responsibilities:
        - One payload entry per order entry, in order
        - Per-entry price and grand total from the PriceEngine
        - Optional base64 document content (ORDER_INCLUDE_CONTENT)
    """

    def __init__(
        self,
        price_engine: PriceEngine,
        include_content: bool = True,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.price_engine = price_engine
        self.include_content = include_content
        self.logger = logger or logging.getLogger(__name__)

    def build(self, collection: OrderCollection) -> Dict[str, Any]:
        quote = self.price_engine.quote(collection)

        entries = []
        for entry, line in zip(collection, quote.lines):
            document = entry.document
            item: Dict[str, Any] = {
                "file_key": entry.key,
                "name": document.name,
                "media_kind": document.kind.value,
                "mime_type": document.mime_type,
                "size_bytes": document.size_bytes,
                "last_modified": document.last_modified,
                "page_count": entry.page_count,
                "preferences": entry.preferences.to_dict(),
                "effective_pages": line.effective_pages,
                "price": line.price,
            }
            if self.include_content:
                item["content_base64"] = base64.b64encode(document.content).decode("ascii")
            entries.append(item)

        payload = {
            "entries": entries,
            "total_pages": quote.total_pages,
            "total_price": quote.total_price,
            "currency": quote.currency,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        self.logger.debug(
            f"Built order payload: {len(entries)} entries, "
            f"{quote.total_pages} pages, total={quote.total_price}"
        )
        return payload

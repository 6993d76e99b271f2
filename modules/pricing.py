"""Price calculation for order entries and whole orders."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from models.document import FileKey
from models.order import OrderCollection, OrderEntry, PrintMode


@dataclass(frozen=True)
class LineQuote:
    """Price breakdown for one entry."""

    key: FileKey
    name: str
    page_count: int
    effective_pages: int
    copies: int
    rate: int
    price: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_key": self.key,
            "name": self.name,
            "page_count": self.page_count,
            "effective_pages": self.effective_pages,
            "copies": self.copies,
            "rate": self.rate,
            "price": self.price,
        }


@dataclass(frozen=True)
class OrderQuote:
    """Price breakdown for a whole order, computed from its current entries."""

    lines: List[LineQuote]
    total_pages: int
    total_sheets: int
    total_price: int
    currency: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "total_pages": self.total_pages,
            "total_sheets": self.total_sheets,
            "total_price": self.total_price,
            "currency": self.currency,
        }


class PriceEngine:
    """
    Computes prices from the entries' current preferences.

    Nothing is cached: every call recomputes from the collection it is
    given, so totals cannot drift from the entries.
    """

    DEFAULT_RATES = {
        PrintMode.MONOCHROME: 2,
        PrintMode.COLOR: 8,
    }

    def __init__(
        self,
        rates: Optional[Mapping[Any, int]] = None,
        currency: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Args:
            rates: Per-page rate by print mode (PrintMode or its string value).
                Every mode must be priced.
            currency: Label passed through to quotes and payloads

        Raises:
            KeyError: If a print mode has no rate
            ValueError: If a rate is negative
        """
        source = self.DEFAULT_RATES if rates is None else rates
        parsed = {PrintMode.parse(mode): int(rate) for mode, rate in source.items()}

        missing = [mode.value for mode in PrintMode if mode not in parsed]
        if missing:
            raise KeyError(f"No per-page rate configured for: {', '.join(missing)}")
        negative = [mode.value for mode, rate in parsed.items() if rate < 0]
        if negative:
            raise ValueError(f"Per-page rate must be >= 0 for: {', '.join(negative)}")

        self._rates: Dict[PrintMode, int] = parsed
        self.currency = currency
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PriceEngine":
        """Build from a Flask config mapping (PRICE_PER_PAGE_* keys)."""
        return cls(
            rates={
                PrintMode.MONOCHROME: config.get("PRICE_PER_PAGE_MONOCHROME", 2),
                PrintMode.COLOR: config.get("PRICE_PER_PAGE_COLOR", 8),
            },
            currency=config.get("PRICE_CURRENCY", ""),
        )

    @property
    def rates(self) -> Dict[PrintMode, int]:
        return dict(self._rates)

    def per_page_rate(self, print_mode: PrintMode) -> int:
        return self._rates[PrintMode.parse(print_mode)]

    @staticmethod
    def effective_pages(entry: OrderEntry) -> int:
        """Printed sides per copy: duplex halves the count, rounding up."""
        if entry.preferences.duplex:
            return math.ceil(entry.page_count / 2)
        return entry.page_count

    def entry_price(self, entry: OrderEntry) -> int:
        prefs = entry.preferences
        return self.effective_pages(entry) * prefs.copies * self.per_page_rate(prefs.print_mode)

    def total_price(self, collection: OrderCollection) -> int:
        return sum(self.entry_price(entry) for entry in collection)

    def quote(self, collection: OrderCollection) -> OrderQuote:
        """Full breakdown: one line per entry plus totals."""
        lines = []
        for entry in collection:
            prefs = entry.preferences
            lines.append(
                LineQuote(
                    key=entry.key,
                    name=entry.name,
                    page_count=entry.page_count,
                    effective_pages=self.effective_pages(entry),
                    copies=prefs.copies,
                    rate=self.per_page_rate(prefs.print_mode),
                    price=self.entry_price(entry),
                )
            )

        quote = OrderQuote(
            lines=lines,
            total_pages=collection.total_pages(),
            total_sheets=sum(line.effective_pages * line.copies for line in lines),
            total_price=sum(line.price for line in lines),
            currency=self.currency,
        )
        self.logger.debug(f"Quote: {len(lines)} entries, total={quote.total_price}")
        return quote

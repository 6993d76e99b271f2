"""
Order data models.

These models represent the order being built on the order page:
upload -> count pages -> tweak preferences -> submit.

Immutability:
    - PrintPreferences and OrderEntry are frozen dataclasses
    - OrderCollection never changes in place; every mutation returns a new
      collection and the controller swaps its reference
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from core.exceptions import IndexOutOfRangeError, InvalidPreferencesError
from models.document import Document, FileKey, derive_file_key


class PrintMode(Enum):
    """Print mode for a document."""

    MONOCHROME = "monochrome"
    COLOR = "color"

    @classmethod
    def parse(cls, value: Any) -> "PrintMode":
        """Accept a PrintMode or its string value ('bw' is kept as an alias)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "bw":
                return cls.MONOCHROME
            try:
                return cls(normalized)
            except ValueError:
                pass
        raise InvalidPreferencesError(
            f"Unknown print mode: {value!r}", field="print_mode", value=value
        )


@dataclass(frozen=True)
class PrintPreferences:
    """
    Per-document print preferences.

    Defaults to monochrome, one copy, single-sided.
    """

    print_mode: PrintMode = PrintMode.MONOCHROME
    """Monochrome or color."""

    copies: int = 1
    """Number of copies (>= 1)."""

    duplex: bool = False
    """Double-sided printing."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "print_mode", PrintMode.parse(self.print_mode))

        if isinstance(self.copies, bool) or not isinstance(self.copies, int):
            raise InvalidPreferencesError(
                "Copies must be a whole number", field="copies", value=self.copies
            )
        if self.copies < 1:
            raise InvalidPreferencesError(
                "Copies must be at least 1", field="copies", value=self.copies
            )
        if not isinstance(self.duplex, bool):
            raise InvalidPreferencesError(
                "Duplex must be true or false", field="duplex", value=self.duplex
            )

    def merge(self, **partial: Any) -> "PrintPreferences":
        """
        Shallow-merge a partial update.

        Fields not mentioned are left unchanged; None values are ignored.
        """
        known = {f.name for f in fields(self)}
        unknown = set(partial) - known
        if unknown:
            name = sorted(unknown)[0]
            raise InvalidPreferencesError(
                f"Unknown preference: {name}", field=name, value=partial[name]
            )

        changes = {k: v for k, v in partial.items() if v is not None}
        if not changes:
            return self
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON payloads."""
        return {
            "print_mode": self.print_mode.value,
            "copies": self.copies,
            "duplex": self.duplex,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrintPreferences":
        """Create from dictionary (e.g., from a request body)."""
        return cls(
            print_mode=data.get("print_mode", PrintMode.MONOCHROME),
            copies=data.get("copies", 1),
            duplex=data.get("duplex", False),
        )


@dataclass(frozen=True)
class OrderEntry:
    """
    A document with its resolved page count and print preferences.

    Only created once page counting succeeded.
    """

    document: Document
    page_count: int
    preferences: PrintPreferences = field(default_factory=PrintPreferences)

    def __post_init__(self) -> None:
        if self.page_count < 0:
            raise ValueError(f"page_count must be >= 0, got {self.page_count}")

    @property
    def key(self) -> FileKey:
        return derive_file_key(self.document)

    @property
    def name(self) -> str:
        return self.document.name

    def with_preferences(self, **partial: Any) -> "OrderEntry":
        return replace(self, preferences=self.preferences.merge(**partial))


def partition_new_documents(
    collection: "OrderCollection",
    documents: Iterable[Document],
) -> Tuple[List[Document], List[Document]]:
    """
    Split an incoming batch into (accepted, duplicates).

    A document is a duplicate when its key is already in the collection or
    appeared earlier in the same batch. Input order is preserved in both lists.
    """
    accepted: List[Document] = []
    duplicates: List[Document] = []
    seen = set()

    for document in documents:
        key = derive_file_key(document)
        if key in collection or key in seen:
            duplicates.append(document)
        else:
            seen.add(key)
            accepted.append(document)

    return accepted, duplicates


class OrderCollection:
    """
    Insertion-ordered, immutable sequence of OrderEntry, unique by FileKey.

    Totals are never cached here; compute them from the entries on demand.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[OrderEntry] = ()):
        unique: List[OrderEntry] = []
        seen = set()
        for entry in entries:
            if entry.key not in seen:
                seen.add(entry.key)
                unique.append(entry)
        self._entries: Tuple[OrderEntry, ...] = tuple(unique)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[OrderEntry]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> OrderEntry:
        return self._entries[self._check_index(index)]

    def __contains__(self, key: object) -> bool:
        return any(entry.key == key for entry in self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrderCollection):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        return hash(self._entries)

    def __repr__(self) -> str:
        return f"OrderCollection({[entry.name for entry in self._entries]!r})"

    @property
    def entries(self) -> Tuple[OrderEntry, ...]:
        return self._entries

    def contains(self, key: FileKey) -> bool:
        """Whether an entry with this key is in the order."""
        return key in self

    def keys(self) -> List[FileKey]:
        return [entry.key for entry in self._entries]

    def index_of(self, key: FileKey) -> int:
        """
        Position of the entry with this key.

        Raises:
            IndexOutOfRangeError: If no entry has this key
        """
        for index, entry in enumerate(self._entries):
            if entry.key == key:
                return index
        raise IndexOutOfRangeError(key, len(self._entries))

    def get(self, key: FileKey) -> Optional[OrderEntry]:
        for entry in self._entries:
            if entry.key == key:
                return entry
        return None

    def total_pages(self) -> int:
        """Sum of resolved page counts (one copy, simplex)."""
        return sum(entry.page_count for entry in self._entries)

    # ------------------------------------------------------------------
    # Mutations (return a new collection)
    # ------------------------------------------------------------------

    def add(self, entries: Iterable[OrderEntry]) -> "OrderCollection":
        """
        Append entries whose key is not present yet.

        Collisions with the collection, or with an earlier entry in the same
        batch, are dropped silently (first occurrence wins).
        """
        return OrderCollection(self._entries + tuple(entries))

    def remove(self, index: int) -> "OrderCollection":
        """
        Remove the entry at a position.

        Raises:
            IndexOutOfRangeError: If index is invalid
        """
        index = self._check_index(index)
        return OrderCollection(self._entries[:index] + self._entries[index + 1:])

    def update_preferences(self, index: int, **partial: Any) -> "OrderCollection":
        """
        Merge a partial preference update into the entry at a position.

        Raises:
            IndexOutOfRangeError: If index is invalid
            InvalidPreferencesError: If the update names an unknown field
                or carries an invalid value
        """
        index = self._check_index(index)
        updated = self._entries[index].with_preferences(**partial)
        entries = list(self._entries)
        entries[index] = updated
        return OrderCollection(entries)

    def clear(self) -> "OrderCollection":
        return OrderCollection()

    def _check_index(self, index: int) -> int:
        if isinstance(index, bool) or not isinstance(index, int):
            raise IndexOutOfRangeError(index, len(self._entries))
        if index < 0 or index >= len(self._entries):
            raise IndexOutOfRangeError(index, len(self._entries))
        return index

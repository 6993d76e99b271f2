"""
Order controller: the order-building state machine.

The controller owns one OrderCollection and drives everything that changes
it: ingestion (dedup -> count pages -> insert), removal, preference updates,
reset and submission.

EVENT LOOP MODEL:
    - Every method runs on ONE asyncio event loop; there is no parallelism,
      only interleaving while page counts and the order call are awaited
    - Each add_files() call is a batch; its documents are counted
      concurrently, one task per document
    - The commit step of a batch never awaits, so two batches cannot both
      pass the "not present yet" check and insert the same key

Batch rules:
    - Dedup happens twice: against the collection at call time (to skip
      work) and again at commit time (another batch may have won)
    - Insert-partial: files that counted successfully are committed in
      their original input order; failures are aggregated into one message
    - A key removed while still counting is discarded at commit
    - reset() and cancel_ingestion() abandon in-flight batches

State:
    INGESTING  while any batch is in flight
    ERROR      when the last operation left a user-facing message
    READY      entries present
    IDLE       empty
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from core.api_client import OrderServiceClient
from core.exceptions import (
    DocumentError,
    DuplicateFilesError,
    EmptyOrderError,
    IndexOutOfRangeError,
    OrderSubmissionError,
    PrintOrderError,
)
from models.document import Document, FileKey
from models.order import (
    OrderCollection,
    OrderEntry,
    partition_new_documents,
)
from models.results import FileFailure, IngestionResult, OrderConfirmation, OrderState
from modules.order_payload import OrderPayloadBuilder
from modules.page_counter import PageCounter
from modules.pricing import PriceEngine
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

EntryRef = Union[FileKey, str, int]


@dataclass
class _Batch:
    """Bookkeeping for one in-flight add_files() call."""

    batch_id: str
    documents: List[Document]
    tasks: List["asyncio.Task[int]"] = field(default_factory=list)
    cancelled: Set[FileKey] = field(default_factory=set)
    settled: int = 0
    abandoned: bool = False

    @property
    def keys(self) -> List[FileKey]:
        return [doc.key for doc in self.documents]

    def cancel_key(self, key: FileKey) -> bool:
        """Drop one pending key from this batch. Returns True if it was pending."""
        if key in self.cancelled or key not in self.keys:
            return False
        self.cancelled.add(key)
        for doc, task in zip(self.documents, self.tasks):
            if doc.key == key and not task.done():
                task.cancel()
        return True

    def abandon(self) -> None:
        self.abandoned = True
        for task in self.tasks:
            if not task.done():
                task.cancel()


class OrderController:
    """
    Builds one print order.

    Attributes:
        collection: Current OrderCollection (immutable; replaced on change)
        state: Current OrderState
        last_error: User-facing message from the last failed operation
    """

    def __init__(
        self,
        page_counter: PageCounter,
        price_engine: PriceEngine,
        order_client: Optional[OrderServiceClient] = None,
        payload_builder: Optional[OrderPayloadBuilder] = None,
    ):
        """
        Initialize an empty order.

        Args:
            page_counter: Resolves page counts (PDF locally, DOCX remotely)
            price_engine: Prices entries from their current preferences
            order_client: Order-creation service client (required to submit)
            payload_builder: Payload serializer (defaults to one over price_engine)
        """
        self._page_counter = page_counter
        self._price_engine = price_engine
        self._order_client = order_client
        self._payload_builder = payload_builder or OrderPayloadBuilder(price_engine)

        self._collection = OrderCollection()
        self._batches: Dict[str, _Batch] = {}
        self._last_error: Optional[str] = None
        self._submitting = False

    @classmethod
    async def with_handoff(
        cls,
        documents: Iterable[Document],
        page_counter: PageCounter,
        price_engine: PriceEngine,
        order_client: Optional[OrderServiceClient] = None,
        payload_builder: Optional[OrderPayloadBuilder] = None,
    ) -> "OrderController":
        """
        Create a controller pre-seeded with files picked on a previous screen.

        The hand-off is an ordinary add_files() batch with the same dedup,
        ordering and failure rules.
        """
        controller = cls(page_counter, price_engine, order_client, payload_builder)
        documents = list(documents)
        if documents:
            await controller.add_files(documents)
        return controller

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def collection(self) -> OrderCollection:
        return self._collection

    @property
    def price_engine(self) -> PriceEngine:
        return self._price_engine

    @property
    def is_ingesting(self) -> bool:
        """In-flight flag: True while any batch is still counting."""
        return bool(self._batches)

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def state(self) -> OrderState:
        if self._batches:
            return OrderState.INGESTING
        if self._last_error:
            return OrderState.ERROR
        if len(self._collection):
            return OrderState.READY
        return OrderState.IDLE

    def pending_documents(self) -> List[Document]:
        """Documents still counting (minus those removed in flight)."""
        pending = []
        for batch in self._batches.values():
            for doc in batch.documents:
                if doc.key not in batch.cancelled:
                    pending.append(doc)
        return pending

    def total_price(self) -> int:
        return self._price_engine.total_price(self._collection)

    def dismiss_error(self) -> None:
        self._last_error = None

    # =========================================================================
    # INGESTION
    # =========================================================================

    async def add_files(self, documents: Iterable[Document]) -> IngestionResult:
        """
        Add a batch of documents to the order.

        Never raises for user-correctable problems: duplicates and per-file
        counting failures are reported in the returned IngestionResult and
        stored as last_error.

        Args:
            documents: Uploaded documents, in the order the user picked them

        Returns:
            IngestionResult describing what was added, skipped and failed
        """
        documents = list(documents)
        self._last_error = None

        accepted, duplicates = partition_new_documents(self._collection, documents)
        duplicate_names = [doc.name for doc in duplicates]

        if not accepted:
            error = DuplicateFilesError(duplicate_names)
            self._last_error = error.message
            logger.info(f"Batch rejected: all {len(documents)} file(s) already in order")
            return IngestionResult(
                duplicates=duplicate_names,
                error=error,
                error_message=error.message,
            )

        batch = _Batch(batch_id=uuid.uuid4().hex[:8], documents=accepted)
        batch.tasks = [
            asyncio.create_task(
                self._count_one(batch, doc),
                name=f"count-{batch.batch_id}-{index}",
            )
            for index, doc in enumerate(accepted)
        ]
        self._batches[batch.batch_id] = batch

        logger.info(
            f"Batch {batch.batch_id}: counting {len(accepted)} file(s)"
            f" ({len(duplicates)} duplicate(s) skipped)"
        )

        try:
            # gather keeps input order regardless of completion order
            outcomes = await asyncio.gather(*batch.tasks, return_exceptions=True)
        finally:
            self._batches.pop(batch.batch_id, None)

        return self._commit(batch, outcomes, duplicate_names)

    async def _count_one(self, batch: _Batch, document: Document) -> int:
        try:
            return await self._page_counter.count_pages(document)
        finally:
            batch.settled += 1

    def _commit(
        self,
        batch: _Batch,
        outcomes: List[Any],
        duplicate_names: List[str],
    ) -> IngestionResult:
        """
        Apply a settled batch to the collection.

        Must not await: the dedup check and the append happen in one step.
        """
        if batch.abandoned:
            logger.info(f"Batch {batch.batch_id}: abandoned, discarding {len(batch.documents)} file(s)")
            return IngestionResult(duplicates=duplicate_names, discarded=batch.keys)

        entries: List[OrderEntry] = []
        failures: List[FileFailure] = []
        discarded: List[FileKey] = []

        for document, outcome in zip(batch.documents, outcomes):
            key = document.key

            if key in batch.cancelled or isinstance(outcome, asyncio.CancelledError):
                discarded.append(key)
            elif isinstance(outcome, DocumentError):
                failures.append(FileFailure(document.name, key, outcome))
            elif isinstance(outcome, Exception):
                logger.error(
                    f"Unexpected error counting '{document.name}': {outcome}",
                    exc_info=outcome,
                )
                failures.append(
                    FileFailure(
                        document.name,
                        key,
                        DocumentError("Error processing file", document.name, {"reason": str(outcome)}),
                    )
                )
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                entries.append(OrderEntry(document=document, page_count=outcome))

        before = self._collection
        added = [entry.key for entry in entries if entry.key not in before]
        late_duplicates = [entry.name for entry in entries if entry.key in before]
        self._collection = before.add(entries)

        if late_duplicates:
            logger.info(f"Batch {batch.batch_id}: {len(late_duplicates)} file(s) added by another batch first")

        all_duplicates = duplicate_names + late_duplicates
        error: Optional[PrintOrderError] = None
        message = ""

        if failures:
            details = "; ".join(f"{f.name}: {f.message}" for f in failures)
            message = f"{len(failures)} file(s) could not be added: {details}"
            error = failures[0].error if len(failures) == 1 else PrintOrderError(
                message, {"failures": [f.to_dict() for f in failures]}
            )
        elif not added and not discarded:
            error = DuplicateFilesError(all_duplicates)
            message = error.message

        if message:
            self._last_error = message
            logger.warning(f"Batch {batch.batch_id}: {message}")

        logger.info(
            f"Batch {batch.batch_id}: added {len(added)}, failed {len(failures)}, "
            f"discarded {len(discarded)}; order now has {len(self._collection)} file(s)"
        )

        return IngestionResult(
            added=added,
            duplicates=all_duplicates,
            failures=failures,
            discarded=discarded,
            error=error,
            error_message=message,
        )

    def cancel_ingestion(self) -> int:
        """
        Abandon every in-flight batch without touching committed entries.

        Returns:
            Number of files whose counting was abandoned
        """
        count = 0
        for batch in list(self._batches.values()):
            count += len([k for k in batch.keys if k not in batch.cancelled])
            batch.abandon()
        self._batches.clear()
        if count:
            logger.info(f"Cancelled ingestion of {count} file(s)")
        return count

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def remove_file(self, ref: EntryRef) -> FileKey:
        """
        Remove an entry, or cancel a file that is still counting.

        Args:
            ref: FileKey (preferred) or position in the collection

        Returns:
            Key of the removed / cancelled file

        Raises:
            IndexOutOfRangeError: If nothing matches ref
        """
        if isinstance(ref, int) and not isinstance(ref, bool):
            key = self._collection[ref].key
        else:
            key = FileKey(str(ref))

        cancelled = False
        for batch in self._batches.values():
            cancelled = batch.cancel_key(key) or cancelled

        if key in self._collection:
            self._collection = self._collection.remove(self._collection.index_of(key))
            logger.info(f"Removed '{key}' from order")
        elif cancelled:
            logger.info(f"Cancelled pending file '{key}'")
        else:
            raise IndexOutOfRangeError(ref, len(self._collection))

        return key

    def update_preferences(self, ref: EntryRef, **partial: Any) -> OrderEntry:
        """
        Merge a partial preference update into one entry.

        Args:
            ref: FileKey (preferred) or position in the collection
            **partial: Any of print_mode, copies, duplex

        Returns:
            The updated entry

        Raises:
            IndexOutOfRangeError: If nothing matches ref
            InvalidPreferencesError: Unknown field or invalid value
        """
        index = self._resolve_index(ref)
        self._collection = self._collection.update_preferences(index, **partial)
        entry = self._collection[index]
        logger.debug(f"Preferences for '{entry.key}': {entry.preferences.to_dict()}")
        return entry

    def reset(self) -> None:
        """Clear everything and return to IDLE. Always succeeds."""
        abandoned = self.cancel_ingestion()
        self._collection = OrderCollection()
        self._last_error = None
        logger.info(f"Order reset ({abandoned} pending file(s) abandoned)")

    def _resolve_index(self, ref: EntryRef) -> int:
        if isinstance(ref, int) and not isinstance(ref, bool):
            # bounds are checked by the collection
            return ref
        return self._collection.index_of(FileKey(str(ref)))

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(self) -> OrderConfirmation:
        """
        Send the current order to the order-creation service.

        Does not clear the order on success or failure; the caller decides.

        Returns:
            OrderConfirmation from the service

        Raises:
            EmptyOrderError: If the order has no entries (no call is made)
            OrderSubmissionError: If the service rejects the order or is down
        """
        if not len(self._collection):
            error = EmptyOrderError()
            self._last_error = error.message
            raise error

        if self._order_client is None:
            raise RuntimeError("No order service client configured")

        collection = self._collection
        payload = self._payload_builder.build(collection)

        self._submitting = True
        try:
            body = await self._order_client.create_order(payload)
        except OrderSubmissionError as e:
            self._last_error = e.message
            raise
        finally:
            self._submitting = False

        confirmation = OrderConfirmation.from_response(body, payload["total_price"])
        logger.info(
            f"Order submitted: {len(collection)} file(s), total={confirmation.total_price}, "
            f"order_id={confirmation.order_id}"
        )
        return confirmation

    # =========================================================================
    # VIEW
    # =========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """
        Serializable view of the order for the API.

        Prices and totals are recomputed from the current entries.
        """
        quote = self._price_engine.quote(self._collection)
        settled = sum(b.settled for b in self._batches.values())
        total = sum(len(b.documents) for b in self._batches.values())

        entries = []
        for entry, line in zip(self._collection, quote.lines):
            entries.append({
                "file_key": entry.key,
                "name": entry.name,
                "media_kind": entry.document.kind.value,
                "size_bytes": entry.document.size_bytes,
                "page_count": entry.page_count,
                "preferences": entry.preferences.to_dict(),
                "effective_pages": line.effective_pages,
                "price": line.price,
            })

        return {
            "state": self.state.value,
            "is_ingesting": self.is_ingesting,
            "is_submitting": self._submitting,
            "pending": [{"file_key": d.key, "name": d.name} for d in self.pending_documents()],
            "progress": {"settled": settled, "total": total},
            "entries": entries,
            "total_pages": quote.total_pages,
            "total_sheets": quote.total_sheets,
            "total_price": quote.total_price,
            "currency": quote.currency,
            "last_error": self._last_error,
        }

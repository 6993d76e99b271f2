"""
Tests for the OrderController state machine.

Page counts come from FakePageCounter, which lets a test hold individual
files back and release them in any order to exercise interleavings.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakePageCounter, pdf_doc, settle
from core.exceptions import (
    CountingServiceUnavailableError,
    DuplicateFilesError,
    EmptyOrderError,
    IndexOutOfRangeError,
    InvalidPreferencesError,
    MalformedDocumentError,
    OrderSubmissionError,
    UnsupportedFormatError,
)
from models.order import PrintMode, PrintPreferences
from models.results import OrderState
from modules.order_payload import OrderPayloadBuilder
from services.order_controller import OrderController


# Fixtures

@pytest.fixture
def order_client():
    client = MagicMock()
    client.create_order = AsyncMock(return_value={"orderId": "ORD-1", "redirectUrl": "/pay/ORD-1"})
    return client


@pytest.fixture
def controller(fake_counter, price_engine, order_client):
    builder = OrderPayloadBuilder(price_engine, include_content=False)
    return OrderController(fake_counter, price_engine, order_client, builder)


def _names(controller):
    return [entry.name for entry in controller.collection]


class TestAddFiles:

    @pytest.mark.asyncio
    async def test_initial_state(self, controller):
        assert controller.state is OrderState.IDLE
        assert len(controller.collection) == 0
        assert controller.total_price() == 0
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_adds_in_input_order(self, controller, fake_counter):
        fake_counter.counts = {"a.pdf": 10, "b.pdf": 5}
        result = await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])

        assert result.ok
        assert result.added == ["a.pdf1000", "b.pdf1000"]
        assert _names(controller) == ["a.pdf", "b.pdf"]
        assert [e.page_count for e in controller.collection] == [10, 5]
        assert all(e.preferences == PrintPreferences() for e in controller.collection)
        assert controller.state is OrderState.READY
        assert controller.total_price() == 30

    @pytest.mark.asyncio
    async def test_order_kept_when_counts_finish_in_reverse(self, controller, fake_counter):
        fake_counter.gate("a.pdf", "b.pdf", "c.pdf")
        task = asyncio.create_task(
            controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf"), pdf_doc("c.pdf")])
        )
        await settle()
        assert controller.state is OrderState.INGESTING
        assert controller.is_ingesting

        for name in ("c.pdf", "b.pdf", "a.pdf"):
            fake_counter.release(name)
            await settle()

        await task
        assert _names(controller) == ["a.pdf", "b.pdf", "c.pdf"]
        assert not controller.is_ingesting

    @pytest.mark.asyncio
    async def test_nothing_committed_until_batch_settles(self, controller, fake_counter):
        fake_counter.gate("slow.pdf")
        task = asyncio.create_task(controller.add_files([pdf_doc("fast.pdf"), pdf_doc("slow.pdf")]))
        await settle()

        assert len(controller.collection) == 0
        assert [d.name for d in controller.pending_documents()] == ["fast.pdf", "slow.pdf"]
        assert controller.snapshot()["progress"] == {"settled": 1, "total": 2}

        fake_counter.release("slow.pdf")
        await task
        assert _names(controller) == ["fast.pdf", "slow.pdf"]

    @pytest.mark.asyncio
    async def test_adding_same_batch_twice_is_idempotent(self, controller):
        docs = [pdf_doc("a.pdf"), pdf_doc("b.pdf")]
        await controller.add_files(docs)
        result = await controller.add_files(docs)

        assert _names(controller) == ["a.pdf", "b.pdf"]
        assert isinstance(result.error, DuplicateFilesError)
        assert result.error_message == "no new files"
        assert controller.last_error == "no new files"
        assert controller.state is OrderState.ERROR

    @pytest.mark.asyncio
    async def test_all_duplicates_skip_counting(self, controller, fake_counter):
        await controller.add_files([pdf_doc("a.pdf")])
        fake_counter.calls.clear()

        await controller.add_files([pdf_doc("a.pdf")])
        assert fake_counter.calls == []

    @pytest.mark.asyncio
    async def test_duplicate_within_batch(self, controller, fake_counter):
        result = await controller.add_files([pdf_doc("a.pdf"), pdf_doc("a.pdf")])
        assert _names(controller) == ["a.pdf"]
        assert result.duplicates == ["a.pdf"]
        assert fake_counter.calls == ["a.pdf"]

    @pytest.mark.asyncio
    async def test_mixed_new_and_duplicate(self, controller):
        await controller.add_files([pdf_doc("a.pdf")])
        result = await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])
        assert result.ok
        assert result.duplicates == ["a.pdf"]
        assert _names(controller) == ["a.pdf", "b.pdf"]

    @pytest.mark.asyncio
    async def test_same_name_new_timestamp_is_added(self, controller):
        await controller.add_files([pdf_doc("a.pdf", last_modified=1)])
        await controller.add_files([pdf_doc("a.pdf", last_modified=2)])
        assert len(controller.collection) == 2

    @pytest.mark.asyncio
    async def test_zero_page_document(self, controller, fake_counter):
        fake_counter.counts = {"empty.pdf": 0}
        await controller.add_files([pdf_doc("empty.pdf")])
        assert controller.collection[0].page_count == 0
        assert controller.total_price() == 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, controller):
        result = await controller.add_files([])
        assert isinstance(result.error, DuplicateFilesError)
        assert len(controller.collection) == 0


class TestPartialFailure:

    @pytest.mark.asyncio
    async def test_good_files_committed_failures_reported(self, controller, fake_counter):
        fake_counter.counts = {
            "a.pdf": 3,
            "bad.pdf": MalformedDocumentError("bad.pdf"),
            "c.pdf": 2,
        }
        result = await controller.add_files([pdf_doc("a.pdf"), pdf_doc("bad.pdf"), pdf_doc("c.pdf")])

        assert _names(controller) == ["a.pdf", "c.pdf"]
        assert [f.name for f in result.failures] == ["bad.pdf"]
        assert isinstance(result.error, MalformedDocumentError)
        assert "bad.pdf: Failed to count PDF pages" in controller.last_error
        assert controller.state is OrderState.ERROR

    @pytest.mark.asyncio
    async def test_several_failures_are_aggregated(self, controller, fake_counter):
        fake_counter.counts = {
            "x.docx": CountingServiceUnavailableError("x.docx", 503),
            "y.png": UnsupportedFormatError("y.png", "image/png"),
        }
        result = await controller.add_files([pdf_doc("x.docx"), pdf_doc("y.png")])

        assert len(controller.collection) == 0
        assert controller.last_error.startswith("2 file(s) could not be added")
        assert "x.docx: Failed to count DOCX pages" in controller.last_error
        assert "y.png: Unsupported file type" in controller.last_error
        assert len(result.error.details["failures"]) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_file_failure(self, controller, fake_counter):
        fake_counter.counts = {"weird.pdf": KeyError("boom"), "ok.pdf": 1}
        result = await controller.add_files([pdf_doc("weird.pdf"), pdf_doc("ok.pdf")])

        assert _names(controller) == ["ok.pdf"]
        assert result.failures[0].message == "Error processing file"

    @pytest.mark.asyncio
    async def test_next_batch_clears_error(self, controller, fake_counter):
        fake_counter.counts = {"bad.pdf": MalformedDocumentError("bad.pdf")}
        await controller.add_files([pdf_doc("bad.pdf")])
        assert controller.last_error

        await controller.add_files([pdf_doc("good.pdf")])
        assert controller.last_error is None
        assert controller.state is OrderState.READY

    @pytest.mark.asyncio
    async def test_dismiss_error(self, controller):
        await controller.add_files([])
        controller.dismiss_error()
        assert controller.state is OrderState.IDLE


class TestConcurrentBatches:

    @pytest.mark.asyncio
    async def test_overlapping_batches_with_same_file(self, controller, fake_counter):
        """Both batches pass the call-time check; only one commit wins."""
        fake_counter.gate("shared.pdf")
        first = asyncio.create_task(controller.add_files([pdf_doc("shared.pdf")]))
        await settle()
        second = asyncio.create_task(controller.add_files([pdf_doc("shared.pdf"), pdf_doc("other.pdf")]))
        await settle()

        fake_counter.release("shared.pdf")
        r1, r2 = await asyncio.gather(first, second)

        assert sorted(_names(controller)) == ["other.pdf", "shared.pdf"]
        assert len(controller.collection) == 2
        assert len(r1.added) + len(r2.added) == 2

    @pytest.mark.asyncio
    async def test_batches_commit_in_settle_order(self, controller, fake_counter):
        fake_counter.gate("first.pdf")
        slow = asyncio.create_task(controller.add_files([pdf_doc("first.pdf")]))
        await settle()
        await controller.add_files([pdf_doc("second.pdf")])

        assert _names(controller) == ["second.pdf"]
        assert controller.state is OrderState.INGESTING

        fake_counter.release("first.pdf")
        await slow
        assert _names(controller) == ["second.pdf", "first.pdf"]
        assert controller.state is OrderState.READY


class TestRemoveFile:

    @pytest.mark.asyncio
    async def test_remove_by_key(self, controller):
        await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf"), pdf_doc("c.pdf")])
        key = controller.remove_file("b.pdf1000")
        assert key == "b.pdf1000"
        assert _names(controller) == ["a.pdf", "c.pdf"]

    @pytest.mark.asyncio
    async def test_remove_by_index(self, controller):
        await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])
        controller.remove_file(0)
        assert _names(controller) == ["b.pdf"]

    @pytest.mark.asyncio
    async def test_remove_updates_total(self, controller, fake_counter):
        fake_counter.counts = {"a.pdf": 10, "b.pdf": 10}
        await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])
        controller.remove_file("a.pdf1000")
        assert controller.total_price() == 20

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ref", [5, -1, "nope.pdf0"])
    async def test_remove_unknown(self, controller, ref):
        await controller.add_files([pdf_doc("a.pdf")])
        with pytest.raises(IndexOutOfRangeError):
            controller.remove_file(ref)
        assert _names(controller) == ["a.pdf"]

    @pytest.mark.asyncio
    async def test_remove_then_readd(self, controller):
        await controller.add_files([pdf_doc("a.pdf")])
        controller.remove_file("a.pdf1000")
        result = await controller.add_files([pdf_doc("a.pdf")])
        assert result.added == ["a.pdf1000"]

    @pytest.mark.asyncio
    async def test_remove_while_counting_discards_file(self, controller, fake_counter):
        fake_counter.gate("a.pdf", "b.pdf")
        task = asyncio.create_task(controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")]))
        await settle()

        controller.remove_file("a.pdf1000")
        assert [d.name for d in controller.pending_documents()] == ["b.pdf"]

        fake_counter.release("b.pdf")
        result = await task

        assert _names(controller) == ["b.pdf"]
        assert result.discarded == ["a.pdf1000"]
        assert result.ok


class TestUpdatePreferences:

    @pytest.mark.asyncio
    async def test_partial_update_by_key(self, controller, fake_counter):
        fake_counter.counts = {"a.pdf": 10}
        await controller.add_files([pdf_doc("a.pdf")])

        entry = controller.update_preferences("a.pdf1000", print_mode="color", copies=4)
        assert entry.preferences == PrintPreferences(PrintMode.COLOR, 4, False)
        assert controller.total_price() == 320

        controller.update_preferences("a.pdf1000", duplex=True)
        assert controller.collection[0].preferences == PrintPreferences(PrintMode.COLOR, 4, True)
        assert controller.total_price() == 160

    @pytest.mark.asyncio
    async def test_update_by_index(self, controller):
        await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])
        controller.update_preferences(1, copies=2)
        assert controller.collection[1].preferences.copies == 2
        assert controller.collection[0].preferences.copies == 1

    @pytest.mark.asyncio
    async def test_update_unknown_entry(self, controller):
        with pytest.raises(IndexOutOfRangeError):
            controller.update_preferences(0, copies=2)
        with pytest.raises(IndexOutOfRangeError):
            controller.update_preferences("ghost.pdf1", copies=2)

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_entry(self, controller):
        await controller.add_files([pdf_doc("a.pdf")])
        with pytest.raises(InvalidPreferencesError):
            controller.update_preferences(0, copies=0)
        assert controller.collection[0].preferences == PrintPreferences()


class TestResetAndCancel:

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, controller):
        await controller.add_files([pdf_doc("a.pdf")])
        await controller.add_files([pdf_doc("a.pdf")])
        assert controller.last_error

        controller.reset()
        assert len(controller.collection) == 0
        assert controller.last_error is None
        assert controller.state is OrderState.IDLE

    @pytest.mark.asyncio
    async def test_reset_while_counting_drops_late_results(self, controller, fake_counter):
        fake_counter.gate("late.pdf")
        task = asyncio.create_task(controller.add_files([pdf_doc("late.pdf")]))
        await settle()

        controller.reset()
        assert controller.state is OrderState.IDLE

        result = await task
        assert len(controller.collection) == 0
        assert result.discarded == ["late.pdf1000"]

    @pytest.mark.asyncio
    async def test_cancel_keeps_committed_entries(self, controller, fake_counter):
        await controller.add_files([pdf_doc("kept.pdf")])
        fake_counter.gate("pending.pdf")
        task = asyncio.create_task(controller.add_files([pdf_doc("pending.pdf")]))
        await settle()

        assert controller.cancel_ingestion() == 1
        await task
        assert _names(controller) == ["kept.pdf"]
        assert not controller.is_ingesting

    @pytest.mark.asyncio
    async def test_cancel_with_nothing_pending(self, controller):
        assert controller.cancel_ingestion() == 0


class TestSubmit:

    @pytest.mark.asyncio
    async def test_empty_order_never_calls_service(self, controller, order_client):
        with pytest.raises(EmptyOrderError):
            await controller.submit()
        order_client.create_order.assert_not_called()
        assert controller.last_error == "Cannot submit an empty order"

    @pytest.mark.asyncio
    async def test_submit_sends_entries_and_total(self, controller, fake_counter, order_client):
        fake_counter.counts = {"a.pdf": 10, "b.pdf": 5}
        await controller.add_files([pdf_doc("a.pdf"), pdf_doc("b.pdf")])
        controller.update_preferences("b.pdf1000", print_mode="color")

        confirmation = await controller.submit()

        payload = order_client.create_order.await_args.args[0]
        assert [e["name"] for e in payload["entries"]] == ["a.pdf", "b.pdf"]
        assert [e["price"] for e in payload["entries"]] == [20, 40]
        assert payload["entries"][1]["preferences"]["print_mode"] == "color"
        assert payload["total_price"] == 60
        assert "content_base64" not in payload["entries"][0]

        assert confirmation.order_id == "ORD-1"
        assert confirmation.redirect_url == "/pay/ORD-1"
        assert confirmation.total_price == 60
        # order is left for the caller to clear
        assert len(controller.collection) == 2
        assert not controller.is_submitting

    @pytest.mark.asyncio
    async def test_service_failure(self, controller, order_client):
        order_client.create_order.side_effect = OrderSubmissionError("Order service unavailable: down")
        await controller.add_files([pdf_doc("a.pdf")])

        with pytest.raises(OrderSubmissionError):
            await controller.submit()

        assert controller.last_error == "Order service unavailable: down"
        assert len(controller.collection) == 1
        assert not controller.is_submitting

    @pytest.mark.asyncio
    async def test_submit_without_client(self, fake_counter, price_engine):
        controller = OrderController(fake_counter, price_engine)
        await controller.add_files([pdf_doc("a.pdf")])
        with pytest.raises(RuntimeError):
            await controller.submit()


class TestHandoff:

    @pytest.mark.asyncio
    async def test_handoff_seeds_order(self, price_engine):
        counter = FakePageCounter({"a.pdf": 2, "b.pdf": 4})
        controller = await OrderController.with_handoff(
            [pdf_doc("a.pdf"), pdf_doc("b.pdf"), pdf_doc("a.pdf")], counter, price_engine
        )
        assert _names(controller) == ["a.pdf", "b.pdf"]
        assert controller.total_price() == 12

    @pytest.mark.asyncio
    async def test_empty_handoff(self, price_engine):
        controller = await OrderController.with_handoff([], FakePageCounter(), price_engine)
        assert controller.state is OrderState.IDLE


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_shape(self, controller, fake_counter):
        fake_counter.counts = {"a.pdf": 3}
        await controller.add_files([pdf_doc("a.pdf")])
        controller.update_preferences(0, duplex=True, copies=2)

        snap = controller.snapshot()
        assert snap["state"] == "ready"
        assert snap["pending"] == []
        assert snap["entries"][0]["file_key"] == "a.pdf1000"
        assert snap["entries"][0]["effective_pages"] == 2
        assert snap["entries"][0]["price"] == 8
        assert snap["total_pages"] == 3
        assert snap["total_sheets"] == 4
        assert snap["total_price"] == 8
        assert snap["currency"] == "INR"
        assert snap["last_error"] is None

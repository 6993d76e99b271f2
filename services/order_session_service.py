"""
Order session service with a dedicated event-loop thread.

Flask handles requests on its own threads, but the order controllers are
asyncio objects. This service runs ONE event loop in a background thread
and keeps one OrderController per browser session on it.

THREAD ISOLATION:
    - Controllers are created and touched ONLY on the loop thread
    - Request threads hand work over with run_coroutine_threadsafe()
    - Snapshots returned to request threads are plain dicts

Thread Model:
    Main Thread (Flask)
    └── OrderLoop thread (asyncio event loop)
        ├── shared httpx.AsyncClient
        ├── session sweeper (idle controllers reset and dropped)
        └── one task per page count, per batch, per submission

Usage:
    # At app startup
    service = OrderSessionService(config)
    service.start()

    # In routes (request thread)
    snapshot = service.call(session_id, lambda c: c.snapshot())
    service.schedule(session_id, lambda c: c.add_files(documents))
    result = service.call(session_id, lambda c: c.add_files(documents))

    # At app shutdown
    service.stop()
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Mapping, Optional, Set

import httpx

from core.api_client import OrderServiceClient, PageCountClient
from modules.order_payload import OrderPayloadBuilder
from modules.page_counter import PageCounter
from modules.pricing import PriceEngine
from services.order_controller import OrderController
from logging_config import get_logger, set_thread_name


# Module logger
logger = get_logger(__name__)

ControllerFactory = Callable[[], OrderController]


class OrderSessionService:
    """
    Background event loop hosting one OrderController per session.

    Attributes:
        is_running: Whether the loop thread is active
        session_count: Number of live controllers
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        controller_factory: Optional[ControllerFactory] = None,
        http_client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the service (does not start the loop).

        Args:
            config: Flask config mapping (service URLs, prices, timeouts)
            controller_factory: Builds a controller for a new session
                (defaults to one wired to the configured services)
            http_client_factory: Builds the shared httpx.AsyncClient
            clock: Monotonic time source for idle-session eviction
        """
        self._config = config
        self._controller_factory = controller_factory
        self._http_client_factory = http_client_factory or (
            lambda: httpx.AsyncClient(timeout=float(config.get("HTTP_TIMEOUT_SECONDS", 30.0)))
        )
        self._request_timeout = float(config.get("ORDER_REQUEST_TIMEOUT_SECONDS", 60.0))
        self._idle_timeout = float(config.get("ORDER_SESSION_IDLE_SECONDS", 1800.0))
        self._clock = clock

        self.price_engine = PriceEngine.from_config(config)

        # Loop thread state
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._is_running = False

        # Owned by the loop thread
        self._http: Optional[httpx.AsyncClient] = None
        self._controllers: Dict[str, OrderController] = {}
        self._last_access: Dict[str, float] = {}
        self._background: Set[asyncio.Task] = set()

        logger.info("OrderSessionService initialized")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def session_count(self) -> int:
        return len(self._controllers)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Start the event-loop thread.

        Safe to call multiple times - only starts if not already running.
        """
        if self._is_running:
            logger.warning("OrderSessionService already running")
            return

        logger.info("Starting order loop thread...")
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._loop_main,
            name="OrderLoop",
            daemon=True
        )
        self._is_running = True
        self._thread.start()
        self._ready.wait(timeout=5.0)

        logger.info("Order loop thread started")

    def stop(self) -> None:
        """
        Stop the loop thread, cancelling pending work and closing HTTP clients.

        Safe to call multiple times.
        """
        if not self._is_running or self._loop is None:
            return

        logger.info("Stopping order loop thread...")
        self._loop.call_soon_threadsafe(self._loop.stop)

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Order loop thread did not stop cleanly")

        self._is_running = False
        self._thread = None
        self._loop = None
        logger.info("Order loop thread stopped")

    def _loop_main(self) -> None:
        set_thread_name("OrderLoop")
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop

        self._http = self._http_client_factory()
        if self._controller_factory is None:
            self._controller_factory = self._default_controller_factory
        sweeper = loop.create_task(self._sweep_idle(), name="session-sweeper")
        self._background.add(sweeper)
        sweeper.add_done_callback(self._on_background_done)
        self._ready.set()

        logger.info("Order loop running")
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(self._shutdown())
            loop.close()
            logger.info("Order loop exited")

    async def _shutdown(self) -> None:
        for controller in self._controllers.values():
            controller.reset()
        self._controllers.clear()
        self._last_access.clear()

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _default_controller_factory(self) -> OrderController:
        page_counter = PageCounter(
            remote_client=PageCountClient(self._http, self._config.get("PAGE_COUNT_SERVICE_URL", ""), logger)
        )
        order_client = OrderServiceClient(self._http, self._config.get("ORDER_SERVICE_URL", ""), logger)
        payload_builder = OrderPayloadBuilder(
            self.price_engine,
            include_content=bool(self._config.get("ORDER_INCLUDE_CONTENT", True)),
        )
        return OrderController(page_counter, self.price_engine, order_client, payload_builder)

    # =========================================================================
    # REQUEST-THREAD API
    # =========================================================================

    def call(
        self,
        session_id: str,
        fn: Callable[[OrderController], Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Run fn(controller) on the loop and wait for its result.

        fn may return a plain value or an awaitable. Exceptions raised on
        the loop are re-raised in the calling thread.

        Raises:
            RuntimeError: If the service is not running
            TimeoutError: If the loop does not answer in time
        """
        loop = self._require_loop()
        future = asyncio.run_coroutine_threadsafe(self._invoke(session_id, fn), loop)
        try:
            return future.result(timeout=timeout or self._request_timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.error(f"Order loop did not answer within {timeout or self._request_timeout}s")
            raise TimeoutError("Order service is busy, please retry")

    def schedule(self, session_id: str, fn: Callable[[OrderController], Any]) -> None:
        """
        Start fn(controller) on the loop without waiting.

        Used for add-files batches: the request returns immediately and the
        client polls the snapshot.
        """
        loop = self._require_loop()
        loop.call_soon_threadsafe(self._spawn, session_id, fn)

    def discard(self, session_id: str) -> bool:
        """Reset and forget a session's controller. Returns True if one existed."""
        loop = self._require_loop()
        future = asyncio.run_coroutine_threadsafe(self._drop(session_id), loop)
        return future.result(timeout=self._request_timeout)

    def pricing(self) -> Dict[str, int]:
        """Current per-page rate table."""
        return {mode.value: rate for mode, rate in self.price_engine.rates.items()}

    # =========================================================================
    # LOOP-THREAD HELPERS
    # =========================================================================

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if not self._is_running or self._loop is None:
            raise RuntimeError("OrderSessionService is not running")
        return self._loop

    def _controller(self, session_id: str) -> OrderController:
        now = self._clock()
        self._evict_idle(now)

        controller = self._controllers.get(session_id)
        if controller is None:
            controller = self._controller_factory()
            self._controllers[session_id] = controller
            logger.debug(f"Created order controller for session {session_id[:8]}")
        self._last_access[session_id] = now
        return controller

    def _evict_idle(self, now: float) -> int:
        """
        Reset and forget controllers not touched for ORDER_SESSION_IDLE_SECONDS.

        Controllers still ingesting or submitting are kept.
        """
        stale = [
            sid for sid, last in self._last_access.items()
            if now - last >= self._idle_timeout
        ]
        evicted = 0
        for sid in stale:
            controller = self._controllers.get(sid)
            if controller is not None and (controller.is_ingesting or controller.is_submitting):
                continue
            self._last_access.pop(sid, None)
            controller = self._controllers.pop(sid, None)
            if controller is not None:
                controller.reset()
                evicted += 1

        if evicted:
            logger.info(f"Evicted {evicted} idle order session(s)")
        return evicted

    async def _sweep_idle(self) -> None:
        interval = max(1.0, min(self._idle_timeout / 2, 60.0))
        while True:
            await asyncio.sleep(interval)
            self._evict_idle(self._clock())

    async def _invoke(self, session_id: str, fn: Callable[[OrderController], Any]) -> Any:
        result = fn(self._controller(session_id))
        if inspect.isawaitable(result):
            result = await result
        return result

    def _spawn(self, session_id: str, fn: Callable[[OrderController], Any]) -> None:
        task = asyncio.get_running_loop().create_task(
            self._invoke(session_id, fn),
            name=f"ingest-{session_id[:8]}",
        )
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background order task {task.get_name()} failed: {exc}", exc_info=exc)

    async def _drop(self, session_id: str) -> bool:
        self._last_access.pop(session_id, None)
        controller = self._controllers.pop(session_id, None)
        if controller is None:
            return False
        controller.reset()
        logger.debug(f"Dropped order controller for session {session_id[:8]}")
        return True

"""
Async HTTP clients for the external services.

Two collaborators live outside this application:
    - Page-counting service: counts DOCX pages (multipart upload in,
      {"pageCount": int} out)
    - Order-creation service: accepts the JSON order payload and answers
      with a confirmation / payment redirect

Both clients share one httpx.AsyncClient owned by the caller (the order
session service creates it on its event loop and closes it on shutdown).
Nothing is retried here - a failed call fails the operation.

Usage:
    async with httpx.AsyncClient(timeout=30.0) as http:
        counter = PageCountClient(http, "http://svc/api/count-docx-pages")
        pages = await counter.count_pages(document)

        orders = OrderServiceClient(http, "http://svc/api/orders")
        body = await orders.create_order(payload)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .exceptions import CountingServiceUnavailableError, OrderSubmissionError
from models.document import Document


class PageCountClient:
    """
    Client for the remote page-counting endpoint.

    Each call uploads the document as the multipart field ``file`` and
    expects ``{"pageCount": <int>}`` back.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the counting client.

        Args:
            http_client: Shared httpx.AsyncClient
            url: Full URL of the counting endpoint

        Raises:
            ValueError: If url is empty
        """
        if not url:
            raise ValueError("url is required - configure PAGE_COUNT_SERVICE_URL")

        self._http = http_client
        self._url = url
        self._logger = logger or logging.getLogger("core.api_client")

    @property
    def url(self) -> str:
        return self._url

    async def count_pages(self, document: Document) -> int:
        """
        Ask the counting service for a document's page count.

        Args:
            document: Document to count

        Returns:
            Page count reported by the service

        Raises:
            CountingServiceUnavailableError: On non-2xx status, network
                failure, or a body without an integer pageCount
        """
        self._logger.debug(f"Requesting page count for '{document.name}' ({document.size_bytes} bytes)")

        files = {
            "file": (document.name, document.content, document.mime_type or "application/octet-stream"),
        }

        try:
            response = await self._http.post(self._url, files=files)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self._logger.error(f"Counting service returned {status} for '{document.name}'")
            raise CountingServiceUnavailableError(document.name, status_code=status)
        except httpx.RequestError as e:
            self._logger.error(f"Counting service unreachable for '{document.name}': {e}")
            raise CountingServiceUnavailableError(document.name, reason=str(e))

        try:
            data = response.json()
        except ValueError as e:
            self._logger.error(f"Invalid JSON from counting service: {e}")
            raise CountingServiceUnavailableError(
                document.name, status_code=response.status_code, reason="invalid JSON"
            )

        page_count = data.get("pageCount") if isinstance(data, dict) else None
        if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count < 0:
            self._logger.error(f"Counting service returned no usable pageCount: {data!r}")
            raise CountingServiceUnavailableError(
                document.name, status_code=response.status_code, reason="missing pageCount"
            )

        self._logger.debug(f"Counting service: '{document.name}' has {page_count} pages")
        return page_count


class OrderServiceClient:
    """Client for the external order-creation endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        logger: Optional[logging.Logger] = None
    ):
        if not url:
            raise ValueError("url is required - configure ORDER_SERVICE_URL")

        self._http = http_client
        self._url = url
        self._logger = logger or logging.getLogger("core.api_client")

    @property
    def url(self) -> str:
        return self._url

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Post the order payload.

        Args:
            payload: JSON-serializable order payload

        Returns:
            Parsed JSON body (empty dict when the service sends none)

        Raises:
            OrderSubmissionError: On non-2xx status or network failure
        """
        entry_count = len(payload.get("entries", []))
        self._logger.info(f"Submitting order with {entry_count} entries, total={payload.get('total_price')}")

        try:
            response = await self._http.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self._logger.error(f"Order service rejected order: HTTP {status}")
            raise OrderSubmissionError(f"Order service rejected the order (HTTP {status})", status_code=status)
        except httpx.RequestError as e:
            self._logger.error(f"Order service unreachable: {e}")
            raise OrderSubmissionError(f"Order service unavailable: {e}")

        if not response.content:
            return {}

        try:
            body = response.json()
        except ValueError:
            self._logger.warning("Order service returned a non-JSON body; treating as success")
            return {}

        return body if isinstance(body, dict) else {"data": body}

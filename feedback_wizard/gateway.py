"""Submission boundary for finished feedback.

Contract:
- ``submit`` is async and returns a :class:`SubmissionResult` on success
- every failure (transport, HTTP status, ``success: false`` body) raises
  :class:`SubmissionError`
- no wizard logic lives here, only transport
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .models import SubmissionError, SubmissionPayload, SubmissionResult
from .wizard_logging import log_performance

logger = logging.getLogger("feedback_wizard.gateway")


class SubmissionGateway(ABC):
    """Turns a submission payload into a persisted server-side decision."""

    @abstractmethod
    async def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        """Persist the decision or raise SubmissionError."""

    async def close(self) -> None:
        return None


class CallbackSubmissionGateway(SubmissionGateway):
    """Adapts an async callable taking the JSON body."""

    def __init__(self, callback: Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]):
        self._callback = callback

    async def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        try:
            response = await self._callback(payload.to_dict())
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(0, str(e)) from e
        return SubmissionResult.from_dict(response or {"success": True, "approved": payload.approved})


class HttpSubmissionGateway(SubmissionGateway):
    """POSTs the payload as JSON to the project feedback endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._headers = headers or {}
        self._client: Optional[httpx.AsyncClient] = None
        self._lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=self.timeout,
                    transport=self._transport,
                    headers=self._headers,
                    follow_redirects=True,
                )
            return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client:
                await self._client.aclose()
                self._client = None

    @log_performance("submit_feedback")
    async def submit(self, payload: SubmissionPayload) -> SubmissionResult:
        client = await self._ensure_client()
        try:
            response = await client.post(self.url, json=payload.to_dict())
        except httpx.RequestError as e:
            raise SubmissionError(0, f"Request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error:
            detail = body.get("error") or body.get("detail") or response.text or response.reason_phrase
            raise SubmissionError(response.status_code, str(detail))
        if body.get("success") is False:
            raise SubmissionError(response.status_code, str(body.get("error", "Submission rejected")))

        logger.info(f"Submitted feedback for project {payload.project_id} (approved={payload.approved})")
        return SubmissionResult.from_dict(body or {"success": True})

"""
Async client for the answer proxy.

Holds the install token, registers lazily, and re-registers exactly once
when the proxy answers 401. No other retries are attempted.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Awaitable, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
NOT_RESPONDING = "Proxy not responding"
CANCELLED = "Cancelled"
CV_REQUIRED = "Please load your CV first"


class ProxyClientError(Exception):
    def __init__(self, message: str, *, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.reason = reason


def _error_from_response(response: httpx.Response) -> ProxyClientError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("error") or f"Proxy error: {response.status_code}"
    return ProxyClientError(message, status=response.status_code, reason=body.get("reason"))


def _require_cv(payload: Dict[str, Any]) -> None:
    question = payload.get("question")
    if not isinstance(question, str) or not question:
        return
    cv_text = payload.get("cvText")
    if not isinstance(cv_text, str) or not cv_text.strip():
        raise ProxyClientError(CV_REQUIRED)


class ProxyClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.token_expires_at: Optional[int] = None
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ProxyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Proxy request %s %s failed: %s", method, path, type(e).__name__)
            raise ProxyClientError(NOT_RESPONDING) from e

    async def health(self) -> Dict[str, Any]:
        response = await self._send("GET", "/api/health")
        if response.status_code != 200:
            raise ProxyClientError(NOT_RESPONDING, status=response.status_code)
        return response.json()

    async def register(self) -> str:
        response = await self._send("POST", "/api/register")
        if response.status_code != 200:
            raise ProxyClientError(f"Register failed ({response.status_code})", status=response.status_code)
        data = response.json()
        if not data.get("token"):
            raise ProxyClientError("Register failed (no token)")
        self.token = data["token"]
        self.token_expires_at = data.get("expiresAt")
        return self.token

    async def ensure_token(self) -> str:
        if self.token:
            return self.token
        return await self.register()

    async def _authorized(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self.ensure_token()
        response = await self._send(method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs)
        if response.status_code == 401:
            logger.info("Install token rejected, registering again")
            self.token = None
            token = await self.register()
            response = await self._send(method, path, headers={"Authorization": f"Bearer {token}"}, **kwargs)

        if response.status_code != 200:
            raise _error_from_response(response)
        return response

    async def generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send a structured (question + cvText) or legacy
        (systemPrompt + userPrompt) payload and return the JSON answer.
        """
        _require_cv(payload)
        response = await self._authorized("POST", "/api/generate", json=payload)
        return response.json()

    async def upload_cv(self, filename: str, data: bytes, mime_type: str) -> Dict[str, Any]:
        response = await self._authorized("POST", "/api/cv/upload", files={"cv": (filename, data, mime_type)})
        return response.json()


def new_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class RequestRegistry:
    """In-flight generations by id, so the UI can cancel one or all of them."""

    def __init__(self):
        self._pending: Dict[str, asyncio.Future] = {}
        self._cancelled: set = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def run(self, work: Awaitable, request_id: Optional[str] = None) -> Any:
        request_id = request_id or new_request_id()
        task = asyncio.ensure_future(work)
        self._pending[request_id] = task
        try:
            return await task
        except asyncio.CancelledError:
            if request_id in self._cancelled:
                raise ProxyClientError(CANCELLED)
            raise
        finally:
            self._pending.pop(request_id, None)
            self._cancelled.discard(request_id)

    def cancel(self, request_id: str) -> bool:
        task = self._pending.get(request_id)
        if task is None or task.done():
            return False
        self._cancelled.add(request_id)
        task.cancel()
        return True

    def cancel_all(self) -> int:
        return sum(1 for request_id in list(self._pending) if self.cancel(request_id))


class AnswerSession:
    """
    One answer field's worth of requests. Only the most recent request may
    deliver a result; anything that finishes after a newer request started
    is dropped and ``request`` returns None.
    """

    def __init__(self, client: ProxyClient, registry: Optional[RequestRegistry] = None):
        self.client = client
        self.registry = registry or RequestRegistry()
        self.current_id: Optional[str] = None

    async def request(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        request_id = new_request_id()
        self.current_id = request_id
        try:
            result = await self.registry.run(self.client.generate(payload), request_id)
        except ProxyClientError:
            if self.current_id != request_id:
                return None
            raise

        if self.current_id != request_id:
            logger.debug("Dropping stale answer for %s", request_id)
            return None
        return result

    def cancel(self) -> bool:
        if self.current_id is None:
            return False
        return self.registry.cancel(self.current_id)

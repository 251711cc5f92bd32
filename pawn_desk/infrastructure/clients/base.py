"""Shared HTTP plumbing for backend clients"""

from typing import Callable, Dict, Optional, Type, TypeVar

import httpx
from pydantic import ValidationError

from pawn_desk.config import settings
from pawn_desk.domain.exceptions import BackendAPIError
from pawn_desk.infrastructure.clients.schemas import ApiResponse

T = TypeVar("T")

TokenProvider = Callable[[], Optional[str]]


class BackendClient:
    """Base for clients of the pawnshop backend API"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.backend_api_base).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self.token_provider = token_provider
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self.transport,
        )

    def _unwrap(self, response: httpx.Response, data_type: Type[T], what: str) -> T:
        """
        Parse the envelope and return its data.

        Raises:
            BackendAPIError: On success=false, missing data, or a malformed payload
        """
        try:
            envelope = ApiResponse[data_type].model_validate(response.json())  # type: ignore[valid-type]
        except (ValidationError, ValueError) as e:
            raise BackendAPIError(f"Invalid {what} payload from backend: {e}") from e

        if not envelope.success or envelope.data is None:
            raise BackendAPIError(envelope.message or f"{what} failed")
        return envelope.data


def error_message(response: httpx.Response, default: str) -> str:
    """Best-effort message from an error response body"""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return default

"""Staff authentication client: login, per-transaction credential checks, refresh, logout"""

import logging

import httpx

from pawn_desk.config import settings
from pawn_desk.domain.exceptions import BackendAPIError, SessionRefreshRejected, StaffAuthenticationRejected
from pawn_desk.domain.models import LoginResult, RefreshResult, StaffCredential
from pawn_desk.infrastructure.clients.base import BackendClient, error_message
from pawn_desk.infrastructure.clients.schemas import (
    LoginData,
    LoginRequest,
    RefreshData,
    RefreshRequest,
    ValidateData,
)
from pawn_desk.infrastructure.observability.metrics import backend_request_histogram

logger = logging.getLogger(__name__)

# Statuses meaning "these credentials are wrong", as opposed to "the backend is broken"
_REJECTED_STATUSES = (400, 401, 403)


class AuthClient(BackendClient):
    """Client for the backend /auth endpoints"""

    async def login(self, staff_code: str, pin: str) -> LoginResult:
        """
        Open a staff session.

        Raises:
            StaffAuthenticationRejected: Unknown staff code or wrong PIN
            BackendAPIError: On timeout, transport or payload errors
        """
        body = LoginRequest(staff_code=staff_code, pin=pin).model_dump(by_alias=True)
        async with self._client() as client:
            try:
                with backend_request_histogram.labels(operation="login").time():
                    response = await client.post("/auth/login", json=body)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Login timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code in _REJECTED_STATUSES:
                    raise StaffAuthenticationRejected(staff_code) from e
                raise BackendAPIError(f"Login error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Login request failed: {e}") from e

        data = self._unwrap(response, LoginData, "login")
        return data.to_domain(settings.session_default_ttl_seconds)

    async def authenticate_staff(self, staff_code: str, pin: str) -> StaffCredential:
        """
        Check a staff code / PIN pair without opening a session.

        Used for the primary, second-staff and manager approvals at Review.

        Raises:
            StaffAuthenticationRejected: Backend says the pair is not valid
            BackendAPIError: On timeout, transport or payload errors
        """
        body = LoginRequest(staff_code=staff_code, pin=pin).model_dump(by_alias=True)
        async with self._client() as client:
            try:
                with backend_request_histogram.labels(operation="authenticate_staff").time():
                    response = await client.post("/auth/validate", json=body)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Staff validation timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code in _REJECTED_STATUSES:
                    raise StaffAuthenticationRejected(staff_code) from e
                raise BackendAPIError(f"Staff validation error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Staff validation request failed: {e}") from e

        data = self._unwrap(response, ValidateData, "staff validation")
        if not data.valid:
            logger.warning("Staff credential check rejected", extra={"staff_id": staff_code})
            raise StaffAuthenticationRejected(staff_code)
        if data.staff is None:
            raise BackendAPIError("Staff validation returned no staff profile")
        return data.staff.to_domain()

    async def refresh_session(self, refresh_token: str) -> RefreshResult:
        """
        Exchange the refresh token for a renewed session token.

        Raises:
            SessionRefreshRejected: Backend refused the refresh token
            BackendAPIError: On timeout, transport or payload errors
        """
        body = RefreshRequest(refresh_token=refresh_token).model_dump(by_alias=True)
        async with self._client() as client:
            try:
                with backend_request_histogram.labels(operation="refresh_session").time():
                    response = await client.post("/auth/refresh", json=body)
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Session refresh timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code in _REJECTED_STATUSES:
                    raise SessionRefreshRejected("refresh_rejected") from e
                raise BackendAPIError(f"Session refresh error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Session refresh request failed: {e}") from e

        data = self._unwrap(response, RefreshData, "session refresh")
        return data.to_domain(settings.session_default_ttl_seconds)

    async def logout(self) -> None:
        """
        Tell the backend the session is over.

        Raises:
            BackendAPIError: When the backend could not be told
        """
        async with self._client() as client:
            try:
                with backend_request_histogram.labels(operation="logout").time():
                    response = await client.post("/auth/logout")
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Logout timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise BackendAPIError(
                    error_message(e.response, f"Logout error: {e.response.status_code}")
                ) from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Logout request failed: {e}") from e

"""Ticket lookup client"""

from urllib.parse import quote

import httpx

from pawn_desk.domain.exceptions import BackendAPIError, TicketNotFoundError
from pawn_desk.domain.models import TicketRecord
from pawn_desk.infrastructure.clients.base import BackendClient
from pawn_desk.infrastructure.clients.schemas import TicketSchema
from pawn_desk.infrastructure.observability.metrics import backend_request_histogram


class TicketClient(BackendClient):
    """Client for the backend /tickets endpoints"""

    async def lookup_ticket(self, ticket_number: str) -> TicketRecord:
        """
        Fetch one ticket with its customer and financial summary.

        Raises:
            TicketNotFoundError: Backend has no such ticket
            BackendAPIError: On timeout, HTTP errors, or invalid response
        """
        async with self._client() as client:
            try:
                with backend_request_histogram.labels(operation="lookup_ticket").time():
                    response = await client.get(f"/tickets/{quote(ticket_number, safe='')}")
                response.raise_for_status()
            except httpx.TimeoutException as e:
                raise BackendAPIError(f"Ticket lookup timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 404:
                    raise TicketNotFoundError(ticket_number) from e
                raise BackendAPIError(f"Ticket lookup error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise BackendAPIError(f"Ticket lookup request failed: {e}") from e

        # success=false with a 200 is how the backend reports an unknown ticket
        if _reports_failure(response):
            raise TicketNotFoundError(ticket_number)
        ticket = self._unwrap(response, TicketSchema, "ticket lookup")
        return ticket.to_domain()


def _reports_failure(response: httpx.Response) -> bool:
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("success") is False

"""Combined-transaction commit client with exponential backoff retry"""

import asyncio
import logging

import httpx

from pawn_desk.config import settings
from pawn_desk.domain.exceptions import BackendAPIError, CommitFailure
from pawn_desk.domain.models import CommitReceipt, CommitRequest
from pawn_desk.infrastructure.clients.base import BackendClient, TokenProvider, error_message
from pawn_desk.infrastructure.clients.schemas import CombinedTransactionRequest, TransactionResultSchema
from pawn_desk.infrastructure.observability.metrics import backend_request_histogram, commit_retry_counter

logger = logging.getLogger(__name__)


class TransactionClient(BackendClient):
    """Client for POST /transactions/combined"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
    ):
        super().__init__(base_url, timeout, token_provider, transport)
        self.max_retries = max_retries if max_retries is not None else settings.commit_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.commit_backoff_base

    async def commit_transaction(self, request: CommitRequest) -> CommitReceipt:
        """
        Submit a finalized batch.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ... between attempts
        - Retries on 5xx errors and network failures only
        - Every attempt carries the same Idempotency-Key (the batch id), so
          the backend applies a retried batch at most once

        Raises:
            CommitFailure: 4xx rejection or success=false (retryable=False),
                or retries exhausted (retryable=True)
        """
        body = CombinedTransactionRequest.from_domain(request).model_dump(by_alias=True, mode="json")
        headers = {"Idempotency-Key": request.batch_id}

        attempt = 0
        async with self._client() as client:
            while True:
                try:
                    with backend_request_histogram.labels(operation="commit").time():
                        response = await client.post("/transactions/combined", json=body, headers=headers)
                    response.raise_for_status()
                    break

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        raise CommitFailure(
                            error_message(e.response, f"Transaction rejected: {e.response.status_code}"),
                            retryable=False,
                        ) from e
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise CommitFailure(f"Transaction commit failed: {e.response.status_code}") from e

                except httpx.RequestError as e:
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise CommitFailure(f"Transaction commit unreachable: {e}") from e

                commit_retry_counter.inc()
                backoff = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "Retrying transaction commit",
                    extra={"batch_id": request.batch_id, "attempt": attempt, "backoff_seconds": backoff},
                )
                await asyncio.sleep(backoff)

        try:
            result = self._unwrap(response, TransactionResultSchema, "transaction commit")
        except BackendAPIError as e:
            raise CommitFailure(str(e), retryable=False) from e
        return result.to_domain()

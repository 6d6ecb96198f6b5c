from __future__ import annotations

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from watchtrail.core.config import settings


class ExternalAPIError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamServerError(ExternalAPIError):
    """Retryable 5xx response from the catalog."""


async def fetch_json(
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict | None = None,
    timeout: float | None = None,
    attempts: int | None = None,
) -> dict:
    """GET a JSON document, retrying transport failures and 5xx responses.

    Client errors are not retried and surface as ``ExternalAPIError`` carrying
    the status code.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts or settings.catalog_max_attempts),
            wait=wait_exponential_jitter(initial=1, max=8),
            retry=retry_if_exception_type((httpx.TransportError, UpstreamServerError)),
            reraise=True,
        ):
            with attempt:
                async with httpx.AsyncClient(timeout=timeout or settings.catalog_timeout_seconds) as client:
                    response = await client.get(url, headers=headers, params=params)
                    if response.status_code >= 500:
                        raise UpstreamServerError(
                            f"Server error {response.status_code}", status_code=response.status_code
                        )
                    if response.status_code >= 400:
                        raise ExternalAPIError(
                            f"Client error {response.status_code} for {url}", status_code=response.status_code
                        )
                    return response.json()
    except httpx.HTTPError as exc:
        raise ExternalAPIError(f"Request to {url} failed: {exc}") from exc
    raise ExternalAPIError("Unreachable")

"""ProviderAdapter interface and shared HTTP plumbing."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalogsync.exceptions import AdapterError, AuthenticationError
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import MediaMetadata
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)


class ProviderAdapter(ABC):
    """Converts one source's native catalog into MediaMetadata.

    Adapters own pagination and any batching needed to avoid per-item
    round trips (e.g. parent series metadata for episodes).
    """

    source_type: str = ""
    supports_modified_since: bool = False

    def __init__(self, source_id: str, page_size: int = 100):
        self.source_id = source_id
        self.page_size = page_size

    @abstractmethod
    async def get_libraries(self) -> list[Library]:
        """List the source's libraries."""

    @abstractmethod
    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        """Fetch one page of a library.

        Args:
            library_id: Library to read
            pagination: Page start and size
            since: Only items modified after this time. Adapters without
                ``supports_modified_since`` ignore it.

        Returns:
            One ItemPage

        Raises:
            AdapterError: On transport, auth or protocol failure
        """

    @abstractmethod
    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        """Fetch a single item, or None if it no longer exists."""

    async def resolve_parents(self, items: Sequence[MediaMetadata]) -> None:
        """Attach parent (series) metadata to items in place, one request per parent batch."""
        return None

    async def close(self) -> None:
        """Release any held resources."""
        return None

    async def __aenter__(self) -> "ProviderAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class _RetryableStatus(Exception):
    """Server-side (5xx) response worth retrying."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class HTTPProviderAdapter(ProviderAdapter):
    """Adapter talking to a remote server over httpx with tenacity retries."""

    retry_wait = wait_exponential(min=1, max=10)

    def __init__(
        self,
        source_id: str,
        base_url: str,
        page_size: int = 100,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        headers: Optional[dict] = None,
        auth: Optional[httpx.Auth | tuple] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the adapter.

        Args:
            source_id: Configured source id
            base_url: Server base URL
            page_size: Items requested per page
            timeout: Request timeout in seconds
            retry_attempts: Attempts per request for transport errors and 5xx
            headers: Headers sent with every request
            auth: Optional httpx auth
            client: Pre-built client (tests pass one with a mock transport)
        """
        super().__init__(source_id, page_size)
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = retry_attempts
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            auth=auth,
        )
        if client is not None and headers:
            self.client.headers.update(headers)

    async def close(self) -> None:
        """Close HTTP client."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return its decoded JSON body.

        Raises:
            AuthenticationError: On 401/403
            AdapterError: On any other failure once retries are exhausted
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=self.retry_wait,
                retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
                reraise=True,
            ):
                with attempt:
                    response = await self.client.request(method, path, **kwargs)
                    if response.status_code >= 500:
                        raise _RetryableStatus(response)
        except _RetryableStatus as e:
            raise AdapterError(
                f"{self.source_type} server error {e.response.status_code} for {path}"
            ) from e
        except (httpx.HTTPError, RetryError) as e:
            logger.error(
                "Request failed",
                source_id=self.source_id,
                path=path,
                error=str(e),
            )
            raise AdapterError(f"{self.source_type} request to {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{self.source_type} rejected credentials (HTTP {response.status_code})"
            )
        if response.status_code >= 400:
            raise AdapterError(
                f"{self.source_type} returned HTTP {response.status_code} for {path}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise AdapterError(f"{self.source_type} returned invalid JSON for {path}") from e

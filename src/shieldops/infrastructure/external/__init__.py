"""Remote content provider — fetches the trusted manifest and canonical file bytes.

The provider is addressed by :class:`ProviderCoordinates` (owner / repo /
ref).  Every request carries an explicit timeout; transport errors and 5xx
responses are retried a bounded number of times with exponential backoff,
while 4xx responses fail immediately.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
import structlog

from shieldops import __version__
from shieldops.config import Settings
from shieldops.domain.coordinates import ProviderCoordinates
from shieldops.shared.decorators import retry
from shieldops.shared.exceptions import NetworkError

logger = structlog.get_logger(__name__)

RAW_ACCEPT = "application/vnd.github.v3.raw"


@runtime_checkable
class ContentProvider(Protocol):
    """Anything able to serve the manifest resource and raw file bytes."""

    coordinates: ProviderCoordinates

    async def fetch_manifest(self, manifest_path: str) -> bytes: ...

    async def fetch_file(self, relative_path: str) -> bytes: ...


class GitHubContentProvider:
    """Content provider backed by the GitHub contents API and raw host.

    Usage::

        async with GitHubContentProvider(coords) as provider:
            payload = await provider.fetch_manifest("trusted_hashes.json")
            data = await provider.fetch_file("src/app.py")
    """

    def __init__(
        self,
        coordinates: ProviderCoordinates,
        *,
        api_base_url: str = "https://api.github.com",
        raw_base_url: str = "https://raw.githubusercontent.com",
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.coordinates = coordinates
        self._api_base_url = api_base_url.rstrip("/")
        self._raw_base_url = raw_base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubContentProvider:
        return cls(
            settings.coordinates(),
            api_base_url=settings.api_base_url,
            raw_base_url=settings.raw_base_url,
            timeout=settings.request_timeout_seconds,
            max_retries=settings.max_retries,
            retry_base_delay=settings.retry_base_delay_seconds,
        )

    # -- lifecycle ----------------------------------------------------------

    async def __aenter__(self) -> GitHubContentProvider:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers={"User-Agent": f"shieldops/{__version__}"},
            )
        return self._client

    # -- URLs ---------------------------------------------------------------

    def manifest_url(self, manifest_path: str) -> str:
        c = self.coordinates
        return f"{self._api_base_url}/repos/{c.owner}/{c.repo}/contents/{quote(manifest_path.lstrip('/'))}"

    def content_url(self, relative_path: str) -> str:
        c = self.coordinates
        return f"{self._raw_base_url}/{c.owner}/{c.repo}/{c.ref}/{quote(relative_path.lstrip('/'))}"

    # -- public API ---------------------------------------------------------

    async def fetch_manifest(self, manifest_path: str) -> bytes:
        """Fetch the raw manifest resource through the contents API."""
        return await self._get_bytes(
            self.manifest_url(manifest_path),
            headers={"Accept": RAW_ACCEPT},
            params={"ref": self.coordinates.ref},
        )

    async def fetch_file(self, relative_path: str) -> bytes:
        """Fetch the canonical bytes of *relative_path*."""
        return await self._get_bytes(self.content_url(relative_path))

    # -- transport ----------------------------------------------------------

    async def _get_bytes(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> bytes:
        fetch = retry(
            max_attempts=self._max_retries + 1,
            delay=self._retry_base_delay,
            backoff=2.0,
            exceptions=(NetworkError,),
            retry_if=lambda e: isinstance(e, NetworkError) and e.transient,
        )(self._get_once)
        return await fetch(url, headers, params)

    async def _get_once(
        self,
        url: str,
        headers: dict[str, str] | None,
        params: dict[str, str] | None,
    ) -> bytes:
        try:
            response = await self._get_client().get(url, headers=headers, params=params)
        except httpx.TimeoutException as e:
            logger.warning("http_timeout", url=url, timeout=self._timeout)
            raise NetworkError(f"Request to {url} timed out", context={"url": url}) from e
        except httpx.RequestError as e:
            logger.warning("http_request_error", url=url, error=str(e))
            raise NetworkError(f"Request to {url} failed: {e}", context={"url": url}) from e

        if not response.is_success:
            logger.warning("http_error", url=url, status=response.status_code)
            raise NetworkError(
                f"Content provider returned {response.status_code} {response.reason_phrase} for {url}",
                status_code=response.status_code,
                context={"url": url},
            )
        return response.content


__all__ = ["ContentProvider", "GitHubContentProvider", "RAW_ACCEPT"]

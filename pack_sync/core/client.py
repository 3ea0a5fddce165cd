"""HTTP client for the pack sync API.

Protocol:
- ``GET {api}/version/{pack_code}``: plain-text pack version; may set the
  ``X-Pack-Sync-Session-ID`` and ``X-Pack-Sync-Pack-ID`` response headers
- ``POST {api}/sync/{pack_code}``: JSON request describing the caller,
  JSON :class:`SyncManifest` response
- ``POST {api}/exit``: best-effort notification on shutdown
"""

from __future__ import annotations

import gzip
import os
import time
import zlib
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from pack_sync.core.config import SyncSettings
from pack_sync.core.types import PlatformInfo, SyncContext, SyncManifest, VersionInfo

logger = structlog.get_logger()

SESSION_HEADER = "X-Pack-Sync-Session-ID"
PACK_ID_HEADER = "X-Pack-Sync-Pack-ID"
SUPPORTED_FEATURES = ["gzip", "session", "inline_server_list"]


class SyncUnavailableError(Exception):
    """The sync API could not be reached or refused the request.

    Recoverable: the cached state stays authoritative.
    """

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class DownloadError(Exception):
    """A file could not be downloaded."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


def resolve_auth(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Resolve a configured token.

    ``%NAME%`` is looked up in the environment, anything else is used
    verbatim. An empty result means no Authorization header.

    Example:
        >>> resolve_auth("%TOKEN%", {"TOKEN": "abc"})
        'abc'
        >>> resolve_auth("plain")
        'plain'
    """
    value = value.strip()
    if len(value) >= 2 and value.startswith("%") and value.endswith("%"):
        env = os.environ if environ is None else environ
        return env.get(value[1:-1], "").strip()
    return value


class ManifestClient:
    """Sync API client.

    Args:
        settings: Timeouts, retry policy and User-Agent
        token: Resolved bearer token, empty for none
        transport: Optional httpx transport, used by tests
        sleep: Delay function used between download retries
    """

    def __init__(
        self,
        settings: SyncSettings | None = None,
        token: str = "",
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or SyncSettings()
        self.token = token
        self.transport = transport
        self.sleep = sleep
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"User-Agent": self.settings.user_agent}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.settings.timeout, connect=self.settings.connect_timeout),
                follow_redirects=True,
                headers=headers,
                transport=self.transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> ManifestClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @staticmethod
    def _context_headers(context: SyncContext) -> dict[str, str]:
        headers: dict[str, str] = {}
        if context.session_id:
            headers[SESSION_HEADER] = context.session_id
        if context.pack_id:
            headers[PACK_ID_HEADER] = context.pack_id
        return headers

    @staticmethod
    def _pack_url(context: SyncContext, endpoint: str) -> str:
        return f"{context.api}/{endpoint}/{quote(context.pack_code, safe='')}"

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SyncUnavailableError(f"Timed out contacting {url}") from e
        except httpx.TransportError as e:
            raise SyncUnavailableError(f"Cannot connect to {url}: {e}") from e

        if not response.is_success:
            raise SyncUnavailableError(
                f"{method} {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def fetch_version(self, context: SyncContext) -> VersionInfo:
        """Fetch the current remote pack version.

        Raises:
            SyncUnavailableError: On timeout, connection failure or non-2xx
        """
        url = self._pack_url(context, "version")
        response = self._request("GET", url, headers=self._context_headers(context))
        info = VersionInfo(
            version=response.text.strip(),
            session_id=response.headers.get(SESSION_HEADER, ""),
            pack_id=response.headers.get(PACK_ID_HEADER, ""),
        )
        logger.debug("version_fetched", version=info.version, session=bool(info.session_id))
        return info

    def fetch_manifest(self, context: SyncContext, platform: PlatformInfo, pack_version: str = "") -> SyncManifest:
        """Request the full manifest for this caller.

        Args:
            context: Run context carrying session and pack id
            platform: Caller environment
            pack_version: Locally accepted pack version, empty if none

        Raises:
            SyncUnavailableError: On transport failure, non-2xx or a
                response that is not a valid manifest
        """
        url = self._pack_url(context, "sync")
        body = {
            "pack_version": pack_version,
            "mc_version": platform.mc_version,
            "loader_version": platform.loader_version,
            "loader_api_version": platform.loader_api_version,
            "platform": platform.platform,
            "dev": platform.dev,
            "server": platform.server,
            "supported_features": SUPPORTED_FEATURES,
        }
        response = self._request("POST", url, json=body, headers=self._context_headers(context))

        try:
            manifest = SyncManifest.model_validate_json(response.content)
        except ValidationError as e:
            raise SyncUnavailableError(f"Invalid manifest from {url}: {e}") from e

        logger.info(
            "manifest_fetched",
            mods=len(manifest.mods),
            extra_files=len(manifest.extra_files),
            errors=len(manifest.errors),
        )
        return manifest

    def download(self, url: str, gzip_body: bool = False) -> bytes:
        """Download a file body, retrying transport errors and 5xx responses.

        Args:
            url: File URL
            gzip_body: Inflate the body after download

        Returns:
            The (inflated) body

        Raises:
            DownloadError: If every attempt failed or the response is a
                non-retryable error
        """
        last_error: Exception | None = None

        for attempt in range(self.settings.max_retries + 1):
            try:
                response = self.client.get(url)
            except httpx.TransportError as e:
                last_error = e
            else:
                if response.is_success:
                    return self._inflate(url, response.content) if gzip_body else response.content
                if response.status_code < 500:
                    raise DownloadError(
                        f"GET {url} returned HTTP {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )
                last_error = DownloadError(
                    f"GET {url} returned HTTP {response.status_code}",
                    url=url,
                    status_code=response.status_code,
                )

            if attempt < self.settings.max_retries:
                wait_time = self.settings.base_backoff * (2 ** attempt)
                logger.debug(
                    "download_retry",
                    url=url,
                    attempt=attempt + 1,
                    wait=wait_time,
                    error=str(last_error),
                )
                self.sleep(wait_time)

        logger.error("download_failed", url=url, error=str(last_error))
        raise DownloadError(f"Failed to download {url}: {last_error}", url=url) from last_error

    @staticmethod
    def _inflate(url: str, data: bytes) -> bytes:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DownloadError(f"Invalid gzip body from {url}: {e}", url=url) from e

    def notify_exit(self, context: SyncContext) -> bool:
        """Tell the API this session is over. Never raises.

        Returns:
            True if the API acknowledged the notification
        """
        url = f"{context.api}/exit"
        try:
            response = self.client.post(url, headers=self._context_headers(context))
        except httpx.HTTPError as e:
            logger.debug("exit_notify_failed", url=url, error=str(e))
            return False
        return response.is_success

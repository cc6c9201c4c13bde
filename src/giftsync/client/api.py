"""Read-only client for the Google Drive v3 API.

This module provides:
- FileMetadata: Immutable metadata of a remote file
- DownloadStream: Caller-owned byte stream of a file's content
- RemoteStore: Interface used by the sync engine (list/get/download)
- DriveClient: httpx implementation against Drive v3
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from giftsync.client.credentials import AccessToken, CredentialError, CredentialSource

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
FILE_FIELDS = "id, name, mimeType, size, modifiedTime"
LIST_PAGE_SIZE = 1000  # Drive maximum
TOKEN_REFRESH_MARGIN = 600.0  # seconds
DOWNLOAD_CHUNK_SIZE = 64 * 1024


class APIError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotReadyError(APIError):
    """Operation attempted before a successful initialize()."""


class AuthInitError(APIError):
    """Credentials could not be established."""


class AuthenticationError(APIError):
    """Request rejected by the server (401/403)."""


class NotFoundError(APIError):
    """Resource not found."""


class RateLimitError(APIError):
    """Request rejected because of quota or rate limits (429)."""


class NetworkError(APIError):
    """Transport-level failure (DNS, connect, TLS, timeout)."""

    def __init__(self, message: str, is_timeout: bool = False) -> None:
        super().__init__(message)
        self.is_timeout = is_timeout


def _parse_modified_time(value: str) -> datetime:
    # Drive returns RFC 3339 with a trailing Z, e.g. 2025-05-01T10:20:30.123Z
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class FileMetadata:
    """Metadata of a remote file."""

    id: str
    name: str
    mime_type: str
    size: int
    modified_at: datetime

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileMetadata:
        """Create from a Drive API file resource."""
        return cls(
            id=data["id"],
            name=data["name"],
            mime_type=data.get("mimeType", "application/octet-stream"),
            # Google-native documents have no size
            size=int(data.get("size", 0)),
            modified_at=_parse_modified_time(data["modifiedTime"]),
        )


class DownloadStream:
    """Streamed file content.

    The caller owns the stream and must drain and close it, preferably with
    a ``with`` block.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    def __enter__(self) -> DownloadStream:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def iter_bytes(self, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
        """Iterate over the content.

        Raises:
            NetworkError: If the connection breaks mid-stream.
        """
        try:
            yield from self._response.iter_bytes(chunk_size)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Timed out while downloading: {e}", is_timeout=True) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Connection lost while downloading: {e}") from e

    def read(self) -> bytes:
        """Drain the whole stream into memory."""
        return b"".join(self.iter_bytes())

    def close(self) -> None:
        self._response.close()


class RemoteStore(ABC):
    """Authenticated read-only view of a cloud folder.

    initialize() must succeed before any other call; other calls raise
    NotReadyError until it does.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Establish credentials.

        Safe to call repeatedly; only one session is kept live.

        Raises:
            AuthInitError: If credentials cannot be established.
        """

    @abstractmethod
    def list_files_in_folder(self, folder_id: str) -> list[FileMetadata]:
        """List non-trashed direct children of a folder, all pages."""

    @abstractmethod
    def get_file_info(self, file_id: str) -> FileMetadata:
        """Get metadata of a single file."""

    @abstractmethod
    def download_file(self, file_id: str) -> DownloadStream:
        """Open a byte stream of a file's content."""

    def close(self) -> None:
        """Release any underlying session."""

    def __enter__(self) -> RemoteStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class DriveClient(RemoteStore):
    """Google Drive v3 client over httpx."""

    def __init__(
        self,
        credentials: CredentialSource,
        timeout: float = 60.0,
        connect_timeout: float = 45.0,
        base_url: str = DRIVE_API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the Drive client.

        Args:
            credentials: Source of access tokens.
            timeout: Read/write/pool timeout in seconds.
            connect_timeout: Connect timeout in seconds.
            base_url: Drive API base URL.
            transport: Optional httpx transport (tests).
        """
        self._credentials = credentials
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: httpx.Client | None = None
        self._token: AccessToken | None = None
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        """True once initialize() has succeeded."""
        return self._client is not None and self._token is not None

    def _acquire_token(self) -> AccessToken:
        try:
            return self._credentials.fetch_token()
        except CredentialError as e:
            raise AuthInitError(f"Failed to initialize Drive client: {e}") from e

    def initialize(self) -> None:
        with self._lock:
            if self._client is not None and self._token is not None:
                if not self._token.expires_within(TOKEN_REFRESH_MARGIN):
                    logger.debug("Drive session already initialized and token is fresh")
                    return
                logger.debug("Drive token close to expiry, refreshing")

            token = self._acquire_token()
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self._base_url,
                    timeout=self._timeout,
                    transport=self._transport,
                    headers={"Accept": "application/json", "User-Agent": "giftsync/1.0"},
                )
            self._client.headers["Authorization"] = f"Bearer {token.value}"
            self._token = token
            logger.info("Drive client initialized")

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._token = None

    def _require_client(self) -> httpx.Client:
        if self._client is None or self._token is None:
            raise NotReadyError("Drive client is not initialized")
        if self._token.expires_within(TOKEN_REFRESH_MARGIN):
            self.initialize()
        return self._client

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise the matching APIError for a failed response."""
        status = response.status_code
        if status < 400:
            return response
        if not response.is_stream_consumed:
            response.read()
        try:
            detail = response.json().get("error", {}).get("message", response.reason_phrase)
        except ValueError:
            detail = response.reason_phrase
        if status in (401, 403):
            raise AuthenticationError(f"Access denied: {detail}", status)
        if status == 404:
            raise NotFoundError(f"Not found: {detail}", status)
        if status == 429:
            raise RateLimitError(f"Rate limited: {detail}", status)
        raise APIError(detail, status)

    def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        stream: bool = False,
    ) -> httpx.Response:
        """Send a request, re-acquiring the token once on 401."""
        for attempt in range(2):
            client = self._require_client()
            request = client.build_request(method, url, params=params)
            try:
                response = client.send(request, stream=stream)
            except httpx.TimeoutException as e:
                raise NetworkError(f"Request to {url} timed out: {e}", is_timeout=True) from e
            except httpx.TransportError as e:
                raise NetworkError(f"Request to {url} failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                response.close()
                logger.info("Drive token rejected, re-acquiring")
                with self._lock:
                    self._token = None
                self.initialize()
                continue
            try:
                return self._handle_response(response)
            except APIError:
                response.close()
                raise
        raise AssertionError("unreachable")

    # === Read operations ===

    def list_files_in_folder(self, folder_id: str) -> list[FileMetadata]:
        query = f"'{folder_id}' in parents and trashed = false"
        files: list[FileMetadata] = []
        page_token: str | None = None
        pages = 0

        while True:
            params: dict[str, Any] = {
                "q": query,
                "fields": f"nextPageToken, files({FILE_FIELDS})",
                "pageSize": LIST_PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token
            data = self._send("GET", "/files", params).json()
            files.extend(FileMetadata.from_dict(f) for f in data.get("files", []))
            pages += 1
            page_token = data.get("nextPageToken")
            if not page_token:
                break

        logger.debug("Listed %d files in folder %s (%d pages)", len(files), folder_id, pages)
        return files

    def get_file_info(self, file_id: str) -> FileMetadata:
        response = self._send("GET", f"/files/{file_id}", {"fields": FILE_FIELDS})
        return FileMetadata.from_dict(response.json())

    def download_file(self, file_id: str) -> DownloadStream:
        logger.debug("Opening download stream for %s", file_id)
        response = self._send("GET", f"/files/{file_id}", {"alt": "media"}, stream=True)
        return DownloadStream(response)

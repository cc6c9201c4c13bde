"""Tests for error classification and retry helpers."""

from __future__ import annotations

import ssl

import httpx
import pytest

from giftsync.client.api import (
    APIError,
    AuthenticationError,
    AuthInitError,
    NetworkError,
    NotFoundError,
    RateLimitError,
)
from giftsync.client.sync.retry import classify_error, max_attempts_for, retry_with_backoff
from giftsync.client.sync.types import DownloadError, ErrorKind, FileIOError


def wrapped(outer: Exception, inner: Exception) -> Exception:
    """Raise outer from inner and return it with the cause chain set."""
    try:
        try:
            raise inner
        except Exception as e:
            raise outer from e
    except Exception as e:
        return e


class TestClassifyError:
    """Tests for classify_error."""

    def test_plain_network_error(self) -> None:
        """Should classify connection failures as NO_INTERNET."""
        assert classify_error(NetworkError("connection refused")) is ErrorKind.NO_INTERNET

    def test_timeout(self) -> None:
        """Should classify timeouts as TIMEOUT."""
        assert classify_error(NetworkError("slow", is_timeout=True)) is ErrorKind.TIMEOUT
        assert classify_error(httpx.ReadTimeout("slow")) is ErrorKind.TIMEOUT

    def test_dns(self) -> None:
        """Should detect DNS failures from the cause message."""
        error = wrapped(
            NetworkError("Request failed"),
            httpx.ConnectError("[Errno -2] Name or service not known"),
        )
        assert classify_error(error) is ErrorKind.DNS_FAILURE

    def test_ssl(self) -> None:
        """Should detect certificate failures."""
        error = wrapped(
            NetworkError("Request failed"),
            httpx.ConnectError("[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed"),
        )
        assert classify_error(error) is ErrorKind.SSL_ERROR
        assert classify_error(wrapped(NetworkError("x"), ssl.SSLError("bad"))) is ErrorKind.SSL_ERROR

    def test_network_error_inside_download_error(self) -> None:
        """Should look through DownloadError to the network cause."""
        error = wrapped(DownloadError("download failed"), NetworkError("reset"))
        assert classify_error(error) is ErrorKind.NO_INTERNET

    def test_auth(self) -> None:
        """Should classify credential and permission failures as AUTH_ERROR."""
        assert classify_error(AuthInitError("no key")) is ErrorKind.AUTH_ERROR
        assert classify_error(AuthenticationError("denied", 403)) is ErrorKind.AUTH_ERROR

    def test_rate_limited(self) -> None:
        """Should classify 429 responses."""
        assert classify_error(RateLimitError("slow down", 429)) is ErrorKind.RATE_LIMITED

    def test_server_error(self) -> None:
        """Should classify 5xx responses as SERVER_ERROR and others as UNKNOWN."""
        assert classify_error(APIError("boom", 502)) is ErrorKind.SERVER_ERROR
        assert classify_error(NotFoundError("gone", 404)) is ErrorKind.UNKNOWN

    def test_file_io(self) -> None:
        """Should classify cache write failures as FILE_IO."""
        assert classify_error(FileIOError("disk full")) is ErrorKind.FILE_IO
        assert classify_error(PermissionError("denied")) is ErrorKind.FILE_IO

    def test_unknown(self) -> None:
        """Should fall back to UNKNOWN."""
        assert classify_error(ValueError("odd")) is ErrorKind.UNKNOWN


class TestMaxAttempts:
    """Tests for max_attempts_for."""

    @pytest.mark.parametrize(
        ("kind", "attempts"),
        [
            (ErrorKind.NO_INTERNET, 3),
            (ErrorKind.DNS_FAILURE, 3),
            (ErrorKind.TIMEOUT, 3),
            (ErrorKind.SERVER_ERROR, 5),
            (ErrorKind.RATE_LIMITED, 5),
            (ErrorKind.SSL_ERROR, 1),
            (ErrorKind.AUTH_ERROR, 1),
            (ErrorKind.FILE_IO, 4),
            (ErrorKind.UNKNOWN, 4),
        ],
    )
    def test_budgets(self, kind: ErrorKind, attempts: int) -> None:
        """Should use the per-kind retry budget."""
        assert max_attempts_for(kind) == attempts


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_success_first_try(self) -> None:
        """Should return immediately without sleeping."""
        sleeps: list[float] = []
        assert retry_with_backoff(lambda: 42, sleep=sleeps.append) == 42
        assert sleeps == []

    def test_retries_then_succeeds(self) -> None:
        """Should retry retryable errors with growing backoff."""
        calls = {"n": 0}
        sleeps: list[float] = []

        def flaky() -> str:
            calls["n"] += 1
            if calls["n"] < 3:
                raise NetworkError("reset")
            return "ok"

        assert retry_with_backoff(flaky, initial_backoff=1.0, sleep=sleeps.append) == "ok"
        assert sleeps == [1.0, 2.0]

    def test_backoff_capped(self) -> None:
        """Should not sleep longer than max_backoff."""
        sleeps: list[float] = []

        def always_fails() -> None:
            raise RateLimitError("slow down", 429)

        with pytest.raises(RateLimitError):
            retry_with_backoff(always_fails, max_retries=4, initial_backoff=10.0,
                               max_backoff=25.0, sleep=sleeps.append)
        assert sleeps == [10.0, 20.0, 25.0, 25.0]

    def test_non_retryable_raises_immediately(self) -> None:
        """Should not retry errors outside retryable_exceptions."""
        sleeps: list[float] = []

        def denied() -> None:
            raise AuthenticationError("denied", 403)

        with pytest.raises(AuthenticationError):
            retry_with_backoff(denied, sleep=sleeps.append)
        assert sleeps == []

"""Authentication material for the Drive client.

This module provides:
- AccessToken: Bearer token with expiry
- CredentialSource: Interface the Drive client obtains tokens from
- ServiceAccountCredentials: Service account key -> signed JWT -> OAuth token
- ServiceAccountFileCredentials: Lazily loaded key file
- StaticTokenCredentials: Fixed token (CI, tests, manual debugging)
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import jwt

logger = logging.getLogger(__name__)

DRIVE_READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 3600  # seconds


class CredentialError(Exception):
    """Credentials could not be loaded or exchanged for a token."""


@dataclass(frozen=True)
class AccessToken:
    """OAuth bearer token.

    Attributes:
        value: The bearer token string.
        expires_at: Unix timestamp after which the token is invalid.
    """

    value: str
    expires_at: float

    def expires_within(self, seconds: float, now: float | None = None) -> bool:
        """Check whether the token expires within the given window."""
        now = time.time() if now is None else now
        return self.expires_at - now <= seconds


class CredentialSource(ABC):
    """Supplies access tokens to the Drive client."""

    @abstractmethod
    def fetch_token(self) -> AccessToken:
        """Obtain a fresh access token.

        Raises:
            CredentialError: If credentials are missing, malformed or rejected.
        """


class StaticTokenCredentials(CredentialSource):
    """Credential source returning a fixed token."""

    def __init__(self, token: str, lifetime: float = ASSERTION_LIFETIME) -> None:
        if not token:
            raise CredentialError("Empty access token")
        self._token = token
        self._lifetime = lifetime

    def fetch_token(self) -> AccessToken:
        return AccessToken(self._token, time.time() + self._lifetime)


class ServiceAccountCredentials(CredentialSource):
    """Google service account key exchanged for a read-only Drive token.

    The key file is the JSON document downloaded from the Cloud console
    (``client_email``, ``private_key``, optional ``token_uri``).
    """

    def __init__(
        self,
        info: dict[str, Any],
        scopes: tuple[str, ...] = (DRIVE_READONLY_SCOPE,),
        timeout: float = 30.0,
    ) -> None:
        """Initialize from a parsed key document.

        Args:
            info: Parsed service account JSON.
            scopes: OAuth scopes to request.
            timeout: Timeout for the token exchange request.

        Raises:
            CredentialError: If required fields are missing.
        """
        missing = [k for k in ("client_email", "private_key") if not info.get(k)]
        if missing:
            raise CredentialError(f"Service account key is missing: {', '.join(missing)}")
        self._email: str = info["client_email"]
        self._private_key: str = info["private_key"]
        self._token_uri: str = info.get("token_uri") or DEFAULT_TOKEN_URI
        self._scopes = scopes
        self._timeout = timeout

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> ServiceAccountCredentials:
        """Load a service account key file.

        Raises:
            CredentialError: If the file is missing or not valid JSON.
        """
        try:
            info = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise CredentialError(f"Service account file not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise CredentialError(f"Cannot read service account file {path}: {e}") from e
        return cls(info, **kwargs)

    @property
    def client_email(self) -> str:
        return self._email

    def _build_assertion(self, now: int) -> str:
        claims = {
            "iss": self._email,
            "scope": " ".join(self._scopes),
            "aud": self._token_uri,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME,
        }
        try:
            return jwt.encode(claims, self._private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise CredentialError(f"Cannot sign service account assertion: {e}") from e

    def fetch_token(self) -> AccessToken:
        now = int(time.time())
        assertion = self._build_assertion(now)
        logger.debug("Requesting Drive access token for %s", self._email)
        try:
            response = httpx.post(
                self._token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise CredentialError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise CredentialError(
                f"Token request rejected ({response.status_code}): {response.text[:200]}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise CredentialError(f"Token response is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise CredentialError("Token response is not a JSON object")
        token = data.get("access_token")
        if not token:
            raise CredentialError("Token response did not contain access_token")
        try:
            expires_in = float(data.get("expires_in", ASSERTION_LIFETIME))
        except (TypeError, ValueError) as e:
            raise CredentialError(f"Token response has invalid expires_in: {e}") from e
        return AccessToken(token, now + expires_in)


class ServiceAccountFileCredentials(CredentialSource):
    """Service account key file loaded on first token request.

    Lets the app start without a key file; the missing file only surfaces
    as a CredentialError when the Drive client initializes.
    """

    def __init__(self, path: str | Path | None, timeout: float = 30.0) -> None:
        self._path = Path(path).expanduser() if path else None
        self._timeout = timeout
        self._loaded: ServiceAccountCredentials | None = None

    def fetch_token(self) -> AccessToken:
        if self._path is None:
            raise CredentialError("Service account file is not configured")
        if self._loaded is None:
            self._loaded = ServiceAccountCredentials.from_file(self._path, timeout=self._timeout)
        return self._loaded.fetch_token()

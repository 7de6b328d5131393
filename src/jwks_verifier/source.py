from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Protocol

from .errors import OAuthProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 3.0
DEFAULT_MAX_BYTES = 512 * 1024


class KeySetSource(Protocol):
    """Anything that can produce the JWKS document published at ``url``."""

    def fetch(self, url: str) -> Any: ...


def fetch_jwks(
    url: str, *, timeout: float = DEFAULT_TIMEOUT, max_bytes: int = DEFAULT_MAX_BYTES
) -> Any:
    """GET ``url`` once and return the decoded JSON body.

    The shape of the document is not checked here; that is the key resolver's job.
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise OAuthProviderError("JWKS url must be http(s)")

    logger.info("fetching JWKS from %s", url)
    req = urllib.request.Request(url, headers={"Accept": "application/json"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as response:
            body = response.read(max_bytes + 1)
    except urllib.error.HTTPError as exc:
        logger.warning("JWKS endpoint %s returned HTTP %s", url, exc.code)
        raise OAuthProviderError(f"JWKS endpoint returned HTTP {exc.code}") from exc
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
        logger.warning("JWKS fetch from %s failed: %s", url, exc)
        raise OAuthProviderError(f"failed to fetch JWKS: {exc}") from exc
    if len(body) > max_bytes:
        raise OAuthProviderError("JWKS response too large")

    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise OAuthProviderError("JWKS url did not return valid JSON") from exc


class HttpKeySetSource:
    def __init__(
        self, *, timeout: float = DEFAULT_TIMEOUT, max_bytes: int = DEFAULT_MAX_BYTES
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes

    def fetch(self, url: str) -> Any:
        return fetch_jwks(url, timeout=self.timeout, max_bytes=self.max_bytes)

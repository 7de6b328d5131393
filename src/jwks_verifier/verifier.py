from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .cache import DEFAULT_CACHE_KEY, CacheBackend, KeyCache
from .errors import ErrorKind, KeyNotFoundError, TokenMissingError, VerificationError
from .keys import ResolvedKey, resolve_key
from .source import DEFAULT_TIMEOUT, HttpKeySetSource, KeySetSource
from .token import parse_token
from .validator import ClaimValidator, Claims

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifierConfig:
    jwks_url: str
    issuer: str
    audience: str
    cache: CacheBackend | None = field(default=None, compare=False)
    cache_key: str = DEFAULT_CACHE_KEY
    leeway: int = 0
    timeout: float = DEFAULT_TIMEOUT
    refresh_on_unknown_kid: bool = False

    def __post_init__(self) -> None:
        for name in ("jwks_url", "issuer", "audience", "cache_key"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        if self.leeway < 0:
            raise ValueError("leeway must be a non-negative integer")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of :meth:`Verifier.check`: claims on success, the failure otherwise."""

    claims: Claims | None = None
    error: VerificationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return None if self.error is None else self.error.kind

    @property
    def message(self) -> str | None:
        return None if self.error is None else self.error.message


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization`` header value ("" when absent)."""
    if not authorization:
        return ""
    scheme, _, credentials = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return credentials.strip()


class Verifier:
    """Verifies RS256 tokens against one provider's JWKS.

    ``verify_and_get_claims`` runs parse, key resolution, constraint checks and the expiry
    check in that order and stops at the first failure. Every failure is a
    :class:`VerificationError` subclass.
    """

    def __init__(
        self,
        config: VerifierConfig,
        *,
        source: KeySetSource | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.config = config
        self._source = source or HttpKeySetSource(timeout=config.timeout)
        self._keys = KeyCache(config.cache, config.cache_key) if config.cache is not None else None
        self._validator = ClaimValidator(
            config.issuer, config.audience, leeway=config.leeway, clock=clock
        )

    def verify_and_get_claims(self, token: str | None) -> Claims:
        if not token:
            raise TokenMissingError()
        parsed = parse_token(token)
        logger.debug("verifying token with kid %s", parsed.kid)
        key = self._resolve(parsed.kid)
        return self._validator.validate(parsed, key)

    def check(self, token: str | None) -> VerificationResult:
        try:
            claims = self.verify_and_get_claims(token)
        except VerificationError as exc:
            logger.warning("token verification failed (%s): %s", exc.kind.value, exc.message)
            return VerificationResult(error=exc)
        return VerificationResult(claims=claims)

    def _fetch(self) -> Any:
        return self._source.fetch(self.config.jwks_url)

    def _resolve(self, kid: str | None) -> ResolvedKey:
        if self._keys is None:
            return resolve_key(self._fetch(), kid)

        document = self._keys.remember(self._fetch)
        try:
            return resolve_key(document, kid)
        except KeyNotFoundError:
            if not self.config.refresh_on_unknown_kid or kid is None:
                raise
        logger.info("kid %s not in cached JWKS; refetching", kid)
        return resolve_key(self._keys.refresh(self._fetch), kid)

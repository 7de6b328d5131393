from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from jwt.algorithms import RSAAlgorithm

from .errors import TokenExpiredError, TokenValidationError
from .keys import ResolvedKey
from .token import Token

SUPPORTED_ALGORITHMS = frozenset({"RS256"})

_RS256 = RSAAlgorithm(RSAAlgorithm.SHA256)

Claims = Mapping[str, Any]


def check_signature(token: Token, key: ResolvedKey) -> None:
    alg = token.algorithm
    if alg not in SUPPORTED_ALGORITHMS:
        raise TokenValidationError(f"unsupported signing algorithm: {alg}")
    if not _RS256.verify(token.signing_input, key.public_key, token.signature):
        raise TokenValidationError("signature verification failed")


def check_issuer(payload: Mapping[str, Any], issuer: str) -> None:
    if payload.get("iss") != issuer:
        raise TokenValidationError(f"iss claim mismatch (expected: {issuer})")


def check_audience(payload: Mapping[str, Any], audience: str) -> None:
    aud = payload.get("aud")
    values = [aud] if isinstance(aud, str) else list(aud or [])
    if audience not in values:
        raise TokenValidationError(f"aud claim mismatch (expected: {audience})")


def check_expiry(payload: Mapping[str, Any], *, now: float, leeway: float = 0) -> None:
    if "exp" not in payload:
        raise TokenValidationError("missing required claim: exp")
    # Written as "not greater" so NaN never counts as unexpired.
    if not payload["exp"] > now - leeway:
        raise TokenExpiredError("token is expired")


class ClaimValidator:
    """Checks signature, issuer and audience, then expiry last.

    Expiry gets its own error kind and is never evaluated for a token that fails one of
    the other checks.
    """

    def __init__(
        self,
        issuer: str,
        audience: str,
        *,
        leeway: float = 0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway
        self._clock = clock or time.time

    def validate(self, token: Token, key: ResolvedKey) -> Claims:
        check_signature(token, key)
        check_issuer(token.payload, self.issuer)
        check_audience(token.payload, self.audience)
        check_expiry(token.payload, now=self._clock(), leeway=self.leeway)
        return MappingProxyType(dict(token.payload))

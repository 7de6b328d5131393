from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminant shared by every verification failure."""

    TOKEN_FORMAT = "token_format"
    OAUTH_PROVIDER = "oauth_provider"
    JWKS_FORMAT = "jwks_format"
    TOKEN_VALIDATION = "token_validation"
    TOKEN_EXPIRE = "token_expire"


class VerificationError(Exception):
    """Base class for every failure surfaced by the verifier.

    Callers may catch the concrete subclass, or catch this class and branch on ``kind``.
    All kinds mean "request unauthorized"; the kind tells an infrastructure problem
    (``OAUTH_PROVIDER``) apart from a bad token.
    """

    kind: ErrorKind
    status_code = 401

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class TokenFormatError(VerificationError):
    kind = ErrorKind.TOKEN_FORMAT


class TokenMissingError(TokenFormatError):
    """No token was supplied at all."""

    def __init__(self, message: str = "token not provided") -> None:
        super().__init__(message)


class OAuthProviderError(VerificationError):
    kind = ErrorKind.OAUTH_PROVIDER


class JwksFormatError(VerificationError):
    kind = ErrorKind.JWKS_FORMAT


class KeyNotFoundError(JwksFormatError):
    """The key set has no entry for the token's kid."""


class TokenValidationError(VerificationError):
    kind = ErrorKind.TOKEN_VALIDATION


class TokenExpiredError(VerificationError):
    kind = ErrorKind.TOKEN_EXPIRE

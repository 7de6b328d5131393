from .cache import CacheBackend, CallableCache, FileCache, KeyCache, MemoryCache, remember
from .errors import (
    ErrorKind,
    JwksFormatError,
    KeyNotFoundError,
    OAuthProviderError,
    TokenExpiredError,
    TokenFormatError,
    TokenMissingError,
    TokenValidationError,
    VerificationError,
)
from .keys import ResolvedKey, certificate_to_pem, resolve_key
from .source import HttpKeySetSource, KeySetSource, fetch_jwks
from .token import Token, parse_token
from .validator import ClaimValidator
from .verifier import VerificationResult, Verifier, VerifierConfig, bearer_token
from .version import __version__

__all__ = [
    "CacheBackend",
    "CallableCache",
    "ClaimValidator",
    "ErrorKind",
    "FileCache",
    "HttpKeySetSource",
    "JwksFormatError",
    "KeyCache",
    "KeyNotFoundError",
    "KeySetSource",
    "MemoryCache",
    "OAuthProviderError",
    "ResolvedKey",
    "Token",
    "TokenExpiredError",
    "TokenFormatError",
    "TokenMissingError",
    "TokenValidationError",
    "VerificationError",
    "VerificationResult",
    "Verifier",
    "VerifierConfig",
    "__version__",
    "bearer_token",
    "certificate_to_pem",
    "fetch_jwks",
    "parse_token",
    "remember",
    "resolve_key",
]

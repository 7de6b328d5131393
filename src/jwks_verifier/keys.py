from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from .errors import JwksFormatError, KeyNotFoundError

logger = logging.getLogger(__name__)

PEM_LINE_LENGTH = 64


@dataclass(frozen=True)
class ResolvedKey:
    kid: str
    pem: str
    public_key: rsa.RSAPublicKey


def certificate_to_pem(der_b64: str) -> str:
    """Wrap a base64 DER certificate (an ``x5c`` entry) in PEM armor."""
    body = "".join(der_b64.split())
    lines = [body[i : i + PEM_LINE_LENGTH] for i in range(0, len(body), PEM_LINE_LENGTH)]
    return "-----BEGIN CERTIFICATE-----\n" + "\n".join(lines) + "\n-----END CERTIFICATE-----\n"


def select_jwk(document: Any, kid: str | None) -> Mapping[str, Any]:
    """Return the first entry of ``document`` whose ``kid`` matches.

    Entry order matters: when several entries share a kid, later ones are ignored.
    """
    keys = document.get("keys") if isinstance(document, Mapping) else None
    if not isinstance(keys, list) or not keys:
        raise JwksFormatError("JWKS not valid or without keys")
    if kid is None:
        raise KeyNotFoundError("token header has no kid")

    for entry in keys:
        if not isinstance(entry, Mapping):
            continue
        entry_kid = entry.get("kid")
        if isinstance(entry_kid, str) and entry_kid == kid:
            return entry
    raise KeyNotFoundError(f"public key not found in JWKS for kid: {kid}")


def resolve_key(document: Any, kid: str | None) -> ResolvedKey:
    jwk = select_jwk(document, kid)

    kty = jwk.get("kty")
    if kty is not None and kty != "RSA":
        raise JwksFormatError(f"unsupported JWK kty for kid {kid}: {kty}")

    # Only the certificate-chain encoding is supported; n/e keys are rejected.
    chain = jwk.get("x5c")
    if not isinstance(chain, list) or not chain:
        raise JwksFormatError(f"unsupported JWKS key format for kid {kid} (x5c required)")
    leaf = chain[0]
    if not isinstance(leaf, str) or not leaf.strip():
        raise JwksFormatError(f"unsupported JWKS key format for kid {kid} (x5c required)")

    pem = certificate_to_pem(leaf)
    try:
        certificate = x509.load_pem_x509_certificate(pem.encode("ascii"))
    except (UnicodeEncodeError, ValueError) as exc:
        raise JwksFormatError(f"x5c certificate for kid {kid} could not be loaded") from exc

    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise JwksFormatError(f"x5c certificate for kid {kid} does not hold an RSA key")
    logger.debug("resolved key %s", kid)
    return ResolvedKey(kid=jwk["kid"], pem=pem, public_key=public_key)

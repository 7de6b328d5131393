from __future__ import annotations

import binascii
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jwt.utils import base64url_decode

from .errors import TokenFormatError

_TIME_CLAIMS = ("exp", "nbf", "iat")


@dataclass(frozen=True)
class Token:
    """A JWS split into its parts. Nothing here has been verified."""

    header: Mapping[str, Any]
    payload: Mapping[str, Any]
    signature: bytes
    signing_input: bytes

    @property
    def algorithm(self) -> str:
        return str(self.header["alg"])

    @property
    def kid(self) -> str | None:
        return self.header.get("kid")


def _decode_segment(segment: str, label: str) -> bytes:
    try:
        return base64url_decode(segment.encode("ascii"))
    except (UnicodeEncodeError, binascii.Error, ValueError) as exc:
        raise TokenFormatError(f"{label} segment is not valid base64url") from exc


def _decode_json_segment(segment: str, label: str) -> dict[str, Any]:
    raw = _decode_segment(segment, label)
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TokenFormatError(f"{label} segment is not valid JSON") from exc
    if not isinstance(obj, dict):
        raise TokenFormatError(f"{label} must be a JSON object")
    return obj


def _check_header(header: dict[str, Any]) -> None:
    alg = header.get("alg")
    if not isinstance(alg, str) or not alg:
        raise TokenFormatError("header missing alg")
    kid = header.get("kid")
    if kid is not None and not isinstance(kid, str):
        raise TokenFormatError("header kid must be a string")
    # JWE tokens are not supported.
    if "enc" in header:
        raise TokenFormatError("unsupported header field: enc")
    crit = header.get("crit")
    if crit is not None:
        if not isinstance(crit, list) or crit:
            raise TokenFormatError("unsupported header field: crit")


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value)


def _check_registered_claims(payload: dict[str, Any]) -> None:
    for name in _TIME_CLAIMS:
        if name in payload and not _is_number(payload[name]):
            raise TokenFormatError(f"{name} claim must be a number")
    if "iss" in payload and not isinstance(payload["iss"], str):
        raise TokenFormatError("iss claim must be a string")
    aud = payload.get("aud")
    if aud is None or isinstance(aud, str):
        return
    if not isinstance(aud, list) or not all(isinstance(item, str) for item in aud):
        raise TokenFormatError("aud claim must be a string or list of strings")


def parse_token(token: str) -> Token:
    if not isinstance(token, str):
        raise TokenFormatError("token must be a string")
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenFormatError("expected a JWS with three dot-separated parts")
    header_segment, payload_segment, signature_segment = parts

    header = _decode_json_segment(header_segment, "header")
    _check_header(header)
    payload = _decode_json_segment(payload_segment, "payload")
    _check_registered_claims(payload)
    signature = _decode_segment(signature_segment, "signature")

    return Token(
        header=header,
        payload=payload,
        signature=signature,
        signing_input=f"{header_segment}.{payload_segment}".encode("ascii"),
    )

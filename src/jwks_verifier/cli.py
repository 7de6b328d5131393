from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from .cache import DEFAULT_CACHE_KEY, FileCache, KeyCache
from .errors import VerificationError
from .source import DEFAULT_TIMEOUT, fetch_jwks
from .token import parse_token
from .verifier import Verifier, VerifierConfig
from .version import __version__

ENV_JWKS_URL = "JWKS_VERIFIER_JWKS_URL"
ENV_ISSUER = "JWKS_VERIFIER_ISSUER"
ENV_AUDIENCE = "JWKS_VERIFIER_AUDIENCE"


def _print_json(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _load_token(token_arg: str) -> str:
    if token_arg != "-":
        return token_arg
    token = sys.stdin.read().strip()
    if not token:
        raise ValueError("stdin is empty; expected JWT")
    return token


def _require(value: str | None, flag: str, env: str) -> str:
    if not value:
        raise ValueError(f"missing {flag} (or set {env})")
    return value


def _cmd_decode(args: argparse.Namespace) -> int:
    token = parse_token(_load_token(args.token))
    _print_json({"header": dict(token.header), "payload": dict(token.payload)})
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    url = _require(args.jwks_url, "--jwks-url", ENV_JWKS_URL)

    def _fetch_object() -> dict[str, Any]:
        fetched = fetch_jwks(url, timeout=args.timeout)
        if not isinstance(fetched, dict):
            raise ValueError("JWKS must be an object")
        return fetched

    if args.cache_file:
        document = KeyCache(FileCache(args.cache_file), args.cache_key).refresh(_fetch_object)
    else:
        document = _fetch_object()
    keys = document.get("keys")
    kids = [
        item["kid"]
        for item in keys or []
        if isinstance(item, dict) and isinstance(item.get("kid"), str)
    ]
    _print_json({"jwks": document, "kids": kids})
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    if args.leeway < 0:
        raise ValueError("leeway must be a non-negative integer")
    config = VerifierConfig(
        jwks_url=_require(args.jwks_url, "--jwks-url", ENV_JWKS_URL),
        issuer=_require(args.iss, "--iss", ENV_ISSUER),
        audience=_require(args.aud, "--aud", ENV_AUDIENCE),
        cache=FileCache(args.cache_file) if args.cache_file else None,
        cache_key=args.cache_key,
        leeway=args.leeway,
        timeout=args.timeout,
        refresh_on_unknown_kid=args.refresh_on_unknown_kid,
    )
    token = _load_token(args.token)

    result = Verifier(config).check(token)
    output: dict[str, Any] = {"valid": result.ok}
    if result.error is None:
        output["claims"] = dict(result.claims or {})
        _print_json(output)
        return 0
    output["error"] = result.error.to_dict()
    _print_json(output)
    print(f"error: {result.error.message}", file=sys.stderr)
    return 2


def _add_provider_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--jwks-url",
        default=os.environ.get(ENV_JWKS_URL),
        help=f"JWKS URL (http(s); default: ${ENV_JWKS_URL})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"JWKS fetch timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "--cache-file",
        help="Path to a JSON file used to cache the JWKS between runs",
    )
    parser.add_argument(
        "--cache-key",
        default=DEFAULT_CACHE_KEY,
        help=f"Key the JWKS is cached under (default: {DEFAULT_CACHE_KEY})",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="jwks-verifier")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_decode = sub.add_parser("decode", help="Parse a JWT without verifying anything")
    p_decode.add_argument("--token", required=True, help="JWT string (use '-' to read from stdin)")
    p_decode.set_defaults(func=_cmd_decode)

    p_fetch = sub.add_parser("fetch", help="Fetch a JWKS document and list its key ids")
    _add_provider_args(p_fetch)
    p_fetch.set_defaults(func=_cmd_fetch)

    p_verify = sub.add_parser("verify", help="Verify a JWT against a JWKS and print its claims")
    p_verify.add_argument("--token", required=True, help="JWT string (use '-' to read from stdin)")
    _add_provider_args(p_verify)
    p_verify.add_argument(
        "--iss",
        default=os.environ.get(ENV_ISSUER),
        help=f"Expected issuer (default: ${ENV_ISSUER})",
    )
    p_verify.add_argument(
        "--aud",
        default=os.environ.get(ENV_AUDIENCE),
        help=f"Expected audience (default: ${ENV_AUDIENCE})",
    )
    p_verify.add_argument(
        "--leeway",
        type=int,
        default=0,
        help="Clock skew in seconds when checking exp (default: 0)",
    )
    p_verify.add_argument(
        "--refresh-on-unknown-kid",
        action="store_true",
        help="Refetch a cached JWKS once when it has no key for the token's kid",
    )
    p_verify.set_defaults(func=_cmd_verify)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except (ValueError, VerificationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

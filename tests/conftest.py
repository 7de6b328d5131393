from __future__ import annotations

import base64
import datetime
import json
import socket
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

ISSUER = "https://idp.example"
AUDIENCE = "my-app"


@dataclass(frozen=True)
class SigningKey:
    kid: str
    private_pem: str
    x5c: str

    def jwk(self) -> dict[str, Any]:
        return {"kid": self.kid, "kty": "RSA", "use": "sig", "x5c": [self.x5c]}


def _self_signed_x5c(private_key: Any, common_name: str) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(private_key, hashes.SHA256())
    )
    der = certificate.public_bytes(serialization.Encoding.DER)
    return base64.b64encode(der).decode("ascii")


def _rsa_signing_key(kid: str) -> SigningKey:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    return SigningKey(kid=kid, private_pem=private_pem, x5c=_self_signed_x5c(private_key, kid))


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    return _rsa_signing_key("k1")


@pytest.fixture(scope="session")
def other_signing_key() -> SigningKey:
    return _rsa_signing_key("k2")


@pytest.fixture(scope="session")
def ec_x5c() -> str:
    return _self_signed_x5c(ec.generate_private_key(ec.SECP256R1()), "ec-key")


@pytest.fixture()
def claims() -> dict[str, Any]:
    return {"iss": ISSUER, "aud": AUDIENCE, "sub": "user-1", "exp": int(time.time()) + 300}


@pytest.fixture()
def issue_token(signing_key: SigningKey) -> Callable[..., str]:
    def _issue(
        payload: dict[str, Any],
        *,
        key: SigningKey | None = None,
        kid: str | None = None,
        headers: dict[str, Any] | None = None,
    ) -> str:
        key = key or signing_key
        merged: dict[str, Any] = {"kid": kid or key.kid}
        if headers:
            merged.update(headers)
        return jwt.encode(payload, key.private_pem, algorithm="RS256", headers=merged)

    return _issue


class JWKSEndpoint:
    def __init__(self) -> None:
        self.url = ""
        self.status = 200
        self.body = b'{"keys": []}'
        self.delay = 0.0
        self.hits = 0
        self._lock = threading.Lock()

    def set_document(self, document: Any) -> None:
        self.body = json.dumps(document).encode("utf-8")

    def record_hit(self) -> None:
        with self._lock:
            self.hits += 1


@pytest.fixture()
def jwks_endpoint() -> Iterator[JWKSEndpoint]:
    endpoint = JWKSEndpoint()

    class JWKSHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802 - http handler API
            endpoint.record_hit()
            if endpoint.delay:
                time.sleep(endpoint.delay)
            self.send_response(endpoint.status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(endpoint.body)))
            self.end_headers()
            self.wfile.write(endpoint.body)

        def log_message(self, _fmt: str, *_args: object) -> None:
            return

    server = ThreadingHTTPServer(("127.0.0.1", 0), JWKSHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    host_text = host.decode("ascii") if isinstance(host, bytes) else host
    endpoint.url = f"http://{host_text}:{port}/jwks"
    try:
        yield endpoint
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture()
def closed_port_url() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = int(sock.getsockname()[1])
    return f"http://127.0.0.1:{port}/jwks"

"""TLS trust material for directory connections.

Two ways of handing an ``ssl.SSLContext`` to ldap3:

- ``ContextTls``: the context travels with the ``Server`` object, so every
  connection built from that server uses it. This is the normal path.
- ``ThreadBoundTls``: the context is looked up from the calling thread when
  ldap3 wraps the socket. Only for callers that cannot hand a ``Tls`` object
  through; it requires the bind to run on one thread from start to finish,
  with ``bind_thread_ssl_context`` held around it.
"""
from __future__ import annotations

import hashlib
import logging
import ssl
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from ldap3 import Tls

from .errors import ConfigurationError, DirectoryUnavailableError, TrustConfigurationError

log = logging.getLogger(__name__)

_thread_binding = threading.local()


@dataclass(frozen=True)
class TrustContext:
    """Trust anchors loaded from one PEM file plus the SSL context built on them."""

    path: str
    certificates: tuple[x509.Certificate, ...]
    ssl_context: ssl.SSLContext = field(repr=False, compare=False)

    @property
    def fingerprints(self) -> list[str]:
        return [hashlib.sha256(c.public_bytes(Encoding.DER)).hexdigest() for c in self.certificates]

    def to_tls(self) -> "ContextTls":
        return ContextTls(self.ssl_context)


def _read_certificates(path: Path) -> list[x509.Certificate]:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read trust certificate file {str(path)!r}: {e}") from e

    try:
        certs = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise ConfigurationError(f"Trust certificate file {str(path)!r} is not valid PEM: {e}") from e

    unique: dict[bytes, x509.Certificate] = {}
    for c in certs:
        unique.setdefault(c.public_bytes(Encoding.DER), c)
    if not unique:
        raise ConfigurationError(f"Trust certificate file {str(path)!r} contains no certificates")
    return list(unique.values())


def create_ssl_context(certificates: list[x509.Certificate]) -> ssl.SSLContext:
    """SSL client context trusting exactly ``certificates``.

    The platform default store is never loaded. No client certificate is
    configured. Every loaded certificate is an anchor in its own right, so an
    intermediate CA may be trusted without its root.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.verify_mode = ssl.CERT_REQUIRED
    ctx.check_hostname = True
    ctx.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN
    try:
        ctx.load_verify_locations(cadata=b"".join(c.public_bytes(Encoding.DER) for c in certificates))
    except ssl.SSLError as e:
        raise ConfigurationError(f"Trust certificates rejected by the TLS library: {e}") from e

    loaded = ctx.cert_store_stats().get("x509", 0)
    if loaded != len(certificates):
        raise TrustConfigurationError(
            f"Unexpected trust store: expected {len(certificates)} certificate(s), found {loaded}"
        )
    if ctx.verify_mode != ssl.CERT_REQUIRED or not ctx.check_hostname:
        raise TrustConfigurationError("Unexpected trust setup: peer verification is not mandatory")
    return ctx


def load_trust_context(path: str | Path) -> TrustContext:
    """Load a PEM trust certificate file. Any failure is fatal for startup."""
    p = Path(path)
    certs = _read_certificates(p)
    ctx = create_ssl_context(certs)
    log.info("Loaded %d trust certificate(s) from %s", len(certs), p)
    return TrustContext(path=str(p), certificates=tuple(certs), ssl_context=ctx)


def _wrap(ssl_context: ssl.SSLContext, connection, do_handshake: bool) -> None:
    connection.socket = ssl_context.wrap_socket(
        connection.socket,
        server_side=False,
        do_handshake_on_connect=do_handshake,
        server_hostname=connection.server.host,
    )


class ContextTls(Tls):
    """ldap3 ``Tls`` that wraps sockets with a fixed ``ssl.SSLContext``."""

    def __init__(self, ssl_context: ssl.SSLContext) -> None:
        super().__init__(validate=ssl.CERT_REQUIRED)
        self.ssl_context = ssl_context

    def wrap_socket(self, connection, do_handshake=False):
        _wrap(self.ssl_context, connection, do_handshake)


class ThreadBoundTls(Tls):
    """ldap3 ``Tls`` that uses whatever context the executing thread has bound."""

    def __init__(self) -> None:
        super().__init__(validate=ssl.CERT_REQUIRED)

    def wrap_socket(self, connection, do_handshake=False):
        ssl_context = current_thread_ssl_context()
        if ssl_context is None:
            raise DirectoryUnavailableError("No TLS context bound to the current thread")
        _wrap(ssl_context, connection, do_handshake)


def current_thread_ssl_context() -> ssl.SSLContext | None:
    return getattr(_thread_binding, "ssl_context", None)


@contextmanager
def bind_thread_ssl_context(ssl_context: ssl.SSLContext) -> Iterator[ssl.SSLContext]:
    """Bind ``ssl_context`` to the calling thread until the block exits."""
    previous = current_thread_ssl_context()
    _thread_binding.ssl_context = ssl_context
    try:
        yield ssl_context
    finally:
        _thread_binding.ssl_context = previous

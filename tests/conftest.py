"""Shared fixtures: throwaway PKI and fake ldap3 connections."""
from __future__ import annotations

import datetime
import ipaddress
import ssl
from dataclasses import dataclass
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

HOSTNAME = "ldap.example.test"
LOOPBACK = "127.0.0.1"


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def make_ca(cn: str, issuer=None):
    """Self-signed root, or an intermediate when ``issuer`` is a (key, cert) pair."""
    key = ec.generate_private_key(ec.SECP256R1())
    signing_key, issuer_name = (issuer[0], issuer[1].subject) if issuer else (key, _name(cn))
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if issuer:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(signing_key.public_key()), critical=False
        )
    return key, builder.sign(signing_key, hashes.SHA256())


def make_server_cert(ca_key, ca_cert, hostname: str = HOSTNAME):
    key = ec.generate_private_key(ec.SECP256R1())
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(_name(hostname))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName(
                [x509.DNSName(hostname), x509.IPAddress(ipaddress.ip_address(LOOPBACK))]
            ),
            critical=False,
        )
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()), critical=False
        )
        .sign(ca_key, hashes.SHA256())
    )
    return key, cert


def _pem(cert) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def _key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@dataclass
class Pki:
    ca_file: Path
    ca_cert: x509.Certificate
    server_cert_file: Path
    server_key_file: Path
    rogue_ca_file: Path
    rogue_cert_file: Path
    rogue_key_file: Path
    intermediate_file: Path
    chained_cert_file: Path
    chained_key_file: Path

    def server_context(self, rogue: bool = False, chained: bool = False) -> ssl.SSLContext:
        """Server side of a handshake.

        ``chained`` presents a leaf issued by the intermediate CA, followed by
        the intermediate itself.
        """
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if rogue:
            ctx.load_cert_chain(str(self.rogue_cert_file), str(self.rogue_key_file))
        elif chained:
            ctx.load_cert_chain(str(self.chained_cert_file), str(self.chained_key_file))
        else:
            ctx.load_cert_chain(str(self.server_cert_file), str(self.server_key_file))
        return ctx


@pytest.fixture(scope="session")
def pki(tmp_path_factory) -> Pki:
    d = tmp_path_factory.mktemp("pki")
    ca_key, ca_cert = make_ca("Directory Test CA")
    srv_key, srv_cert = make_server_cert(ca_key, ca_cert)
    rogue_ca_key, rogue_ca_cert = make_ca("Rogue CA")
    rogue_key, rogue_cert = make_server_cert(rogue_ca_key, rogue_ca_cert)
    int_key, int_cert = make_ca("Directory Issuing CA", issuer=(ca_key, ca_cert))
    leaf_key, leaf_cert = make_server_cert(int_key, int_cert)

    files = {
        "ca.pem": _pem(ca_cert),
        "server.pem": _pem(srv_cert),
        "server.key": _key_pem(srv_key),
        "rogue-ca.pem": _pem(rogue_ca_cert),
        "rogue.pem": _pem(rogue_cert),
        "rogue.key": _key_pem(rogue_key),
        "intermediate.pem": _pem(int_cert),
        "chained.pem": _pem(leaf_cert) + _pem(int_cert),
        "chained.key": _key_pem(leaf_key),
    }
    for name, data in files.items():
        (d / name).write_bytes(data)

    return Pki(
        ca_file=d / "ca.pem",
        ca_cert=ca_cert,
        server_cert_file=d / "server.pem",
        server_key_file=d / "server.key",
        rogue_ca_file=d / "rogue-ca.pem",
        rogue_cert_file=d / "rogue.pem",
        rogue_key_file=d / "rogue.key",
        intermediate_file=d / "intermediate.pem",
        chained_cert_file=d / "chained.pem",
        chained_key_file=d / "chained.key",
    )


def handshake(client_ctx: ssl.SSLContext, server_ctx: ssl.SSLContext, hostname: str = HOSTNAME) -> None:
    """Run a TLS handshake entirely in memory; raises what the client raises."""
    c_in, c_out = ssl.MemoryBIO(), ssl.MemoryBIO()
    s_in, s_out = ssl.MemoryBIO(), ssl.MemoryBIO()
    client = client_ctx.wrap_bio(c_in, c_out, server_hostname=hostname)
    server = server_ctx.wrap_bio(s_in, s_out, server_side=True)

    client_done = server_done = False
    for _ in range(10):
        if not client_done:
            try:
                client.do_handshake()
                client_done = True
            except ssl.SSLWantReadError:
                pass
        s_in.write(c_out.read())
        if not server_done:
            try:
                server.do_handshake()
                server_done = True
            except ssl.SSLWantReadError:
                pass
        c_in.write(s_out.read())
        if client_done and server_done:
            return
    raise AssertionError("handshake did not complete")


def fake_connection(bind_ok: bool = True, result: dict | None = None) -> MagicMock:
    conn = MagicMock(name="Connection")
    conn.bind.return_value = bind_ok
    conn.result = result if result is not None else {"result": 0, "description": "success"}
    conn.response = []
    return conn


def search_returns(conn: MagicMock, dns: list[str], result: dict | None = None, refs: int = 0) -> None:
    """Make ``conn.search`` fill ``response`` with entries the way ldap3 does."""
    response = [{"type": "searchResEntry", "dn": dn, "attributes": {}} for dn in dns]
    response += [{"type": "searchResRef", "uri": ["ldap://other.example.test/"]} for _ in range(refs)]

    def _search(**kwargs):
        conn.response = response
        conn.result = result if result is not None else {"result": 0, "description": "success"}
        return bool(dns)

    conn.search.side_effect = _search

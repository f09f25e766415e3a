"""
Shared fixtures for Ingress Certificate Exporter tests.
"""

import socket
import ssl
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

REFERENCE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that open local sockets")


def generate_certificate(
    cn: str = "test.example.com",
    not_after: Optional[datetime] = None,
    dns_names: bool = True,
) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    """Generate a self-signed test certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )

    not_after = not_after or datetime.now(timezone.utc) + timedelta(days=365)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=400))
        .not_valid_after(not_after)
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(cn)]), critical=False
        )

    cert = builder.sign(private_key, hashes.SHA256())
    return cert, private_key


def to_der(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def make_der() -> Callable[..., bytes]:
    """Build a DER certificate expiring a given number of days after REFERENCE_TIME."""

    def _make(cn: str = "test.example.com", days: float = 10.2, dns_names: bool = True) -> bytes:
        cert, _ = generate_certificate(
            cn, not_after=REFERENCE_TIME + timedelta(days=days), dns_names=dns_names
        )
        return to_der(cert)

    return _make


def sign_certificate(
    cn: str,
    not_after: datetime,
    issuer: x509.Certificate,
    issuer_key: rsa.RSAPrivateKey,
) -> Tuple[x509.Certificate, rsa.RSAPrivateKey]:
    """Generate a certificate for ``cn`` signed by the given issuer."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)]))
        .issuer_name(issuer.subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=90))
        .not_valid_after(not_after)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(cn)]), critical=False)
        .sign(issuer_key, hashes.SHA256())
    )
    return cert, private_key


def serve_tls(tmp_path, chain: List[x509.Certificate], key: rsa.RSAPrivateKey):
    """Serve ``chain`` (leaf first) on a local port until the generator is closed."""
    cert_path = tmp_path / "server.pem"
    key_path = tmp_path / "server.key"
    cert_path.write_bytes(
        b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in chain)
    )
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(str(cert_path), str(key_path))

    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(5)
    listener.settimeout(1)
    stop = threading.Event()

    def serve():
        while not stop.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.settimeout(5)
            try:
                with context.wrap_socket(conn, server_side=True) as tls_conn:
                    tls_conn.recv(1)
            except OSError:
                pass

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    yield listener.getsockname()[1]

    stop.set()
    listener.close()
    thread.join(timeout=5)


@pytest.fixture
def local_tls_server(tmp_path):
    """Serve a self-signed certificate expiring in ten days on a local port."""
    cert, key = generate_certificate(
        "local.test", not_after=datetime.now(timezone.utc) + timedelta(days=10, hours=2)
    )
    yield from serve_tls(tmp_path, [cert], key)


@pytest.fixture
def local_tls_chain_server(tmp_path):
    """Serve a leaf expiring in ten days together with its CA expiring in 400 days."""
    now = datetime.now(timezone.utc)
    ca_cert, ca_key = generate_certificate(
        "Local Test CA", not_after=now + timedelta(days=400, hours=2), dns_names=False
    )
    leaf_cert, leaf_key = sign_certificate(
        "local.test", now + timedelta(days=10, hours=2), ca_cert, ca_key
    )
    yield from serve_tls(tmp_path, [leaf_cert, ca_cert], leaf_key)

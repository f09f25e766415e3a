"""
TLS certificate probe for Ingress Certificate Exporter.
"""

import ipaddress
import math
import select
import socket
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from cryptography import x509
from OpenSSL import SSL, crypto

from ingress_cert_exporter.logger import get_logger, log_certificate_observed, log_probe_failure
from ingress_cert_exporter.models import HostnameTarget, ProbeOutcome


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_ip_address(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    magnitude = math.floor(abs(value) + 0.5)
    return magnitude if value >= 0 else -magnitude


def days_until_expiry(not_after: datetime, now: datetime) -> float:
    """
    Whole days between ``now`` and ``not_after``, rounded to nearest.

    Negative once the certificate has expired.
    """
    hours = (not_after - now).total_seconds() / 3600
    return float(round_half_away_from_zero(hours / 24))


class CertificateProbe:
    """
    Reads the certificates a host presents during a TLS handshake.

    Chain verification is disabled: the probe reports expiry of whatever the
    host serves, trusted or not.
    """

    def __init__(
        self,
        port: int = 443,
        timeout: float = 5.0,
        keepalive: float = 5.0,
        require_dns_names: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.port = port
        self.timeout = timeout
        self.keepalive = keepalive
        self.require_dns_names = require_dns_names
        self.clock = clock or _utc_now
        self.logger = get_logger("probe")

        self._context = SSL.Context(SSL.TLS_CLIENT_METHOD)
        self._context.set_verify(SSL.VERIFY_NONE)

    def probe(self, target: HostnameTarget) -> List[ProbeOutcome]:
        """
        Probe one target.

        Args:
            target: Hostname to dial

        Returns:
            One outcome per presented certificate, or a single failure
            outcome if the connection could not be established
        """
        try:
            conn = self._dial(target.hostname)
        except (OSError, ValueError, SSL.Error) as e:
            log_probe_failure(
                self.logger,
                target.hostname,
                target.ingress_name,
                target.namespace,
                e,
                type(e).__name__,
            )
            return [ProbeOutcome.failed(target)]

        try:
            der_chain = self._peer_certificates(conn)
        except (OSError, SSL.Error) as e:
            log_probe_failure(
                self.logger,
                target.hostname,
                target.ingress_name,
                target.namespace,
                e,
                type(e).__name__,
            )
            return [ProbeOutcome.failed(target)]
        finally:
            conn.close()

        now = self.clock()
        outcomes = []
        for der in der_chain:
            try:
                cert = x509.load_der_x509_certificate(der)
            except ValueError as e:
                self.logger.warning(
                    f"Skipping unparseable certificate presented by {target.hostname}: {e}",
                    extra={"domain": target.hostname, "error_type": "parse_error"},
                )
                continue

            if self.require_dns_names:
                try:
                    has_dns_names = self._has_dns_names(cert)
                except (ValueError, x509.DuplicateExtension, x509.UnsupportedGeneralNameType) as e:
                    self.logger.warning(
                        f"Skipping certificate with unreadable extensions presented by "
                        f"{target.hostname}: {e}",
                        extra={"domain": target.hostname, "error_type": "parse_error"},
                    )
                    continue
                if not has_dns_names:
                    continue

            common_name = self._get_common_name(cert)
            days = days_until_expiry(cert.not_valid_after_utc, now)
            log_certificate_observed(self.logger, target.hostname, common_name, days)

            outcomes.append(
                ProbeOutcome(
                    domain=target.hostname,
                    ingress=target.ingress_name,
                    namespace=target.namespace,
                    common_name=common_name,
                    days_until_expiry=days,
                    ok=True,
                )
            )

        return outcomes

    def _dial(self, hostname: str) -> SSL.Connection:
        """Open a TCP connection with keep-alive and complete the TLS handshake."""
        raw_sock = socket.create_connection((hostname, self.port), timeout=self.timeout)
        try:
            self._enable_keepalive(raw_sock)
            conn = SSL.Connection(self._context, raw_sock)
            if not _is_ip_address(hostname):
                conn.set_tlsext_host_name(hostname.encode("idna"))
            conn.set_connect_state()
            self._handshake(conn, raw_sock)
            return conn
        except BaseException:
            raw_sock.close()
            raise

    def _handshake(self, conn: SSL.Connection, sock: socket.socket) -> None:
        # A socket with a timeout is non-blocking underneath, so OpenSSL asks
        # to be called again once the socket is ready.
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                conn.do_handshake()
                return
            except SSL.WantReadError:
                readers, writers = [sock], []
            except SSL.WantWriteError:
                readers, writers = [], [sock]

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("TLS handshake timed out")
            readable, writable, _ = select.select(readers, writers, [], remaining)
            if not readable and not writable:
                raise socket.timeout("TLS handshake timed out")

    def _enable_keepalive(self, sock: socket.socket) -> None:
        interval = max(1, int(self.keepalive))
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        # Option names differ between Linux and macOS; others keep OS defaults
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval)
        elif hasattr(socket, "TCP_KEEPALIVE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, interval)
        if hasattr(socket, "TCP_KEEPINTVL"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, interval)

    def _peer_certificates(self, conn: SSL.Connection) -> List[bytes]:
        """DER-encoded certificates presented by the peer, leaf first."""
        chain = conn.get_peer_cert_chain() or []
        return [crypto.dump_certificate(crypto.FILETYPE_ASN1, cert) for cert in chain]

    def _get_common_name(self, cert: x509.Certificate) -> str:
        """Extract common name from certificate."""
        try:
            cn_attrs = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
            if cn_attrs:
                value = cn_attrs[0].value
                return value if isinstance(value, str) else value.decode("utf-8")
        except ValueError as e:
            self.logger.debug(f"Could not extract common name from certificate: {e}")
        return ""

    def _has_dns_names(self, cert: x509.Certificate) -> bool:
        try:
            san_ext = cert.extensions.get_extension_for_oid(
                x509.ExtensionOID.SUBJECT_ALTERNATIVE_NAME
            )
        except x509.ExtensionNotFound:
            return False
        return bool(san_ext.value.get_values_for_type(x509.DNSName))

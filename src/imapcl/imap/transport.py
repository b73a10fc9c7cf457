# =============================================================================
# Transport
# =============================================================================
# A byte-stream connection to the IMAP server, plain or wrapped in TLS.
#
# The protocol engine only ever sees the Transport protocol below:
#   - write(data) -> bytes accepted, 0 means "retry"
#   - read(buffer) -> bytes placed in buffer, 0 means "nothing yet, retry"
#   - close()
#
# Anything terminal (connection reset, peer closed the stream, handshake
# failure) is raised as TransportError instead of being returned.
# =============================================================================

import logging
import socket
import ssl
from typing import TYPE_CHECKING, Protocol

from imapcl.imap.errors import TransportError

if TYPE_CHECKING:
    from imapcl.core import Account

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Capability interface shared by the plain and TLS transports."""

    def write(self, data: bytes) -> int:
        ...

    def read(self, buffer: bytearray | memoryview) -> int:
        ...

    def close(self) -> None:
        ...


class SocketTransport:
    """
    Plain TCP transport.

    The socket carries a read timeout; a read that times out returns 0 so the
    caller can count it against its own retry bound.

    Attributes:
        host: Server the socket is connected to.
        port: Server port.
    """

    def __init__(self, sock: socket.socket, host: str, port: int) -> None:
        self._sock: socket.socket | None = sock
        self.host = host
        self.port = port

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float = 5.0,
    ) -> "SocketTransport":
        """
        Open a TCP connection to host:port.

        Raises:
            TransportError: If the name cannot be resolved or the connect fails.
        """
        logger.debug(f"Opening TCP connection to {host}:{port}")
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except socket.gaierror as e:
            raise TransportError(f"Cannot resolve server {host}: {e}") from e
        except OSError as e:
            raise TransportError(f"Cannot connect to {host} on port {port}: {e}") from e
        sock.settimeout(read_timeout)
        return cls(sock, host, port)

    @property
    def sock(self) -> socket.socket:
        if self._sock is None:
            raise TransportError("Transport is closed")
        return self._sock

    def write(self, data: bytes) -> int:
        try:
            return self.sock.send(data)
        except (socket.timeout, BlockingIOError):
            return 0
        except OSError as e:
            raise TransportError(f"Write to {self.host} failed: {e}") from e

    def read(self, buffer: bytearray | memoryview) -> int:
        try:
            count = self.sock.recv_into(buffer)
        except (socket.timeout, BlockingIOError):
            return 0
        except OSError as e:
            raise TransportError(f"Read from {self.host} failed: {e}") from e
        if count == 0:
            raise TransportError(f"Connection closed by {self.host}")
        return count

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as e:
                logger.warning(f"Error closing connection to {self.host}: {e}")
            finally:
                self._sock = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(host={self.host!r}, port={self.port})"


class TLSTransport(SocketTransport):
    """
    Transport running over a TLS session.

    TLS renegotiation surfaces as SSLWantReadError/SSLWantWriteError, which are
    reported as "retry" rather than as failures.
    """

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        *,
        ssl_context: ssl.SSLContext | None = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 5.0,
    ) -> "TLSTransport":
        """
        Open a TCP connection and complete the TLS handshake.

        Raises:
            TransportError: On connect, handshake or certificate failure.
        """
        plain = SocketTransport.connect(
            host,
            port,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )
        context = ssl_context or ssl.create_default_context()
        try:
            plain.sock.settimeout(connect_timeout)
            wrapped = context.wrap_socket(plain.sock, server_hostname=host)
        except ssl.SSLCertVerificationError as e:
            plain.close()
            raise TransportError(f"Certificate verification failed for {host}: {e}") from e
        except (ssl.SSLError, OSError) as e:
            plain.close()
            raise TransportError(f"TLS handshake with {host} failed: {e}") from e
        wrapped.settimeout(read_timeout)
        logger.debug(f"TLS established with {host}: {wrapped.version()}")
        return cls(wrapped, host, port)

    def write(self, data: bytes) -> int:
        try:
            return super().write(data)
        except TransportError as e:
            if isinstance(e.__cause__, (ssl.SSLWantReadError, ssl.SSLWantWriteError)):
                return 0
            raise

    def read(self, buffer: bytearray | memoryview) -> int:
        try:
            return super().read(buffer)
        except TransportError as e:
            if isinstance(e.__cause__, (ssl.SSLWantReadError, ssl.SSLWantWriteError)):
                return 0
            raise


def open_transport(
    account: "Account",
    *,
    ssl_context: ssl.SSLContext | None = None,
    connect_timeout: float = 10.0,
    read_timeout: float = 5.0,
) -> SocketTransport:
    """
    Open the transport variant the account asks for.

    Args:
        account: Account with server, port and use_tls.
        ssl_context: Context for TLS connections (ignored for plain ones).
        connect_timeout: Seconds allowed for connect and handshake.
        read_timeout: Seconds a single read may block.

    Returns:
        A connected transport.
    """
    if account.use_tls:
        return TLSTransport.connect(
            account.server,
            account.port,
            ssl_context=ssl_context,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )
    return SocketTransport.connect(
        account.server,
        account.port,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )

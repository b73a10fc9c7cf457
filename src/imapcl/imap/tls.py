# =============================================================================
# TLS Context
# =============================================================================
# TLS context creation for encrypted IMAP connections.
#
# The context is built once per run and handed to the TLS transport; the
# protocol engine never sees it.
# =============================================================================

import logging
import ssl
from pathlib import Path

from imapcl.imap.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_CERT_DIR = "/etc/ssl/certs"


def create_ssl_context(
    cert_file: str | Path | None = None,
    cert_dir: str | Path | None = None,
) -> ssl.SSLContext:
    """Return a client context verifying the server against the given CAs.

    A certificate file takes precedence over a certificate directory. With
    neither, the system default verify paths are used.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.options |= ssl.OP_NO_COMPRESSION

    try:
        if cert_file:
            logger.debug(f"Loading CA certificates from file {cert_file}")
            context.load_verify_locations(cafile=str(cert_file))
        elif cert_dir:
            if not Path(cert_dir).is_dir():
                raise TransportError(f"Certificate directory not found: {cert_dir}")
            logger.debug(f"Loading CA certificates from directory {cert_dir}")
            context.load_verify_locations(capath=str(cert_dir))
    except (OSError, ssl.SSLError) as e:
        raise TransportError(f"Could not load certificates: {e}") from e

    return context

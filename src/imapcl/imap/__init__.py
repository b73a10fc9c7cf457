# =============================================================================
# IMAP Module
# =============================================================================
# Handles all IMAP (Internet Message Access Protocol) operations:
#   - Plain and TLS transports over blocking sockets
#   - Tagged command framing and response collection
#   - Parsing SELECT / SEARCH / FETCH responses
#   - Deciding which messages a run has to download (UIDVALIDITY aware)
# =============================================================================

from imapcl.imap.client import IMAPClient, ConnectionState
from imapcl.imap.errors import (
    AuthenticationFailed,
    IMAPError,
    MailboxNotFound,
    MailboxSelectFailed,
    MessageFetchError,
    ParseFailure,
    ProtocolTimeout,
    ServerNotReady,
    TransportError,
)
from imapcl.imap.protocol import ProtocolEngine, TaggedResponse
from imapcl.imap.sync import (
    SyncManager,
    SyncPlan,
    SyncProgress,
    SyncReason,
    SyncResult,
    SyncStatus,
    plan_fetch,
)
from imapcl.imap.tls import create_ssl_context
from imapcl.imap.transport import SocketTransport, TLSTransport, Transport, open_transport

__all__ = [
    # Client
    "IMAPClient",
    "ConnectionState",
    # Protocol
    "ProtocolEngine",
    "TaggedResponse",
    # Transport
    "Transport",
    "SocketTransport",
    "TLSTransport",
    "open_transport",
    "create_ssl_context",
    # Sync
    "SyncManager",
    "SyncPlan",
    "SyncProgress",
    "SyncReason",
    "SyncResult",
    "SyncStatus",
    "plan_fetch",
    # Errors
    "IMAPError",
    "TransportError",
    "ProtocolTimeout",
    "ServerNotReady",
    "AuthenticationFailed",
    "MailboxNotFound",
    "MailboxSelectFailed",
    "MessageFetchError",
    "ParseFailure",
]

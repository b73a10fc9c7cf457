# =============================================================================
# Credentials
# =============================================================================
# Supplies the (username, password) pair for LOGIN.
#
# Two sources, in order:
#   1. An auth file, one "key = value" per line:
#          username = jdoe
#          password = secret
#   2. The system keyring, under the service "imapcl:<account name>":
#          keyring set imapcl:imap.example.com jdoe
# =============================================================================

import logging
from pathlib import Path

import keyring
from keyring.errors import KeyringError

from imapcl.core import Account
from imapcl.imap.errors import AuthenticationFailed

logger = logging.getLogger(__name__)


def read_auth_file(path: str | Path) -> tuple[str, str]:
    """
    Read username and password from an auth file.

    Raises:
        AuthenticationFailed: If the file is unreadable or lacks either value.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise AuthenticationFailed(f"Unable to open authentication file {path}: {e}") from e

    values: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip().lower()] = value.strip()

    username = values.get("username", "")
    password = values.get("password", "")
    if not username or not password:
        raise AuthenticationFailed(f"Missing username or password in authentication file {path}")
    return username, password


def get_credentials(account: Account) -> tuple[str, str]:
    """
    Return the login credentials for an account.

    Uses the account's auth file when it has one, the keyring otherwise.

    Raises:
        AuthenticationFailed: If no usable credentials are found.
    """
    if account.auth_file:
        username, password = read_auth_file(account.auth_file)
        account.username = username
        return username, password

    if not account.username:
        raise AuthenticationFailed(
            f"No auth file and no username configured for {account.name}"
        )

    try:
        password = keyring.get_password(account.keyring_service, account.username)
    except KeyringError as e:
        raise AuthenticationFailed(f"Keyring lookup failed for {account.username}: {e}") from e

    if not password:
        raise AuthenticationFailed(
            f"No password found in keyring for {account.username}. "
            f"Set it with: keyring set {account.keyring_service} {account.username}"
        )

    logger.debug(f"Using keyring password for {account.username}")
    return account.username, password

# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading and saving imapcl configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/imapcl/  (default: ~/.config/imapcl/)
#   - Data:    $XDG_DATA_HOME/imapcl/    (default: ~/.local/share/imapcl/)
#
# Files:
#   - config.toml: User configuration (accounts, network and sync defaults)
#   - mail/: Default output directory for downloaded mailboxes (in data dir)
#
# Everything in the config file is optional; command-line flags override it.
# =============================================================================

import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w  # For writing TOML (tomllib is read-only)

from imapcl.core import Account


# =============================================================================
# XDG Directory Management
# =============================================================================

# Application identifier used in all XDG paths
APP_NAME = "imapcl"


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for imapcl.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/imapcl/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def get_xdg_data_home() -> Path:
    """
    Returns the XDG data directory for imapcl.

    Respects $XDG_DATA_HOME if set, otherwise uses ~/.local/share/imapcl/
    This is where downloaded mail lives unless an output directory is given.
    """
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        base = Path(xdg_data)
    else:
        base = Path.home() / ".local" / "share"
    return base / APP_NAME


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class NetworkConfig:
    """
    Timeouts and retry bounds for the IMAP connection.

    Attributes:
        connect_timeout: Seconds allowed for TCP connect and TLS handshake.
        read_timeout: Seconds a single socket read may block before it
                      counts as an empty read.
        response_timeout: Seconds allowed for one complete tagged response.
        max_idle_reads: Consecutive empty reads tolerated per response.
    """
    connect_timeout: float = 10.0
    read_timeout: float = 5.0
    response_timeout: float = 60.0
    max_idle_reads: int = 20


@dataclass
class SyncConfig:
    """
    Defaults for what a run downloads.

    Attributes:
        out_dir: Output directory ("" = <data dir>/mail).
        headers_only: Save only Date/From/To/Subject/Message-Id.
        new_only: Only consider unseen messages.
    """
    out_dir: str = ""
    headers_only: bool = False
    new_only: bool = False

    @property
    def out_path(self) -> Path:
        if self.out_dir:
            return Path(self.out_dir).expanduser()
        return get_xdg_data_home() / "mail"


@dataclass
class Config:
    """
    Main configuration container for imapcl.

    Attributes:
        default_account: Name of the account used when none is given.
        accounts: Configured servers, keyed by name.
        network: Connection timeouts and bounds.
        sync: Download defaults.

    Usage:
        >>> config = Config.load()
        >>> config.accounts["work"].server
        'imap.example.com'
    """
    # General settings
    default_account: str = ""

    # Account configurations (name -> Account)
    accounts: dict[str, Account] = field(default_factory=dict)

    # Subsystem configurations
    network: NetworkConfig = field(default_factory=NetworkConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the main config file."""
        return get_xdg_config_home() / "config.toml"

    def get_account(self, name: str | None = None) -> Account | None:
        """Return the named account, or the default one."""
        name = name or self.default_account
        if name:
            return self.accounts.get(name)
        if len(self.accounts) == 1:
            return next(iter(self.accounts.values()))
        return None

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """
        Load configuration from the config file.

        If the default config file doesn't exist, returns default
        configuration. An explicitly given path must exist.

        Returns:
            Loaded Config object.

        Raises:
            ConfigError: If the config file is missing (explicit path) or invalid.
        """
        config_path = Path(path) if path else cls.config_file_path()

        if not config_path.exists():
            if path:
                raise ConfigError(f"Config file not found: {config_path}")
            # No config file yet - return defaults
            return cls()

        # Load and parse the TOML file
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read config file {config_path}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: str | Path | None = None) -> None:
        """
        Save configuration to the config file.

        Creates the config directory if it doesn't exist.
        """
        config_path = Path(path) if path else self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML).

        This handles the nested structure of the config file and
        converts account entries into Account objects.
        """
        config = cls()

        # General settings
        general = data.get("general", {})
        config.default_account = general.get("default_account", "")

        # Network settings
        network = data.get("network", {})
        try:
            config.network = NetworkConfig(
                connect_timeout=float(network.get("connect_timeout", 10.0)),
                read_timeout=float(network.get("read_timeout", 5.0)),
                response_timeout=float(network.get("response_timeout", 60.0)),
                max_idle_reads=int(network.get("max_idle_reads", 20)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid [network] setting: {e}") from e

        # Sync settings
        sync = data.get("sync", {})
        config.sync = SyncConfig(
            out_dir=sync.get("out_dir", ""),
            headers_only=sync.get("headers_only", False),
            new_only=sync.get("new_only", False),
        )

        # Accounts - each key under [accounts] is an account name
        accounts_data = data.get("accounts", {})
        for name, acct_data in accounts_data.items():
            if not acct_data.get("server"):
                raise ConfigError(f"Account '{name}' has no server")
            config.accounts[name] = Account(
                name=name,
                server=acct_data["server"],
                port=acct_data.get("port", 0),
                use_tls=acct_data.get("use_tls", False),
                cert_file=acct_data.get("cert_file"),
                cert_dir=acct_data.get("cert_dir"),
                username=acct_data.get("username", ""),
                auth_file=acct_data.get("auth_file"),
                mailbox=acct_data.get("mailbox", "INBOX"),
            )

        return config

    def _to_dict(self) -> dict[str, Any]:
        """
        Convert Config to a dictionary for TOML serialization.
        """
        data: dict[str, Any] = {}

        data["general"] = {
            "default_account": self.default_account,
        }

        data["network"] = {
            "connect_timeout": self.network.connect_timeout,
            "read_timeout": self.network.read_timeout,
            "response_timeout": self.network.response_timeout,
            "max_idle_reads": self.network.max_idle_reads,
        }

        data["sync"] = {
            "out_dir": self.sync.out_dir,
            "headers_only": self.sync.headers_only,
            "new_only": self.sync.new_only,
        }

        # Accounts; TOML has no null, so unset optional values are left out
        data["accounts"] = {}
        for name, account in self.accounts.items():
            entry: dict[str, Any] = {
                "server": account.server,
                "port": account.port,
                "use_tls": account.use_tls,
                "username": account.username,
                "mailbox": account.mailbox,
            }
            for key in ("cert_file", "cert_dir", "auth_file"):
                value = getattr(account, key)
                if value:
                    entry[key] = value
            data["accounts"][name] = entry

        return data


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """
    Print all XDG paths for debugging.
    Useful for users wondering where their config/data is stored.
    """
    print(f"Config:  {get_xdg_config_home()}")
    print(f"Data:    {get_xdg_data_home()}")
    print()
    print(f"Config file:  {Config.config_file_path()}")
    print(f"Mail:         {SyncConfig().out_path}")

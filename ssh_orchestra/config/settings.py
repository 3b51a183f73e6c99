"""Settings from environment variables.

Centralized ORCHESTRA_* parsing. Explicit values in a ChainConfig always
win; these only supply chain-wide defaults and host key policy.
"""

import logging
import os
from dataclasses import dataclass, field

from ssh_orchestra.config.host_keys import HostKeyVerifier
from ssh_orchestra.models.hop import ChainDefaults

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Chain-wide settings from the environment.

    Credential fields left as None fall through to the built-in fallbacks
    of the credential resolver.
    """

    # Chain defaults
    username: str | None = field(default=None)
    password: str | None = field(default=None, repr=False)
    private_key: str | None = field(default=None)
    port: int | None = field(default=None)
    ready_timeout_ms: int | None = field(default=None)

    # Host keys
    known_hosts: str | None = field(default=None)
    strict_host_key_checking: bool = field(default=True)

    # Logging
    log_level: str = field(default="INFO")
    log_colors: bool = field(default=True)

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        Returns:
            Settings instance with values from environment
        """
        return cls(
            username=os.getenv("ORCHESTRA_USERNAME") or None,
            password=os.getenv("ORCHESTRA_PASSWORD") or None,
            private_key=os.getenv("ORCHESTRA_PRIVATE_KEY") or None,
            port=cls._get_int("ORCHESTRA_PORT"),
            ready_timeout_ms=cls._get_int("ORCHESTRA_READY_TIMEOUT_MS"),
            known_hosts=os.getenv("ORCHESTRA_KNOWN_HOSTS") or None,
            strict_host_key_checking=cls._get_bool("ORCHESTRA_STRICT_HOST_KEY_CHECKING", True),
            log_level=os.getenv("ORCHESTRA_LOG_LEVEL", "INFO").upper(),
            log_colors=cls._get_bool("ORCHESTRA_LOG_COLORS", True),
        )

    @staticmethod
    def _get_int(key: str, default: int | None = None) -> int | None:
        """Get integer from environment.

        Args:
            key: Environment variable key
            default: Value when unset or invalid

        Returns:
            Integer value from environment or default
        """
        value = os.getenv(key)
        if value is None or not value.strip():
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid int for %s: %s, using default %s", key, value, default)
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        """Get boolean from environment.

        Args:
            key: Environment variable key
            default: Default value if not set

        Returns:
            Boolean value from environment or default
        """
        value = os.getenv(key)
        if value is None:
            return default
        return value.lower() in ("1", "true", "yes", "on")

    def chain_defaults(self) -> ChainDefaults:
        """Build chain defaults from these settings."""
        private_key = os.path.expanduser(self.private_key) if self.private_key else None
        return ChainDefaults(
            port=self.port,
            username=self.username,
            password=self.password,
            private_key=private_key,
            ready_timeout_ms=self.ready_timeout_ms,
        )

    def host_key_verifier(self) -> HostKeyVerifier:
        """Build the host key verifier from these settings.

        Raises:
            FileNotFoundError: If strict checking and known_hosts is missing
        """
        return HostKeyVerifier(
            known_hosts_path=self.known_hosts,
            strict_checking=self.strict_host_key_checking,
        )

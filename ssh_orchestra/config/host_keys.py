"""SSH host key verification.

Resolves which known_hosts file every hop connection is checked against.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class HostKeyVerifier:
    """Known_hosts configuration shared by all hops of a chain."""

    def __init__(
        self,
        known_hosts_path: str | None = None,
        strict_checking: bool = True,
    ):
        """Initialize host key verifier.

        Args:
            known_hosts_path: Path to known_hosts file, 'none' to disable,
                or None for ~/.ssh/known_hosts
            strict_checking: Reject hosts whose key cannot be verified

        Raises:
            FileNotFoundError: If strict mode and file missing
        """
        self.strict_checking = strict_checking
        self._known_hosts = self._resolve_known_hosts(known_hosts_path)

    def _resolve_known_hosts(self, value: str | None) -> str | None:
        if value and value.lower() == "none":
            logger.critical(
                "SSH HOST KEY VERIFICATION DISABLED for all hops. "
                "Every forwarded connection is vulnerable to MITM attacks."
            )
            return None

        if value:
            path = Path(os.path.expanduser(value))
            if not path.exists():
                if self.strict_checking:
                    raise FileNotFoundError(
                        f"SSH host key verification required but specified "
                        f"known_hosts file not found: {path}\n\n"
                        f"To fix this:\n"
                        f"1. Add host keys for every hop: ssh-keyscan <host> >> {path}\n"
                        f"2. Or use the default location: unset ORCHESTRA_KNOWN_HOSTS\n"
                        f"3. Or disable verification (NOT RECOMMENDED): "
                        f"ORCHESTRA_KNOWN_HOSTS=none"
                    )
                logger.warning(
                    "known_hosts not found at %s, verification disabled. "
                    "This is insecure!",
                    path,
                )
                return None
            return str(path)

        default = Path.home() / ".ssh" / "known_hosts"
        if not default.exists():
            if self.strict_checking:
                raise FileNotFoundError(
                    f"SSH host key verification required but "
                    f"known_hosts not found at {default}.\n\n"
                    f"To fix this:\n"
                    f"1. Add host keys for every hop: ssh-keyscan <host> >> {default}\n"
                    f"2. Or disable verification (NOT RECOMMENDED): "
                    f"export ORCHESTRA_KNOWN_HOSTS=none"
                )
            logger.warning(
                "known_hosts not found at %s, verification disabled. "
                "This is insecure!",
                default,
            )
            return None

        return str(default)

    def get_known_hosts_path(self) -> str | None:
        """Get path to known_hosts file.

        Returns:
            Path string or None if verification disabled
        """
        return self._known_hosts

    def is_enabled(self) -> bool:
        """Check if host key verification is enabled."""
        return self._known_hosts is not None

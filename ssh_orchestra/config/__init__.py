"""Configuration module for SSH Orchestra.

- Settings: ORCHESTRA_* environment variables (chain defaults, logging)
- HostKeyVerifier: known_hosts policy shared by all hops
"""

from ssh_orchestra.config.host_keys import HostKeyVerifier
from ssh_orchestra.config.settings import Settings

__all__ = ["HostKeyVerifier", "Settings"]

"""Utilities for SSH Orchestra."""

from ssh_orchestra.utils.command import KubectlCurlBuilder
from ssh_orchestra.utils.console import ColorfulFormatter, configure_logging
from ssh_orchestra.utils.keys import generate_key_pair, setup_ssh_key, upload_public_key
from ssh_orchestra.utils.loggers import ConsoleLogger, NoOpLogger, StdlibLogger
from ssh_orchestra.utils.shell import double_quote, quote_arg

__all__ = [
    "ColorfulFormatter",
    "configure_logging",
    "ConsoleLogger",
    "double_quote",
    "generate_key_pair",
    "KubectlCurlBuilder",
    "NoOpLogger",
    "quote_arg",
    "setup_ssh_key",
    "StdlibLogger",
    "upload_public_key",
]

"""Colorful console logging for the ssh_orchestra package."""

import logging
import re
import sys
from datetime import datetime, tzinfo

from ssh_orchestra.config.settings import Settings

# ANSI color codes
COLORS = {
    "reset": "\033[0m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "bright_black": "\033[90m",
    "bright_red": "\033[91m",
    "bright_green": "\033[92m",
    "bright_yellow": "\033[93m",
    "bright_blue": "\033[94m",
    "bright_magenta": "\033[95m",
    "bright_cyan": "\033[96m",
    "bg_red": "\033[41m",
}

LEVEL_COLORS = {
    "DEBUG": COLORS["bright_black"],
    "INFO": COLORS["bright_green"],
    "WARNING": COLORS["bright_yellow"],
    "ERROR": COLORS["bright_red"],
    "CRITICAL": COLORS["bg_red"] + COLORS["white"] + COLORS["bold"],
}

# Component colors for logger names
COMPONENT_COLORS = {
    "ssh_orchestra.services.orchestrator": COLORS["bright_cyan"],
    "ssh_orchestra.services.transport": COLORS["bright_magenta"],
    "ssh_orchestra.services.sftp": COLORS["bright_blue"],
    "ssh_orchestra.config": COLORS["green"],
    "default": COLORS["white"],
}

# user@host:port
_SSH_ADDRESS = re.compile(r"(\w+@[\w\.\-]+:\d+)")
# host:port in parentheses, as the orchestrator logs hop addresses
_HOP_ADDRESS = re.compile(r"\(([\w\.\-]+:\d+)\)")


class ColorfulFormatter(logging.Formatter):
    """Colorful log formatter with component highlighting."""

    def __init__(self, use_colors: bool = True, tz: tzinfo | None = None) -> None:
        """Initialize the formatter.

        Args:
            use_colors: Whether to use ANSI colors.
            tz: Timezone for timestamps (local time when None).
        """
        super().__init__()
        self.use_colors = use_colors
        self.tz = tz

    def _colorize(self, text: str, color: str) -> str:
        if not self.use_colors:
            return text
        return f"{color}{text}{COLORS['reset']}"

    def _get_component_color(self, name: str) -> str:
        for prefix, color in COMPONENT_COLORS.items():
            if prefix != "default" and name.startswith(prefix):
                return color
        return COMPONENT_COLORS["default"]

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        dt = datetime.fromtimestamp(record.created, tz=self.tz)
        return f"{dt.strftime('%H:%M:%S')}.{int(record.msecs):03d} {dt.strftime('%m/%d')}"

    def _format_level(self, record: logging.LogRecord) -> str:
        level = record.levelname
        color = LEVEL_COLORS.get(level, COLORS["white"])
        return self._colorize(f"{level:<8}", color)

    def _format_component(self, record: logging.LogRecord) -> str:
        name = record.name
        if name.startswith("ssh_orchestra."):
            name = name[len("ssh_orchestra."):]
        color = self._get_component_color(record.name)
        return self._colorize(f"{name:<22}", color)

    def _highlight_message(self, message: str) -> str:
        if not self.use_colors:
            return message
        if "@" in message:
            message = _SSH_ADDRESS.sub(
                f"{COLORS['bright_magenta']}\\1{COLORS['reset']}", message
            )
        if "(" in message:
            message = _HOP_ADDRESS.sub(
                f"({COLORS['bright_blue']}\\1{COLORS['reset']})", message
            )
        return message

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as `time | level | component | message`."""
        timestamp = self._colorize(self._format_timestamp(record), COLORS["dim"])
        level = self._format_level(record)
        component = self._format_component(record)
        sep = self._colorize("|", COLORS["dim"])
        message = self._highlight_message(record.getMessage())

        line = f"{timestamp} {sep} {level} {sep} {component} {sep} {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str | None = None,
    use_colors: bool | None = None,
    settings: Settings | None = None,
) -> logging.Logger:
    """Attach a colorful stderr handler to the ssh_orchestra logger.

    Args:
        level: Log level name (defaults to settings.log_level)
        use_colors: Force colors on/off (defaults to settings.log_colors,
            and off when stderr is not a TTY)
        settings: Source of the defaults (Settings.from_env() when None)

    Returns:
        The configured package logger
    """
    if level is None or use_colors is None:
        settings = settings or Settings.from_env()
        if level is None:
            level = settings.log_level
        if use_colors is None:
            use_colors = settings.log_colors and sys.stderr.isatty()

    package_logger = logging.getLogger("ssh_orchestra")
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Only add handler if not already configured
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColorfulFormatter(use_colors=use_colors))
        package_logger.addHandler(handler)
        package_logger.propagate = False

    logging.getLogger("asyncssh").setLevel(logging.WARNING)
    logging.getLogger("asyncssh.sftp").setLevel(logging.WARNING)

    return package_logger

"""Logger collaborators for the orchestrator.

StdlibLogger is the default and forwards into the ``ssh_orchestra`` stdlib
logger, so output follows whatever logging configuration the application
installs. ConsoleLogger prints symbol-prefixed lines directly and
NoOpLogger discards everything.
"""

import logging
import sys
from typing import TextIO

SYMBOLS = {
    "info": "ℹ",
    "error": "✗",
    "warning": "⚠",
    "success": "✓",
    "task": "→",
}


class StdlibLogger:
    """Forward the five orchestrator levels to a stdlib logger.

    success and task have no stdlib equivalent and are logged at INFO with
    their symbol prefix.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("ssh_orchestra")

    def info(self, message: str) -> None:
        self._logger.info("%s", message)

    def error(self, message: str) -> None:
        self._logger.error("%s", message)

    def warning(self, message: str) -> None:
        self._logger.warning("%s", message)

    def success(self, message: str) -> None:
        self._logger.info("%s %s", SYMBOLS["success"], message)

    def task(self, message: str) -> None:
        self._logger.info("%s %s", SYMBOLS["task"], message)


class ConsoleLogger:
    """Print symbol-prefixed messages; errors and warnings go to stderr."""

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self._stdout = stdout
        self._stderr = stderr

    def _write(self, level: str, message: str, to_stderr: bool = False) -> None:
        if to_stderr:
            stream = self._stderr or sys.stderr
        else:
            stream = self._stdout or sys.stdout
        print(f"{SYMBOLS[level]} {message}", file=stream)

    def info(self, message: str) -> None:
        self._write("info", message)

    def error(self, message: str) -> None:
        self._write("error", message, to_stderr=True)

    def warning(self, message: str) -> None:
        self._write("warning", message, to_stderr=True)

    def success(self, message: str) -> None:
        self._write("success", message)

    def task(self, message: str) -> None:
        self._write("task", message)


class NoOpLogger:
    """Discard all messages."""

    def info(self, message: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def warning(self, message: str) -> None:
        pass

    def success(self, message: str) -> None:
        pass

    def task(self, message: str) -> None:
        pass

"""Shell command safety utilities."""

import shlex


def quote_arg(arg: str) -> str:
    """Safely quote a shell argument.

    Args:
        arg: Argument to quote

    Returns:
        Shell-safe quoted argument
    """
    return shlex.quote(arg)


def double_quote(arg: str) -> str:
    """Wrap an argument in double quotes, escaping what the shell would expand.

    Keeps headers and URLs readable in the final command line while still
    passing them as a single word.

    Args:
        arg: Argument to quote

    Returns:
        Double-quoted argument
    """
    for ch in ("\\", '"', "$", "`"):
        arg = arg.replace(ch, f"\\{ch}")
    return f'"{arg}"'

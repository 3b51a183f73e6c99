"""SSH key provisioning helpers.

Generate a local RSA key pair when none exists, and install its public half
into a remote user's authorized_keys through a FileTransfer.
"""

import os
import posixpath
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import asyncssh

from ssh_orchestra.utils.loggers import NoOpLogger

if TYPE_CHECKING:
    from ssh_orchestra.protocols import FileOperations, OrchestraLogger

DEFAULT_KEY_TYPE = "ssh-rsa"
DEFAULT_KEY_SIZE = 4096


def default_key_path() -> Path:
    return Path.home() / ".ssh" / "id_rsa"


def generate_key_pair(
    key_path: str | os.PathLike[str] | None = None,
    logger: "OrchestraLogger | None" = None,
) -> str | None:
    """Return the private key at `key_path`, generating a pair if missing.

    The public key is written next to it with a ``.pub`` suffix.

    Args:
        key_path: Private key file (default: ~/.ssh/id_rsa)
        logger: Progress reporter

    Returns:
        Private key text, or None if generation failed
    """
    logger = logger or NoOpLogger()
    private_path = Path(key_path).expanduser() if key_path else default_key_path()
    ssh_dir = private_path.parent

    if not ssh_dir.exists():
        logger.warning(".ssh folder does not exist")
        logger.task(f"Creating {ssh_dir}...")
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    try:
        private_key = private_path.read_text(encoding="utf-8")
    except OSError:
        logger.warning("Private key not found.")
        logger.task("Generating new SSH key pair...")
    else:
        logger.success("Found private key locally.")
        return private_key

    try:
        key = asyncssh.generate_private_key(DEFAULT_KEY_TYPE, key_size=DEFAULT_KEY_SIZE)
        key.write_private_key(str(private_path))
        key.write_public_key(f"{private_path}.pub")
        os.chmod(private_path, 0o600)
    except (asyncssh.Error, OSError, ValueError) as e:
        logger.error(f"Failed to generate SSH key pair: {e}")
        return None

    logger.success("SSH key pair generated successfully.")
    return private_path.read_text(encoding="utf-8")


async def upload_public_key(
    files: "FileOperations",
    username: str,
    public_key_path: str | os.PathLike[str] | None = None,
    logger: "OrchestraLogger | None" = None,
) -> bool:
    """Add a local public key to /home/<username>/.ssh/authorized_keys.

    An existing authorized_keys is appended to unless it already holds the
    key; otherwise the public key file is uploaded as authorized_keys.

    Args:
        files: File operations on the target endpoint
        username: Remote account to authorize
        public_key_path: Local public key (default: ~/.ssh/id_rsa.pub)
        logger: Progress reporter

    Returns:
        True if the key is installed (or already was)
    """
    logger = logger or NoOpLogger()
    if public_key_path:
        pub_path = Path(public_key_path).expanduser()
    else:
        pub_path = default_key_path().with_suffix(".pub")

    try:
        public_key = pub_path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to read public key from {pub_path}: {e}")
        return False

    remote_ssh_dir = f"/home/{username}/.ssh"
    authorized_keys = posixpath.join(remote_ssh_dir, "authorized_keys")

    if await files.exists(authorized_keys):
        logger.success(f"Found authorized_keys for user {username}")

        existing = await _read_remote_text(files, authorized_keys)
        if existing is not None:
            if public_key.strip() in existing:
                logger.info("Public key already present in authorized_keys")
                return True

            logger.task(f"Public key not found in authorized_keys, appending for user {username}")
            await files.append_text(authorized_keys, f"\n{public_key}")
            logger.success("Public key appended to authorized_keys")
            return True

    logger.info(f"authorized_keys file does not exist for user {username}")

    if not await files.exists(remote_ssh_dir):
        logger.warning(f"Cannot find remote path {remote_ssh_dir}")
        logger.task(f"Creating .ssh folder for user {username}")
        if not await files.mkdir(remote_ssh_dir):
            logger.error(f"Failed to create {remote_ssh_dir}")
            return False
        logger.success(f"Successfully created {remote_ssh_dir}")

    logger.task(f"Uploading public key to authorized_keys for user {username}")
    if not await files.upload(str(pub_path), authorized_keys):
        logger.error("Failed to upload public key")
        return False

    logger.success("Public key written to new authorized_keys file.")
    return True


async def _read_remote_text(files: "FileOperations", remote_path: str) -> str | None:
    fd, local_path = tempfile.mkstemp(prefix="authorized_keys_")
    os.close(fd)
    try:
        if not await files.download(remote_path, local_path):
            return None
        return Path(local_path).read_text(encoding="utf-8")
    finally:
        os.unlink(local_path)


async def setup_ssh_key(
    files: "FileOperations",
    username: str,
    key_path: str | os.PathLike[str] | None = None,
    logger: "OrchestraLogger | None" = None,
) -> bool:
    """Generate a key pair if needed, then authorize it for `username`."""
    generate_key_pair(key_path, logger)
    public_key_path = f"{Path(key_path).expanduser()}.pub" if key_path else None
    return await upload_public_key(files, username, public_key_path, logger)

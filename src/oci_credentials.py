"""
oci_credentials.py
Stages OCI API credentials passed through the environment.

The deployment hands the shield its OCI config file and private key as
base64 blobs (OCI_CONFIG_FILE_CONTENT, OCI_PRIVATE_KEY_FILE_CONTENT). They are
written to ~/.oci so oci.config.from_file() finds them, with key_file
rewritten to the staged key.
"""

import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

CONFIG_ENV = "OCI_CONFIG_FILE_CONTENT"
PRIVATE_KEY_ENV = "OCI_PRIVATE_KEY_FILE_CONTENT"


class CredentialsError(Exception):
    """Raised when credentials cannot be staged."""


def _decode(environ: Mapping[str, str], name: str) -> bytes:
    try:
        return base64.b64decode(environ[name], validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialsError(f"Failed to decode {name}: {e}") from e


def rewrite_key_file(config_text: str, key_path: str) -> str:
    """Point every key_file entry at key_path, appending one if none exists."""
    key_file_line = f"key_file = {key_path}"
    lines = []
    found = False
    for line in config_text.splitlines():
        if line.startswith("key_file"):
            lines.append(key_file_line)
            found = True
        else:
            lines.append(line)
    if not found:
        lines.append(key_file_line)
    return "\n".join(lines)


def setup_oci_credentials(environ: Optional[Mapping[str, str]] = None,
                          home_dir: Optional[Path] = None) -> Tuple[Path, Path]:
    """
    Write the OCI config and private key under home_dir/.oci.

    Returns:
        (config_path, private_key_path)

    Raises:
        CredentialsError: content missing, not base64, or not writable
    """
    if environ is None:
        environ = os.environ
    if home_dir is None:
        home_dir = Path.home()

    logger.info("Setting up OCI credentials...")
    if not environ.get(CONFIG_ENV) or not environ.get(PRIVATE_KEY_ENV):
        raise CredentialsError(
            "OCI configuration or private key file content is not set in environment variables"
        )

    config_content = _decode(environ, CONFIG_ENV)
    private_key = _decode(environ, PRIVATE_KEY_ENV)

    oci_dir = Path(home_dir) / ".oci"
    config_path = oci_dir / "config"
    key_path = oci_dir / "oci_api_key.pem"

    final_config = rewrite_key_file(
        config_content.decode("utf-8", errors="replace"), str(key_path)
    )

    try:
        oci_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        config_path.write_text(final_config)
        config_path.chmod(0o644)
        key_path.write_bytes(private_key)
        key_path.chmod(0o600)
    except OSError as e:
        raise CredentialsError(f"Failed to write OCI credentials: {e}") from e

    logger.info("OCI credentials setup completed successfully.")
    return config_path, key_path

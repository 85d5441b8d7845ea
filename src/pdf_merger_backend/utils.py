"""
Utility functions for file system operations, filename sanitization and
host address discovery.
"""

from __future__ import annotations

import logging
import re
import socket
from pathlib import Path

logger = logging.getLogger(__name__)

# Pattern to match characters that are not safe for filesystem paths
# Allows: alphanumeric characters, dots, underscores, and hyphens
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")


def sanitize_filename(filename: str, fallback: str = "document.pdf") -> str:
    """
    Generate a filesystem-safe name from an uploaded filename.

    Directory components are discarded and unsafe characters collapse to
    hyphens.

    Example:
        >>> sanitize_filename("../My Report (final).pdf")
        "My-Report-final-.pdf"
        >>> sanitize_filename("@#$")
        "document.pdf"
    """
    name = Path(filename.replace("\\", "/")).name
    cleaned = SANITIZE_PATTERN.sub("-", name.strip())
    cleaned = cleaned.strip("-_.")
    return cleaned or fallback


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def detect_server_address() -> str:
    """
    Best-effort discovery of this host's LAN IPv4 address.

    Opening a UDP socket sends no packets; it only makes the OS pick the
    outbound interface. Falls back to "localhost".
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(("10.255.255.255", 1))
            address = probe.getsockname()[0]
    except OSError as exc:
        logger.warning("Could not determine server address: %s", exc)
        return "localhost"
    if not address or address.startswith("127.") or address == "0.0.0.0":
        return "localhost"
    return address


def bytes_to_megabytes(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}"

"""
Platform detection: maps the running host to a supported platform tag.

Tags: ``macos``, ``ubuntu``, ``al2`` (Amazon Linux 2) and ``unknown``.
On Linux the distribution is read from ``ID``/``ID_LIKE`` in the
environment first, then from ``/etc/os-release``.
"""

from __future__ import annotations

import logging
import os
import platform as _platform
from pathlib import Path
from typing import Literal, get_args

logger = logging.getLogger(__name__)

Platform = Literal["macos", "ubuntu", "al2", "unknown"]

PLATFORMS: tuple[str, ...] = get_args(Platform)

OS_RELEASE = Path("/etc/os-release")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines from an os-release document."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        fields[key.strip()] = value.strip().strip('"').strip("'")
    return fields


def _linux_distribution(os_release: Path) -> Platform:
    distro_id = os.environ.get("ID", "")
    id_like = os.environ.get("ID_LIKE", "")

    if not distro_id and not id_like:
        try:
            fields = parse_os_release(os_release.read_text(encoding="utf-8"))
        except OSError as e:
            logger.debug("Cannot read %s: %s", os_release, e)
            fields = {}
        distro_id = fields.get("ID", "")
        id_like = fields.get("ID_LIKE", "")

    markers = f"{distro_id} {id_like}".lower()
    if "ubuntu" in markers:
        return "ubuntu"
    if "amzn" in markers:
        return "al2"
    return "unknown"


def detect_platform(
    system: str | None = None,
    os_release: Path = OS_RELEASE,
) -> Platform:
    """Detect the current platform.

    Args:
        system: Kernel name override (default: ``platform.system()``).
        os_release: Path of the os-release file consulted on Linux.

    Returns:
        One of ``macos``, ``ubuntu``, ``al2`` or ``unknown``.
    """
    system = system or _platform.system()

    if system == "Darwin":
        return "macos"
    if system == "Linux":
        detected = _linux_distribution(os_release)
        logger.debug("Linux distribution detected as %s", detected)
        return detected
    return "unknown"


def normalize_platform(value: str | None) -> Platform | None:
    """Validate a user-supplied platform override."""
    if not value:
        return None
    value = value.strip().lower()
    if value not in PLATFORMS:
        raise ValueError(
            f"Unknown platform '{value}' (expected one of: {', '.join(PLATFORMS)})"
        )
    return value  # type: ignore[return-value]

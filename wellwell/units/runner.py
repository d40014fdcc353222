"""
Subprocess runner: the single place units call ``subprocess.run``.

Units receive a runner so tests can substitute a fake. Every call
returns a result dict rather than raising:

    {"ok": True, "stdout": "...", "elapsed_ms": N}
    {"ok": False, "error": "...", "stdout": "...", "returncode": N}
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from typing import Any

logger = logging.getLogger(__name__)

Runner = Callable[..., dict[str, Any]]
Which = Callable[[str], str | None]

DEFAULT_TIMEOUT = 900


def run_command(
    cmd: Sequence[str],
    *,
    needs_sudo: bool = False,
    timeout: int = DEFAULT_TIMEOUT,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command and capture its output.

    Args:
        cmd: Command list for ``subprocess.run()``.
        needs_sudo: Prefix with non-interactive ``sudo`` unless already root.
        timeout: Seconds before the command is abandoned.
        cwd: Working directory for the command.
    """
    cmd = list(cmd)
    if needs_sudo and os.geteuid() != 0:
        cmd = ["sudo", "-n"] + cmd

    logger.debug("Running: %s", " ".join(cmd))
    start = time.monotonic()
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except FileNotFoundError:
        return {"ok": False, "error": f"Command not found: {cmd[0]}"}
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %ds: %s", timeout, " ".join(cmd))
        return {"ok": False, "error": f"Timed out after {timeout}s"}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = proc.stdout.strip()

    if proc.returncode != 0:
        stderr = proc.stderr.strip()
        logger.debug("Command failed (rc=%d): %s", proc.returncode, stderr[:300])
        return {
            "ok": False,
            "error": stderr[-500:] or f"Exit code {proc.returncode}",
            "stdout": stdout,
            "returncode": proc.returncode,
            "elapsed_ms": elapsed_ms,
        }

    return {"ok": True, "stdout": stdout, "elapsed_ms": elapsed_ms}


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None

"""
Best-effort release of a TCP port before the server starts.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess

logger = logging.getLogger(__name__)


def find_listening_pids(port: int) -> list[int]:
    """Return pids listening on ``port``, or an empty list if unknown."""
    try:
        result = subprocess.run(
            ["lsof", "-t", f"-iTCP:{port}", "-sTCP:LISTEN"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("lsof unavailable: %s", exc)
        return []
    pids = []
    for line in result.stdout.split():
        if line.isdigit() and int(line) != os.getpid():
            pids.append(int(line))
    return pids


def free_port(port: int) -> list[int]:
    """
    Send SIGTERM to every process listening on ``port``.

    Failures are ignored. Returns the pids that were signalled.
    """
    killed = []
    for pid in find_listening_pids(port):
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as exc:
            logger.debug("Could not signal pid %d: %s", pid, exc)
            continue
        killed.append(pid)
    return killed

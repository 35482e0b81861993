"""
Free the configured API port before starting the server.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from formsite.config import get_settings
from formsite.ports import free_port

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Free the API port")
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Port to free (defaults to PORT from the environment)",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    # Best-effort: never block startup.
    try:
        port = args.port if args.port is not None else get_settings().port
        killed = free_port(port)
    except Exception as exc:
        logger.debug("Ignoring failure while freeing port: %s", exc)
        return 0
    if killed:
        logger.info("Stopped pids %s", ", ".join(str(pid) for pid in killed))
    logger.info("Ensured port %d is free.", port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Command that runs the chain manager."""

from __future__ import annotations

import argparse
import logging
import os
import re
from typing import Mapping, Optional, Sequence

from .manager import Manager
from .transport import serve_manager

__all__ = ["expected_count_from_env", "main", "DEFAULT_LISTEN"]

log = logging.getLogger(__name__)

DEFAULT_LISTEN = "[::]:9005"
_ENV_NAME = "EXPECTED_NODE_COUNT"


def expected_count_from_env(environ: Optional[Mapping[str, str]] = None) -> int:
    """Read the number of nodes the chain waits for; raise ValueError if unusable."""
    raw = (os.environ if environ is None else environ).get(_ENV_NAME, "")
    if not raw:
        raise ValueError(f"{_ENV_NAME} env not set")
    if not re.fullmatch(r"[+-]?[0-9]+", raw) or int(raw) <= 0:
        raise ValueError(f"Invalid {_ENV_NAME}: {raw}")
    return int(raw)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the manager until interrupted; return the exit status."""
    parser = argparse.ArgumentParser(prog="craq-manager", description="Run the CRAQ chain manager.")
    parser.add_argument("--listen", default=DEFAULT_LISTEN, help="address to serve on")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(filename)s:%(lineno)d %(message)s")

    try:
        expected = expected_count_from_env()
        server, _ = serve_manager(Manager(expected), args.listen)
    except (ValueError, OSError) as exc:
        log.error("%s", exc)
        return 1

    log.info("Manager is running on %s | Expecting %d nodes", args.listen, expected)
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        server.stop(None)
    return 0
"""Yield vault client: share accounting, safe redemption and yield metrics."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the vaults-client script."""
    import sys

    from vaults_client.cli import main

    raise SystemExit(main(sys.argv[1:]))

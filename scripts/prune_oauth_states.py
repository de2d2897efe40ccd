"""Delete pending OAuth state records whose TTL has elapsed.

Expired states are also removed lazily when a callback presents them; this
sweep clears the ones whose callback never arrived. Run it periodically::

    python -m scripts.prune_oauth_states --env-file /opt/oauth/.env
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from app.core.config import _load_env_file, get_settings
from app.core.errors import StorageWriteError
from app.core.logging import configure_logging
from app.dependencies.clients import get_credential_store

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 5

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Remove expired OAuth state records.")
    parser.add_argument(
        "--env-file",
        default=".env",
        type=Path,
        help="Path to the environment file (default: .env in the repo root).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _load_env_file(str(args.env_file))
    configure_logging(get_settings().log_level)

    try:
        removed = get_credential_store().cleanup_expired_states()
    except StorageWriteError as exc:
        logger.error("Pruning stopped early: %s", exc)
        return EXIT_RUNTIME_ERROR

    print(f"Removed {removed} expired OAuth state record(s).")
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())

"""Check that the Google OAuth client registration can be loaded.

Loads ``AppSettings`` from the given ``.env`` file, builds the client
configuration the service uses for provider calls and prints what it
resolved. Run it before deploying, or from the service's pre-start hook::

    python -m scripts.check_oauth_config --env-file /opt/oauth/.env
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from urllib.parse import urlparse

from pydantic import ValidationError

from app.clients.google_auth import OAuthClientConfig
from app.core.config import AppSettings, _load_env_file
from app.core.errors import ConfigurationError

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_RUNTIME_ERROR = 5


def _load_client_config(env_file: Path) -> tuple[AppSettings, OAuthClientConfig]:
    _load_env_file(str(env_file))
    settings = AppSettings(_env_file=env_file)
    config = OAuthClientConfig.from_settings(settings.google, settings.oauth)

    redirect = urlparse(config.redirect_uri)
    if redirect.scheme not in {"http", "https"} or not redirect.netloc:
        raise ConfigurationError(
            f"oauth_redirect_uri must be an absolute http(s) URL, got {config.redirect_uri!r}."
        )
    return settings, config


def _print_summary(settings: AppSettings, config: OAuthClientConfig) -> None:
    print("OAuth client registration OK.")
    print(f"  client id:     {config.client_id}")
    print(f"  redirect uri:  {config.redirect_uri}")
    print(f"  scopes:        {' '.join(config.scopes)}")
    print(f"  token buffer:  {settings.oauth.token_buffer_seconds}s")
    print(f"  state ttl:     {settings.oauth.state_ttl_seconds}s")
    print(f"  store backend: {settings.storage.backend}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate the Google OAuth client registration."
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        type=Path,
        help="Path to the environment file (default: .env in the repo root).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    env_file: Path = args.env_file

    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings, config = _load_client_config(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except ConfigurationError as exc:
        print(f"OAuth client registration is incomplete. {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    _print_summary(settings, config)
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())

"""
Connection settings for the analytics API.

Usage:
    from src.config.settings import load_settings

    # Will raise if the base URL or credentials are missing
    settings = load_settings()

CLI check:
    python -m src.config.settings --check
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Find .env file - walk up from this file to repo root
_current = Path(__file__).resolve()
_repo_root = _current.parent.parent.parent  # src/config/settings.py -> repo root
_env_path = _repo_root / ".env"

if _env_path.exists():
    load_dotenv(_env_path)
else:
    # Also try current working directory
    load_dotenv()

DEFAULT_CONFIG_DIR = _repo_root / "config"
DEFAULT_TIMEOUT_SECONDS = 30.0


class MissingSettingError(Exception):
    """Raised when a required setting is not configured."""
    pass


class MissingCredentialsError(MissingSettingError):
    """Raised when neither a token nor a username/password pair is configured."""
    pass


@dataclass(frozen=True)
class Settings:
    base_url: str
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    config_dir: Path = DEFAULT_CONFIG_DIR

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        if self.token or not (self.username and self.password):
            return None
        return (self.username, self.password)


def _env(name: str) -> str:
    return os.environ.get(name, "").strip()


def get_config_dir() -> Path:
    """Directory holding profile.yaml, charts.yaml and the policy catalog."""
    config_dir_raw = _env("PROFILE_CONFIG_DIR")
    return Path(config_dir_raw) if config_dir_raw else DEFAULT_CONFIG_DIR


def get_base_url() -> str:
    """
    Get the analytics API base URL from environment.

    Returns:
        str: The base URL without a trailing slash

    Raises:
        MissingSettingError: If PROFILE_API_BASE_URL is not set
    """
    url = _env("PROFILE_API_BASE_URL")
    if not url:
        raise MissingSettingError(
            "PROFILE_API_BASE_URL not found. "
            "Copy .env.example to .env and set the server URL."
        )
    return url.rstrip("/")


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    A token takes precedence over a username/password pair.

    Raises:
        MissingSettingError: If the base URL is missing
        MissingCredentialsError: If no usable credentials are configured
    """
    base_url = get_base_url()
    token = _env("PROFILE_API_TOKEN") or None
    username = _env("PROFILE_API_USERNAME") or None
    password = _env("PROFILE_API_PASSWORD") or None

    if not token and not (username and password):
        raise MissingCredentialsError(
            "Either PROFILE_API_TOKEN or PROFILE_API_USERNAME/PROFILE_API_PASSWORD must be set."
        )

    timeout_raw = _env("PROFILE_API_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT_SECONDS
    except ValueError:
        raise MissingSettingError(f"PROFILE_API_TIMEOUT must be a number, got {timeout_raw!r}")

    config_dir = get_config_dir()

    return Settings(
        base_url=base_url,
        token=token,
        username=username,
        password=password,
        timeout=timeout,
        config_dir=config_dir,
    )


def check_settings() -> dict:
    """
    Check which settings are configured.

    Returns:
        dict: Status of each setting ("OK" or "MISSING")
    """
    status = {}

    status["PROFILE_API_BASE_URL"] = "OK" if _env("PROFILE_API_BASE_URL") else "MISSING"

    has_token = bool(_env("PROFILE_API_TOKEN"))
    has_basic = bool(_env("PROFILE_API_USERNAME") and _env("PROFILE_API_PASSWORD"))
    status["credentials"] = "OK" if (has_token or has_basic) else "MISSING"

    return status


def _cli_check():
    """CLI entry point for --check flag."""
    status = check_settings()
    all_ok = True

    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")
        if key_status == "MISSING":
            all_ok = False

    if not all_ok:
        print("\nTo configure the connection:")
        print("  1. Copy .env.example to .env")
        print("  2. Set PROFILE_API_BASE_URL and either PROFILE_API_TOKEN")
        print("     or PROFILE_API_USERNAME/PROFILE_API_PASSWORD")
        sys.exit(1)
    else:
        print("\nAll settings configured.")
        sys.exit(0)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check analytics API configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check if the connection settings are configured"
    )

    args = parser.parse_args()

    if args.check:
        _cli_check()
    else:
        parser.print_help()

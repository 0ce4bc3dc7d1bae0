"""Package version, as installed or from the source checkout."""

from __future__ import annotations

import tomllib
from functools import cache
from importlib import metadata
from pathlib import Path

DISTRIBUTION = "flow-dashboard"


@cache
def get_version() -> str:
    """Installed distribution version, else pyproject.toml's, else "unknown"."""
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with pyproject_path.open("rb") as f:
            return tomllib.load(f).get("project", {}).get("version", "unknown")
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


def user_agent() -> str:
    """User-Agent sent with every GitHub API request."""
    return f"{DISTRIBUTION}/{get_version()}"

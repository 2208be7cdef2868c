"""Version string of the installed hearcheck."""

from __future__ import annotations

import re
from importlib import metadata
from pathlib import Path

VERSION_FILE = Path(__file__).resolve().with_name("VERSION")
_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.+-]+)?$")


def read_version(path: Path = VERSION_FILE) -> str:
    """VERSION file first (source checkouts), then the installed distribution, then 0.0.0."""
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except OSError:
        raw = ""
    if not raw:
        try:
            raw = metadata.version("hearcheck")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    if not _VERSION_RE.match(raw):
        raise ValueError(f"Invalid version string {raw!r} in {path}")
    return raw


try:
    __version__ = read_version()
except ValueError:
    __version__ = "0.0.0"

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from . import __version__

DISTRIBUTION = "waitlist-admin"


def get_version() -> str:
    """Installed distribution version; the in-tree ``__version__`` for source checkouts."""
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return __version__

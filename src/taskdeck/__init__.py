"""Taskdeck: a terminal task list kept in live sync with a remote store."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("taskdeck")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = ["__version__"]

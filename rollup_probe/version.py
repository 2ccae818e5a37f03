"""
Version of the installed rollup-probe distribution.
"""
from importlib import metadata
from pathlib import Path

import tomli

DISTRIBUTION_NAME = "rollup-probe"
UNKNOWN_VERSION = "0.0.0+unknown"

_PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def read_version(pyproject: Path = _PYPROJECT) -> str:
    """
    Resolve the package version.

    Installed metadata wins; a source checkout falls back to pyproject.toml.
    """
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        pass
    try:
        with pyproject.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (OSError, KeyError, tomli.TOMLDecodeError):
        return UNKNOWN_VERSION


__version__ = read_version()

"""Version of the installed confluent-resource-operator distribution."""

__all__ = ("__version__",)

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("confluent-resource-operator")
except PackageNotFoundError:
    # Source tree that was never installed.
    __version__ = "0.0.0"

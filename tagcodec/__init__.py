"""tagcodec - Tag-based, self-describing struct serialization."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tagcodec")
except PackageNotFoundError:
    __version__ = "(local)"

from importlib.metadata import version, PackageNotFoundError
try:
    __version__ = version("postfix-exporter")
except PackageNotFoundError:
    __version__ = "unknown"

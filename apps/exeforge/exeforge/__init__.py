"""Build and cache standalone executables from npm and PyPI packages."""

__version__ = "0.1.0"

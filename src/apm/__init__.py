"""apm - a package manager for file-based artifacts kept in git repositories."""

__version__ = "0.1.0"

"""Core exception types for apm."""


class ApmError(Exception):
    """Base exception for all apm errors."""
    pass


class PackageValidationError(ApmError):
    """Raised when a package definition or its mappings are malformed."""
    pass


class ResolutionError(ApmError):
    """Raised when a version cannot be resolved to a commit."""
    pass


class TransportError(ApmError):
    """Raised when listing, cloning or checking out a repository fails."""
    pass


class LinkConflictError(ApmError):
    """Raised when a link destination exists and is not a symlink."""
    pass


class StorageError(ApmError):
    """Raised when the cache or the hidden link directory cannot be written."""
    pass

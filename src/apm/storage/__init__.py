"""Package storage: the content cache and file-set helpers."""
from apm.storage.cache import CachedPackage, ContentCache, StagingSession
from apm.storage.fileset import copy_tree, has_magic, resolve_glob

__all__ = [
    "CachedPackage",
    "ContentCache",
    "StagingSession",
    "copy_tree",
    "has_magic",
    "resolve_glob",
]

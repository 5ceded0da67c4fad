"""Git access: URL normalization, reference resolution and fetching."""
from apm.git.remote import AuthType, DownloadOptions, GitRemote, Reference, RefKind
from apm.git.urls import normalize_url, rewrite_url_from_git_config

__all__ = [
    "AuthType",
    "DownloadOptions",
    "GitRemote",
    "Reference",
    "RefKind",
    "normalize_url",
    "rewrite_url_from_git_config",
]

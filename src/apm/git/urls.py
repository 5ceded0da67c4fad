"""Repository URL normalization and git "insteadOf" rewriting."""
import logging
import re
import subprocess
from typing import List, Tuple
from urllib.parse import urlparse

from apm.core.errors import PackageValidationError

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "https://"

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
# user@host:path, the scp-like syntax accepted by git for ssh
_SCP_RE = re.compile(r"^[\w.-]+@[\w.-]+:(?!//)")


def is_scp_like(url: str) -> bool:
    return bool(_SCP_RE.match(url))


def is_ssh_url(url: str) -> bool:
    return url.startswith("ssh://") or is_scp_like(url)


def _insteadof_rules() -> List[Tuple[str, str]]:
    """Read (prefix, replacement) pairs from the global git config."""
    try:
        result = subprocess.run(
            ["git", "config", "--global", "--get-regexp", r"^url\..*\.insteadof$"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Cannot read git config: {e}")
        return []

    # exit code 1 means no matching keys
    if result.returncode != 0:
        logger.debug(f"No insteadOf rules in git config (exit {result.returncode})")
        return []

    rules = []
    for line in result.stdout.splitlines():
        key, _, prefix = line.partition(" ")
        if not prefix:
            continue
        # key looks like url.<base>.insteadof
        base = key[len("url."):-len(".insteadof")]
        rules.append((prefix, base))
    return rules


def rewrite_url_from_git_config(url: str) -> str:
    """Rewrite `url` with the user's global `url.<base>.insteadOf` rules.

    Like git, the longest matching prefix wins and only the prefix is replaced.
    """
    best = None
    for prefix, base in _insteadof_rules():
        if url.startswith(prefix) and (best is None or len(prefix) > len(best[0])):
            best = (prefix, base)

    if best is None:
        return url

    prefix, base = best
    rewritten = base + url[len(prefix):]
    logger.debug(f"Rewrote url {url} to {rewritten}")
    return rewritten


def normalize_url(location: str, use_git_config: bool = False) -> str:
    """Normalize a user-supplied repository location.

    Args:
        location: URL, host/path without scheme, or scp-like ssh location
        use_git_config: Apply global git insteadOf rules after normalizing

    Returns:
        The normalized URL ("https://" is prepended when no scheme is given)

    Raises:
        PackageValidationError: If the result is not a usable URL
    """
    url = location.strip()
    if not url:
        raise PackageValidationError("invalid package url: url is empty")

    if not _SCHEME_RE.match(url) and not is_scp_like(url):
        url = DEFAULT_SCHEME + url

    if not is_scp_like(url):
        parsed = urlparse(url)
        if parsed.scheme != "file" and not parsed.netloc:
            raise PackageValidationError(f"invalid package url: {location}")
        if parsed.scheme == "file" and not parsed.path:
            raise PackageValidationError(f"invalid package url: {location}")

    if use_git_config:
        url = rewrite_url_from_git_config(url)

    return url

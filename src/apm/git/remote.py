"""Remote git repositories: list references, resolve versions, clone and switch.

Every operation maps to one or two `git` invocations through `subprocess`.
Failures of the git process itself (network, auth, missing repository) raise
`TransportError`; versions that do not name anything raise `ResolutionError`.
Nothing here retries or times out on its own beyond the process timeouts.
"""
import logging
import os
import subprocess
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse, urlunparse

from pydantic import BaseModel, ConfigDict, Field

from apm.core.errors import ResolutionError, TransportError
from apm.git.urls import is_ssh_url

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"

_HEADS = "refs/heads/"
_TAGS = "refs/tags/"
_PEELED = "^{}"


class AuthType(str, Enum):
    NONE = "none"
    SSH_AGENT = "ssh-agent"
    BASIC = "basic"


class DownloadOptions(BaseModel):
    """Per-operation transport settings; never part of a package's identity."""

    auth: AuthType = Field(default=AuthType.NONE)
    username: Optional[str] = Field(default=None, description="HTTP basic auth user")
    password: Optional[str] = Field(default=None, description="HTTP basic auth password", repr=False)
    only_switch: bool = Field(
        default=False,
        description="Check out the version in an existing clone instead of cloning",
    )


class RefKind(str, Enum):
    TAG = "tag"
    BRANCH = "branch"
    HASH = "hash"


class Reference(BaseModel):
    """A resolved point in a repository's history."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RefKind
    commit: Optional[str] = Field(default=None, description="Commit SHA when advertised by the remote")

    @property
    def revision(self) -> str:
        """Revision string that names this reference inside a fresh clone."""
        if self.kind == RefKind.BRANCH:
            return f"{REMOTE_NAME}/{self.name}"
        if self.kind == RefKind.TAG:
            return f"refs/tags/{self.name}"
        return self.name


def _effective_auth(url: str, options: DownloadOptions) -> AuthType:
    if options.auth == AuthType.NONE and is_ssh_url(url):
        return AuthType.SSH_AGENT
    return options.auth


def _with_credentials(url: str, options: DownloadOptions) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not options.username:
        return url
    userinfo = quote(options.username, safe="")
    if options.password:
        userinfo += ":" + quote(options.password, safe="")
    host = parsed.netloc.rpartition("@")[2]
    return urlunparse(parsed._replace(netloc=f"{userinfo}@{host}"))


class GitRemote:
    """Resolver and fetcher backed by the `git` executable."""

    def __init__(self, options: Optional[DownloadOptions] = None) -> None:
        self.options = options or DownloadOptions()

    def _prepare(self, url: str, options: DownloadOptions) -> str:
        """Return the URL handed to git for the configured auth type."""
        auth = _effective_auth(url, options)
        if auth == AuthType.SSH_AGENT and not os.environ.get("SSH_AUTH_SOCK"):
            raise TransportError(f"SSH agent is not available for {url} (SSH_AUTH_SOCK is unset)")
        if auth == AuthType.BASIC:
            return _with_credentials(url, options)
        return url

    def _git(self, args: List[str], cwd: Optional[Path] = None, timeout: int = 600) -> subprocess.CompletedProcess:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        logger.debug(f"git {' '.join(args[:2])} (cwd={cwd})")
        try:
            return subprocess.run(
                ["git", *args],
                cwd=str(cwd) if cwd else None,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise TransportError(f"git {args[0]} timed out after {timeout}s")
        except OSError as e:
            raise TransportError(f"Cannot run git: {e}")

    def list_refs(self, url: str, options: Optional[DownloadOptions] = None) -> List[Reference]:
        """List tags and branches advertised by the remote.

        Raises:
            TransportError: If the remote cannot be listed
        """
        options = options or self.options
        result = self._git(["ls-remote", "--heads", "--tags", self._prepare(url, options)], timeout=120)
        if result.returncode != 0:
            raise TransportError(f"Failed to list references of {url}: {result.stderr.strip()}")

        tags: Dict[str, str] = {}
        refs: List[Reference] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            sha, _, name = line.partition("\t")
            if name.startswith(_HEADS):
                refs.append(Reference(name=name[len(_HEADS):], kind=RefKind.BRANCH, commit=sha))
            elif name.startswith(_TAGS):
                tag = name[len(_TAGS):]
                if tag.endswith(_PEELED):
                    # annotated tag: the peeled line carries the commit
                    tags[tag[:-len(_PEELED)]] = sha
                else:
                    tags.setdefault(tag, sha)

        refs.extend(Reference(name=tag, kind=RefKind.TAG, commit=sha) for tag, sha in tags.items())
        return refs

    def list_versions(self, url: str, options: Optional[DownloadOptions] = None) -> List[str]:
        """Sorted short names of all tags and branches of the remote."""
        return sorted({ref.name for ref in self.list_refs(url, options)})

    def resolve(self, url: str, version: str, options: Optional[DownloadOptions] = None) -> Reference:
        """Resolve `version` against the remote's references.

        An exact name match returns that tag or branch. Anything else is taken
        as a commit hash; whether it exists is checked when it is checked out.
        """
        for ref in self.list_refs(url, options):
            if ref.name == version:
                logger.debug(f"Resolved {version} to {ref.kind.value} {ref.commit}")
                return ref
        logger.debug(f"No tag or branch named {version}, treating it as a commit hash")
        return Reference(name=version, kind=RefKind.HASH)

    def _rev_parse(self, repo: Path, revision: str) -> Optional[str]:
        result = self._git(["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"], cwd=repo, timeout=60)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def _checkout_commit(self, repo: Path, commit: str) -> None:
        result = self._git(["checkout", "--quiet", "--force", "--detach", commit], cwd=repo, timeout=300)
        if result.returncode != 0:
            raise TransportError(f"Cannot check out {commit[:12]}: {result.stderr.strip()}")

    def clone(self, url: str, reference: Reference, dest: Path, options: Optional[DownloadOptions] = None) -> str:
        """Clone full history with all tags into `dest` and check out `reference`.

        Returns:
            The checked out commit SHA

        Raises:
            TransportError: If the clone fails
            ResolutionError: If the reference does not exist in the clone
        """
        options = options or self.options
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Cloning {url}")
        result = self._git(
            ["clone", "--quiet", "--no-checkout", "--origin", REMOTE_NAME,
             self._prepare(url, options), str(dest)],
        )
        if result.returncode != 0:
            raise TransportError(f"Failed to clone {url}: {result.stderr.strip()}")

        result = self._git(["fetch", "--quiet", "--tags", REMOTE_NAME], cwd=dest)
        if result.returncode != 0:
            raise TransportError(f"Failed to fetch tags of {url}: {result.stderr.strip()}")

        commit = reference.commit or self._rev_parse(dest, reference.revision)
        if commit is None or self._rev_parse(dest, commit) is None:
            raise ResolutionError(f"Version '{reference.name}' not found in {url}")

        logger.info(f"Checking out {reference.name} ({commit[:12]})")
        self._checkout_commit(dest, commit)
        return commit

    def checkout(self, repo: Path, version: str) -> str:
        """Switch an existing clone to `version` without fetching.

        Tries `version` itself, then `origin/<version>` for branches that only
        exist as remote-tracking refs in the clone.

        Raises:
            ResolutionError: If neither revision resolves
        """
        for revision in (version, f"{REMOTE_NAME}/{version}"):
            commit = self._rev_parse(Path(repo), revision)
            if commit is not None:
                break
        else:
            raise ResolutionError(f"version not found: {version}")

        logger.info(f"Switching to {version} ({commit[:12]})")
        self._checkout_commit(Path(repo), commit)
        return commit

    def get(self, url: str, version: str, dest: Path, options: Optional[DownloadOptions] = None) -> str:
        """Fetch `url` at `version` into `dest`; only switch when `only_switch` is set."""
        options = options or self.options
        if options.only_switch:
            return self.checkout(dest, version)
        return self.clone(url, self.resolve(url, version, options), dest, options)

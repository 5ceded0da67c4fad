"""Content-addressed package cache and the per-batch staging directory."""
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel

from apm.core.errors import StorageError
from apm.git.remote import DownloadOptions, GitRemote
from apm.models import CacheKey, Package
from apm.storage.fileset import copy_tree

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_ROOT = "~/.apm"
STORAGE_ENV = "APM_STORAGE"
TMP_PREFIX = "apm-"


class StagingSession:
    """Owns the staging directory of one install batch.

    The directory is created lazily on the first fetch and removed when the
    session exits, whatever the outcome. It also remembers which URL is
    currently cloned there, so consecutive packages of the same repository
    can switch revision instead of cloning again.
    """

    def __init__(self, allow_switch: bool = True) -> None:
        self.allow_switch = allow_switch
        self._tmpdir: Optional[Path] = None
        self.cloned_url: Optional[str] = None

    def __enter__(self) -> "StagingSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def clone_dir(self) -> Path:
        if self._tmpdir is None:
            self._tmpdir = Path(tempfile.mkdtemp(prefix=TMP_PREFIX))
            logger.debug(f"Created staging directory {self._tmpdir}")
        return self._tmpdir / "repo"

    def can_switch(self, url: str) -> bool:
        return self.allow_switch and self.cloned_url == url and self.clone_dir.is_dir()

    def reset(self) -> Path:
        """Clear the staging clone and return its (now absent) path."""
        clone_dir = self.clone_dir
        if clone_dir.exists():
            shutil.rmtree(clone_dir)
        self.cloned_url = None
        return clone_dir

    def close(self) -> None:
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir, ignore_errors=True)
            logger.debug(f"Removed staging directory {self._tmpdir}")
        self._tmpdir = None
        self.cloned_url = None


class CachedPackage(BaseModel):
    """Result of ensure_cached."""

    key: CacheKey
    path: Path
    fetched: bool


class ContentCache:
    """Maps package identities to directories under a storage root.

    Each entry holds the repository snapshot (without .git) for one
    (url, path, version) and is named by the key's fingerprint. Entries are
    only ever replaced as a whole and are never garbage-collected here.
    """

    def __init__(self, root: Union[str, Path, None] = None, remote: Optional[GitRemote] = None) -> None:
        root = root or os.environ.get(STORAGE_ENV) or DEFAULT_STORAGE_ROOT
        expanded = os.path.expanduser(str(root))
        # a relative root keeps project links relative to it
        self.relative = not os.path.isabs(expanded)
        self.root = Path(expanded).absolute()
        self.remote = remote or GitRemote()

    def make_storage(self) -> Path:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage {self.root}: {e}")
        return self.root

    def entry_path(self, key: CacheKey) -> Path:
        return self.root / key.fingerprint

    def has_entry(self, key: CacheKey) -> bool:
        return self.entry_path(key).is_dir()

    def ensure_cached(
        self,
        pkg: Package,
        session: StagingSession,
        force: bool = False,
        options: Optional[DownloadOptions] = None,
    ) -> CachedPackage:
        """Return the cache entry for `pkg`, fetching it when needed.

        Args:
            pkg: Validated package
            session: Staging session of the current batch
            force: Fetch again even if the entry exists
            options: Transport options for the fetch

        Raises:
            ResolutionError, TransportError: From the fetch
            StorageError: If the entry cannot be written
        """
        key = pkg.cache_key
        entry = self.entry_path(key)

        if not force and self.has_entry(key):
            logger.info(f"Using cached package {key.fingerprint[:12]} for {key}")
            return CachedPackage(key=key, path=entry, fetched=False)

        options = options or self.remote.options
        if session.can_switch(pkg.url):
            clone_dir = session.clone_dir
            options = options.model_copy(update={"only_switch": True})
        else:
            clone_dir = session.reset()
            options = options.model_copy(update={"only_switch": False})

        self.remote.get(pkg.url, pkg.version, clone_dir, options)
        session.cloned_url = pkg.url

        self._store(clone_dir, entry)
        logger.info(f"Cached {key} as {key.fingerprint[:12]}")
        return CachedPackage(key=key, path=entry, fetched=True)

    def _store(self, staged: Path, entry: Path) -> None:
        """Copy staged content next to `entry`, then swap it into place."""
        self.make_storage()
        try:
            incoming = Path(tempfile.mkdtemp(prefix=f".{entry.name}.", dir=str(self.root)))
        except OSError as e:
            raise StorageError(f"Cannot write to storage {self.root}: {e}")

        try:
            content = incoming / "content"
            copy_tree(staged, content)
            if entry.exists() or entry.is_symlink():
                shutil.rmtree(entry)
            content.rename(entry)
        except (OSError, shutil.Error) as e:
            raise StorageError(f"Cannot store package in {entry}: {e}")
        finally:
            shutil.rmtree(incoming, ignore_errors=True)

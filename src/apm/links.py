"""Project links: expose cached package content inside a working directory.

Every installed package gets one hidden link, `<workdir>/.apm/<fingerprint>`,
pointing at its cache entry: by absolute path when the storage root was
configured as an absolute path, by relative path otherwise. Mapping
destinations never point into the cache directly; they point at (or into)
that hidden link, always by relative path:

    <workdir>/<dest>  ->  .apm/<fingerprint>[/<src>]  ->  <storage>/<fingerprint>

A mapping source is one of:
- "" or "." (after joining with the package path): the package root, linked at `dest`
- a glob: each match gets its own link at `dest/<basename>`
- a literal sub-path: linked at `dest`

Existing symlinks are replaced; anything else at a destination is a conflict
and is left alone.
"""
import logging
import os
from pathlib import Path
from typing import List, Union

from apm.core.errors import LinkConflictError, PackageValidationError, StorageError
from apm.models import HIDDEN_DIR, CacheKey, Package
from apm.storage.fileset import has_magic, resolve_glob

logger = logging.getLogger(__name__)


def make_link(name: Path, target: str, override: bool = True) -> None:
    """Create symlink `name` -> `target`, creating parent directories.

    Raises:
        LinkConflictError: If `name` exists and is not a symlink, or is a
            symlink and `override` is False
    """
    name = Path(name)
    if os.path.lexists(name):
        if not name.is_symlink():
            raise LinkConflictError(f"file {name} already exists and is not a symlink")
        if not override:
            raise LinkConflictError(f"symlink {name} already exists")
        name.unlink()

    try:
        name.parent.mkdir(parents=True, exist_ok=True)
    except (FileExistsError, NotADirectoryError) as e:
        raise LinkConflictError(f"cannot create directory for {name}: {e}")
    except OSError as e:
        raise StorageError(f"cannot create directory for {name}: {e}")

    try:
        os.symlink(target, str(name))
    except OSError as e:
        raise StorageError(f"cannot create symlink {name}: {e}")
    logger.debug(f"Linked {name} -> {target}")


class LinkPlanner:
    """Creates the hidden and destination links of packages in one workdir."""

    def __init__(self, workdir: Union[str, Path] = ".", relative_storage: bool = False) -> None:
        self.workdir = Path(workdir).resolve()
        self.relative_storage = relative_storage
        self.hidden_dir = self.workdir / HIDDEN_DIR

    def hidden_entry(self, key: CacheKey) -> Path:
        return self.hidden_dir / key.fingerprint

    def installed(self) -> List[str]:
        """Fingerprints currently linked in the hidden directory."""
        if not self.hidden_dir.is_dir():
            return []
        return sorted(p.name for p in self.hidden_dir.iterdir() if p.is_symlink())

    def ensure_hidden_link(self, key: CacheKey, cache_dir: Path) -> Path:
        """Point `.apm/<fingerprint>` at `cache_dir`, reusing a correct link."""
        try:
            self.hidden_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create {self.hidden_dir}: {e}")

        link = self.hidden_entry(key)
        if self.relative_storage:
            target = os.path.relpath(Path(cache_dir).resolve(), self.hidden_dir)
        else:
            target = str(Path(cache_dir).absolute())
        if link.is_symlink() and os.readlink(str(link)) == target:
            return link

        make_link(link, target)
        return link

    def _destination(self, dest: str) -> Path:
        return Path(os.path.normpath(self.workdir / dest))

    def apply(self, pkg: Package, cache_dir: Path) -> List[Path]:
        """Materialize every mapping of `pkg` and return the created links.

        Raises:
            LinkConflictError: A destination holds user content
            PackageValidationError: A literal source is missing from the package,
                or a pattern is malformed
            StorageError: The hidden directory cannot be written
        """
        entry = self.ensure_hidden_link(pkg.cache_key, cache_dir)
        links: List[Path] = []

        for mapping in pkg.mappings:
            src = pkg.source_of(mapping)
            dest = self._destination(mapping.dest)

            if has_magic(src):
                links.extend(self._link_glob(entry, src, dest))
                continue

            source = entry if src == "." else entry / src
            if not os.path.lexists(source):
                raise PackageValidationError(f"{src} does not exist in package {pkg.url}@{pkg.version}")
            make_link(dest, os.path.relpath(source, dest.parent))
            links.append(dest)

        return links

    def _link_glob(self, entry: Path, pattern: str, dest_dir: Path) -> List[Path]:
        if dest_dir.is_symlink():
            raise LinkConflictError(f"cannot link files into {dest_dir}: it is a symlink")
        if dest_dir.exists() and not dest_dir.is_dir():
            raise LinkConflictError(f"file {dest_dir} already exists and is not a directory")

        try:
            matches = resolve_glob(entry, pattern)
        except ValueError as e:
            raise PackageValidationError(f"invalid mapping pattern {pattern}: {e}")
        if not matches:
            logger.warning(f"{pattern} matched nothing in {entry.name[:12]}")

        links = []
        for match in matches:
            link = dest_dir / match.name
            make_link(link, os.path.relpath(match, dest_dir))
            links.append(link)
        return links

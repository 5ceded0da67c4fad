"""Package model, mappings and the cache identity of a package."""
import hashlib
import json
import posixpath
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from apm.core.errors import PackageValidationError
from apm.git.urls import normalize_url

DEFAULT_VERSION = "master"
DEFAULT_PATH = "."
DEFAULT_MAPPING_SRC = "*"
DEFAULT_MAPPING_DEST = "."

# per-project directory of links to cache entries, one per fingerprint
HIDDEN_DIR = ".apm"


class Mapping(BaseModel):
    """A source pattern inside a package and where it appears in the project.

    `src` is relative to the package path. It may be empty or "." (the whole
    package), a literal sub-path, or a flat glob such as "roles/*".
    `dest` is relative to the working directory.
    """

    model_config = ConfigDict(frozen=True)

    src: str = Field(default="", description="Source path or glob inside the package")
    dest: str = Field(..., description="Destination path inside the working directory")


class CacheKey(BaseModel):
    """Identity of a package's content: (url, path, version).

    Equality is structural over the three fields. `fingerprint` encodes the
    triple as a JSON array before hashing, so no choice of field values can
    make two different triples share one digest input.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    path: str
    version: str

    @property
    def fingerprint(self) -> str:
        payload = json.dumps([self.url, self.path, self.version], ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        return f"{self.url}@{self.version} (path={self.path})"


def _check_relative(value: str, what: str) -> str:
    if value.startswith("/") or value.startswith("\\"):
        raise PackageValidationError(f"{what} must be relative, got: {value}")
    normalized = posixpath.normpath(value) if value else ""
    if normalized == ".." or normalized.startswith("../"):
        raise PackageValidationError(f"{what} must not escape its root, got: {value}")
    return normalized


def _check_pattern(source: str) -> None:
    """Only flat globs are supported."""
    if "**" in source:
        raise PackageValidationError(f"recursive pattern is not supported in mapping source: {source}")


class Package(BaseModel):
    """An install request for part of a remote repository."""

    url: str = Field(default="", description="Remote repository location")
    version: str = Field(default=DEFAULT_VERSION, description="Tag, branch or commit hash")
    path: str = Field(default=DEFAULT_PATH, description="Sub-path forming the package root")
    mappings: List[Mapping] = Field(default_factory=list)

    def validated(self) -> "Package":
        """Return a normalized copy, raising PackageValidationError if malformed."""
        url = normalize_url(self.url)
        path = _check_relative(self.path.strip() or DEFAULT_PATH, "package path")
        mappings = list(self.mappings) or [
            Mapping(src=DEFAULT_MAPPING_SRC, dest=DEFAULT_MAPPING_DEST)
        ]
        for mapping in mappings:
            if not mapping.dest.strip():
                raise PackageValidationError(
                    f"invalid mapping {mapping.src!r}: destination is empty"
                )
            dest = _check_relative(mapping.dest, "mapping destination")
            if dest.split("/")[0] == HIDDEN_DIR:
                raise PackageValidationError(f"mapping destination must not be inside {HIDDEN_DIR}, got: {mapping.dest}")
            _check_relative(mapping.src, "mapping source")
            _check_pattern(posixpath.join(path, mapping.src or "."))

        return Package(
            url=url,
            version=self.version.strip() or DEFAULT_VERSION,
            path=path,
            mappings=mappings,
        )

    @property
    def cache_key(self) -> CacheKey:
        return CacheKey(url=self.url, path=self.path, version=self.version)

    def source_of(self, mapping: Mapping) -> str:
        """Join a mapping source onto the package path ("" and "." mean the root)."""
        return posixpath.normpath(posixpath.join(self.path, mapping.src or "."))

    def describe(self) -> str:
        return f"url={self.url} version={self.version} path={self.path}"

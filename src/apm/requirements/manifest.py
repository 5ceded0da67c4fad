"""Requirements manifest: the declared packages of a project.

File format (YAML):

    packages:
    - src: https://github.com/k1nky/ansible-simple-roles.git
      mappings:
      - src: motd
        dest: roles/motd
        version: master

There is at most one entry per URL, and within an entry at most one mapping
per (src, dest) pair. Adding a mapping that already exists overwrites its
version.
"""
import logging
import posixpath
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from apm.models import DEFAULT_VERSION, Mapping, Package
from apm.requirements.yaml_io import dump_yaml, load_yaml, parse_yaml, save_yaml

logger = logging.getLogger(__name__)

DEFAULT_REQUIREMENTS_FILE = "requirements.yml"


class MappingKey(NamedTuple):
    src: str
    dest: str


class RequiredMapping(BaseModel):
    src: str = Field(default="")
    dest: str
    version: str = Field(default=DEFAULT_VERSION)

    @property
    def key(self) -> MappingKey:
        return MappingKey(self.src, self.dest)


class RequiredPackage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., alias="src", description="Repository URL")
    mappings: List[RequiredMapping] = Field(default_factory=list)

    def find_mapping(self, key: MappingKey) -> Optional[int]:
        for index, mapping in enumerate(self.mappings):
            if mapping.key == key:
                return index
        return None


class Requirements(BaseModel):
    """Ordered list of required packages."""

    packages: List[RequiredPackage] = Field(default_factory=list)

    @classmethod
    def loads(cls, text: str) -> "Requirements":
        data = parse_yaml(text)
        return cls.model_validate({"packages": data.get("packages") or []})

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Requirements":
        """Load requirements from `path`. A missing file is an empty manifest."""
        path = Path(path)
        if not path.exists():
            logger.debug(f"{path} does not exist, starting with empty requirements")
            return cls()
        data = load_yaml(path)
        return cls.model_validate({"packages": data.get("packages") or []})

    def to_dict(self) -> Dict:
        return self.model_dump(by_alias=True)

    def dumps(self) -> str:
        return dump_yaml(self.to_dict())

    def save(self, path: Union[str, Path]) -> None:
        save_yaml(path, self.to_dict())
        logger.info(f"Requirements saved to {path}")

    def find(self, url: str) -> Optional[int]:
        for index, package in enumerate(self.packages):
            if package.url == url:
                return index
        return None

    def find_mapping(self, url: str, key: MappingKey) -> Optional[int]:
        index = self.find(url)
        if index is None:
            return None
        return self.packages[index].find_mapping(key)

    def add(self, required: RequiredPackage) -> None:
        """Merge `required` in: new URLs are appended, known (src, dest) pairs updated."""
        index = self.find(required.url)
        if index is None:
            self.packages.append(required.model_copy(deep=True))
            return

        existing = self.packages[index]
        for mapping in required.mappings:
            position = existing.find_mapping(mapping.key)
            if position is None:
                existing.mappings.append(mapping.model_copy())
            else:
                existing.mappings[position] = mapping.model_copy()

    def add_package(self, pkg: Package) -> None:
        self.add(from_package(pkg))

    def to_packages(self) -> List[List[Package]]:
        """Install packages per manifest entry, in manifest order.

        Each mapping becomes its own package rooted at the mapping source, with
        a single root mapping onto the destination.
        """
        batches = []
        for required in self.packages:
            batches.append([
                Package(
                    url=required.url,
                    version=mapping.version,
                    path=mapping.src or ".",
                    mappings=[Mapping(src="", dest=mapping.dest)],
                )
                for mapping in required.mappings
            ])
        return batches


def from_package(pkg: Package) -> RequiredPackage:
    """Manifest record for `pkg`; sources are joined with the package path."""
    return RequiredPackage(
        url=pkg.url,
        mappings=[
            RequiredMapping(
                src=posixpath.normpath(posixpath.join(pkg.path or ".", mapping.src or ".")),
                dest=mapping.dest,
                version=pkg.version,
            )
            for mapping in pkg.mappings
        ],
    )

"""Requirements manifest handling."""
from apm.requirements.manifest import (
    DEFAULT_REQUIREMENTS_FILE,
    MappingKey,
    RequiredMapping,
    RequiredPackage,
    Requirements,
    from_package,
)

__all__ = [
    "DEFAULT_REQUIREMENTS_FILE",
    "MappingKey",
    "RequiredMapping",
    "RequiredPackage",
    "Requirements",
    "from_package",
]

"""YAML reading and atomic writing for requirement files."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import yaml

logger = logging.getLogger(__name__)


def atomic_write(path: Path, content: str) -> None:
    """Write `content` to a temp file in the same directory, then rename it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, str(path))
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def parse_yaml(text: str, source: str = "<string>") -> Dict[str, Any]:
    """Parse a YAML mapping; empty input yields an empty dict."""
    try:
        result = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML from {source}: {e}")
        raise

    if result is None:
        return {}
    if not isinstance(result, dict):
        raise ValueError(f"{source} must contain a mapping, got {type(result).__name__}")
    return result


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML mapping from `path`; an absent file yields an empty dict."""
    p = Path(path)
    if not p.exists():
        return {}
    return parse_yaml(p.read_text(encoding="utf-8"), source=str(p))


def dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)


def save_yaml(path: Union[str, Path], data: Any) -> None:
    atomic_write(Path(path), dump_yaml(data))

"""
Runtime configuration for a hucdb store.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import ConfigError

DEFAULT_STORE_ROOT = Path("~/.hucdb")
DEFAULT_INDEX_FILENAME = "metadata_index.json"
DEFAULT_DATA_DIRNAME = "huc"
DEFAULT_INDENT = 1


@dataclass(frozen=True)
class StoreConfig:
    """
    Validated store configuration.

    Attributes:
        store_root: Directory holding the metadata index and HUC data files.
        index_filename: File name of the metadata index inside the root.
        data_dirname: Sub-directory holding one data file per HUC8.
        indent: JSON indentation used when writing store files (None for compact).
    """

    store_root: Path
    index_filename: str = DEFAULT_INDEX_FILENAME
    data_dirname: str = DEFAULT_DATA_DIRNAME
    indent: Optional[int] = DEFAULT_INDENT

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """
        Build a config from HUCDB_STORE_ROOT and HUCDB_JSON_INDENT.

        Raises:
            ConfigError: If HUCDB_JSON_INDENT is not an integer.
        """
        root = os.getenv("HUCDB_STORE_ROOT", str(DEFAULT_STORE_ROOT))
        indent_value = os.getenv("HUCDB_JSON_INDENT")
        indent = DEFAULT_INDENT
        if indent_value is not None:
            indent = _parse_indent(indent_value)
        return cls(store_root=Path(root).expanduser(), indent=indent)


def _parse_indent(raw_value: str) -> Optional[int]:
    if raw_value.strip().lower() in ("", "none"):
        return None
    try:
        indent = int(raw_value)
    except ValueError as e:
        raise ConfigError(
            f"Invalid HUCDB_JSON_INDENT value: expected integer, got '{raw_value}'"
        ) from e
    if indent < 0:
        raise ConfigError(f"HUCDB_JSON_INDENT must be >= 0, got {indent}")
    return indent

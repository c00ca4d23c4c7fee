"""
On-disk addressing for a hucdb store.

A store root holds a single metadata index file and one JSON data file per
HUC8 watershed::

    <root>/
        metadata_index.json
        .index_stale          (present only while an index update is pending)
        huc/
            10190005.json
            10190006.json
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Union

from .config import StoreConfig
from .exceptions import InvalidLayoutError, PersistenceError

logger = logging.getLogger(__name__)

HUC8_PATTERN = re.compile(r"^\d{8}$")
STALE_MARKER = ".index_stale"
DATA_SUFFIX = ".json"


def validate_huc8(huc8: Any) -> str:
    """
    Return ``huc8`` as a string if it is a well-formed 8-digit code.

    Raises:
        InvalidLayoutError: If the code is empty or not exactly 8 digits.
    """
    if not isinstance(huc8, str):
        raise InvalidLayoutError(
            f"HUC8 code must be a string, got {type(huc8).__name__}: {huc8!r}"
        )
    if not HUC8_PATTERN.match(huc8):
        raise InvalidLayoutError(f"Invalid HUC8 code {huc8!r}: expected 8 digits")
    return huc8


class StoreLayout:
    """Maps (HUC8, product) pairs to files under one store root."""

    def __init__(
        self,
        root: Union[str, Path],
        config: Optional[StoreConfig] = None,
        create: bool = True,
    ):
        self.config = config or StoreConfig(store_root=Path(root))
        self.root = Path(root).expanduser()

        if self.root.exists() and not self.root.is_dir():
            raise InvalidLayoutError(f"Store root {self.root} is not a directory")
        if create:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise InvalidLayoutError(
                    f"Cannot create store root {self.root}: {e}"
                ) from e
        elif not self.root.is_dir():
            raise InvalidLayoutError(f"Store root {self.root} does not exist")

    @classmethod
    def from_config(cls, config: StoreConfig, create: bool = True) -> "StoreLayout":
        return cls(config.store_root, config=config, create=create)

    def __repr__(self) -> str:
        return f"StoreLayout({str(self.root)!r})"

    @property
    def data_dir(self) -> Path:
        return self.root / self.config.data_dirname

    @property
    def index_path(self) -> Path:
        """Path of the shared metadata index file."""
        return self.root / self.config.index_filename

    @property
    def stale_marker_path(self) -> Path:
        return self.root / STALE_MARKER

    def data_path(self, huc8: str, product: Optional[str] = None) -> Path:
        """
        Path of the data file for ``huc8``.

        All products of a HUC8 live in the same file, so ``product`` only
        participates in validation; use :meth:`index_key` to address the
        product group inside the file.
        """
        validate_huc8(huc8)
        if product is not None and not str(product).strip():
            raise InvalidLayoutError("Product code must be non-empty")
        return self.data_dir / f"{huc8}{DATA_SUFFIX}"

    def index_key(self, huc8: str, product: str) -> str:
        """Nested key of one product group, e.g. ``"10190005/00060"``."""
        validate_huc8(huc8)
        if not str(product).strip():
            raise InvalidLayoutError("Product code must be non-empty")
        return f"{huc8}/{product}"

    def has_data_file(self, huc8: str) -> bool:
        return self.data_path(huc8).is_file()

    def list_hucs(self) -> List[str]:
        """HUC8 codes that currently have a data file, sorted."""
        if not self.data_dir.is_dir():
            return []
        hucs = []
        for path in self.data_dir.glob(f"*{DATA_SUFFIX}"):
            if HUC8_PATTERN.match(path.stem):
                hucs.append(path.stem)
        return sorted(hucs)

    def is_stale(self) -> bool:
        return self.stale_marker_path.exists()

    def mark_stale(self, huc8: str) -> None:
        write_text_atomic(self.stale_marker_path, f"{huc8}\n")

    def clear_stale(self) -> None:
        try:
            self.stale_marker_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(
                f"Cannot remove stale marker {self.stale_marker_path}: {e}"
            ) from e


def as_layout(store: Union[str, Path, StoreLayout], create: bool = True) -> StoreLayout:
    """Accept either a layout or a store root path."""
    if isinstance(store, StoreLayout):
        return store
    return StoreLayout(store, create=create)


def write_text_atomic(path: Path, text: str) -> None:
    """
    Replace ``path`` with ``text`` via a temporary sibling file.

    Raises:
        PersistenceError: If the directory is not writable.
    """
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to write {path}: {e}") from e


def write_json_atomic(path: Path, payload: Any, indent: Optional[int] = 1) -> None:
    """
    Serialize ``payload`` and replace ``path`` with it.

    Raises:
        PersistenceError: If the payload is not valid JSON (e.g. infinite
            floats) or the file cannot be written.
    """
    try:
        text = json.dumps(payload, indent=indent, sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise PersistenceError(f"Cannot serialize {path.name}: {e}") from e
    write_text_atomic(path, text + "\n")


def read_json(path: Path) -> Any:
    """
    Load a JSON store file.

    Raises:
        FileNotFoundError: If the file does not exist.
        PersistenceError: If the file cannot be read or decoded.
    """
    logger.debug(f"Reading {path}")
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        raise
    except json.JSONDecodeError as e:
        raise PersistenceError(f"Corrupt store file {path}: {e}") from e
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}: {e}") from e

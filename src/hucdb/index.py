"""
The metadata index: one row per (HUC8, product, site) across the store.

The index is derived data. :meth:`MetadataIndex.build` is a pure function of
a set of data files, and the incremental :meth:`MetadataIndex.replace_huc`
produces exactly what a full rebuild would, so the index can always be
regenerated from the ``huc/`` directory.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .datafile import STATISTIC_PREFIX, VARIABLE_PREFIX, HucDataFile, to_builtin
from .exceptions import PersistenceError
from .layout import StoreLayout, read_json, write_json_atomic
from .models import SITE_COLUMNS, SITE_NO, STATION_NM

logger = logging.getLogger(__name__)

INDEX_FORMAT_VERSION = 1
HUC8 = "huc8"
PRODUCT = "product"
BASE_COLUMNS = [HUC8, PRODUCT] + SITE_COLUMNS
SORT_COLUMNS = [HUC8, PRODUCT, SITE_NO]


def _column_rank(column: str) -> int:
    if column.startswith(VARIABLE_PREFIX):
        return 1
    if column.startswith(STATISTIC_PREFIX):
        return 2
    return 0


def _canonical_columns(rows: List[Dict[str, Any]]) -> List[str]:
    extra = set()
    for row in rows:
        extra.update(k for k, v in row.items() if v is not None)
    extra -= set(BASE_COLUMNS)
    return BASE_COLUMNS + sorted(extra, key=lambda c: (_column_rank(c), c))


class MetadataIndex:
    """Searchable table of site, variable and statistic descriptors."""

    def __init__(self, rows: Optional[Iterable[Dict[str, Any]]] = None):
        cleaned = []
        for row in rows or []:
            values = {k: to_builtin(v) for k, v in row.items()}
            cleaned.append({k: v for k, v in values.items() if v is not None})
        cleaned.sort(key=lambda r: tuple(str(r.get(c, "")) for c in SORT_COLUMNS))
        self.columns = _canonical_columns(cleaned)
        self._rows = cleaned
        self.frame = pd.DataFrame(
            [[row.get(c) for c in self.columns] for row in cleaned],
            columns=self.columns,
        )

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"MetadataIndex(rows={len(self)}, hucs={self.hucs()})"

    @property
    def empty(self) -> bool:
        return not self._rows

    @classmethod
    def build(cls, datafiles: Iterable[HucDataFile]) -> "MetadataIndex":
        """Index of exactly the metadata present in ``datafiles``."""
        rows: List[Dict[str, Any]] = []
        for datafile in datafiles:
            rows.extend(datafile.metadata_rows())
        return cls(rows)

    @classmethod
    def load(cls, layout: StoreLayout) -> "MetadataIndex":
        """Read the index file, or return an empty index if none exists yet."""
        if layout.is_stale():
            logger.warning(
                f"Metadata index at {layout.index_path} is flagged stale; "
                "run rebuild_index() to restore consistency"
            )
        try:
            payload = read_json(layout.index_path)
        except FileNotFoundError:
            return cls()
        try:
            version = payload.get("format_version")
            if version != INDEX_FORMAT_VERSION:
                raise PersistenceError(
                    f"Unsupported index format version {version!r} in {layout.index_path}"
                )
            columns = payload["columns"]
            rows = [dict(zip(columns, values)) for values in payload["rows"]]
        except (KeyError, TypeError, AttributeError) as e:
            raise PersistenceError(
                f"Malformed metadata index {layout.index_path}: {e}"
            ) from e
        return cls(rows)

    @classmethod
    def rebuild(cls, layout: StoreLayout) -> "MetadataIndex":
        """Regenerate the index from every data file and write it."""
        hucs = layout.list_hucs()
        index = cls.build(HucDataFile.load(layout, huc8) for huc8 in hucs)
        index.save(layout)
        layout.clear_stale()
        logger.info(f"Rebuilt metadata index from {len(hucs)} HUC data files ({len(index)} rows)")
        return index

    def save(self, layout: StoreLayout) -> Path:
        payload = {
            "format_version": INDEX_FORMAT_VERSION,
            "columns": self.columns,
            "rows": [[row.get(c) for c in self.columns] for row in self._rows],
        }
        write_json_atomic(layout.index_path, payload, indent=layout.config.indent)
        return layout.index_path

    def replace_huc(self, datafile: HucDataFile) -> "MetadataIndex":
        """A new index with every row of ``datafile.huc8`` replaced."""
        kept = [row for row in self._rows if row.get(HUC8) != datafile.huc8]
        return MetadataIndex(kept + datafile.metadata_rows())

    def drop_huc(self, huc8: str) -> "MetadataIndex":
        return MetadataIndex(row for row in self._rows if row.get(HUC8) != huc8)

    def rows(self) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._rows]

    def hucs(self) -> List[str]:
        return sorted({row[HUC8] for row in self._rows})

    def products(self, huc8: Optional[str] = None) -> List[str]:
        return sorted(
            {
                row[PRODUCT]
                for row in self._rows
                if huc8 is None or row.get(HUC8) == huc8
            }
        )

    def keys(self) -> List[tuple]:
        """(huc8, product, site_no) for every row, in index order."""
        return [(row[HUC8], row[PRODUCT], row[SITE_NO]) for row in self._rows]

    def rows_for_site(self, site_no: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._rows if row.get(SITE_NO) == site_no]

    def rows_for_name(self, station_nm: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._rows if row.get(STATION_NM) == station_nm]

    def huc_for_site(self, site_no: str) -> Optional[str]:
        """HUC8 of the first index row for ``site_no``, if any."""
        for row in self._rows:
            if row.get(SITE_NO) == site_no:
                return row[HUC8]
        return None

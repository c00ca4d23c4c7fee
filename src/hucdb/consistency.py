"""
Checks that the metadata index and the HUC data files agree.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Set, Tuple, Union

from .datafile import HucDataFile
from .index import MetadataIndex
from .layout import StoreLayout, as_layout

logger = logging.getLogger(__name__)

RowKey = Tuple[str, str, str]


@dataclass
class ConsistencyReport:
    """Differences between the index and the data files of one store."""

    orphan_rows: List[RowKey] = field(default_factory=list)
    unindexed_rows: List[RowKey] = field(default_factory=list)
    missing_files: List[str] = field(default_factory=list)
    stale: bool = False

    def is_consistent(self) -> bool:
        return not (
            self.orphan_rows or self.unindexed_rows or self.missing_files or self.stale
        )

    def __str__(self) -> str:
        parts = [
            f"orphan rows: {len(self.orphan_rows)}",
            f"unindexed rows: {len(self.unindexed_rows)}",
            f"missing files: {len(self.missing_files)}",
        ]
        if self.stale:
            parts.append("flagged stale")
        return f"ConsistencyReport({', '.join(parts)})"


def check_consistency(store: Union[str, Path, StoreLayout]) -> ConsistencyReport:
    """
    Compare (HUC8, product, site) keys in the index with those in the data files.

    Orphan rows are index rows with no backing file, product or site; unindexed
    rows are data file entries the index does not list.
    """
    layout = as_layout(store, create=False)
    index = MetadataIndex.load(layout)
    index_keys: Set[RowKey] = set(index.keys())

    file_keys: Set[RowKey] = set()
    file_hucs = layout.list_hucs()
    for huc8 in file_hucs:
        datafile = HucDataFile.load(layout, huc8)
        file_keys.update(
            (row["huc8"], row["product"], row["site_no"])
            for row in datafile.metadata_rows()
        )

    report = ConsistencyReport(
        orphan_rows=sorted(index_keys - file_keys),
        unindexed_rows=sorted(file_keys - index_keys),
        missing_files=sorted(set(index.hucs()) - set(file_hucs)),
        stale=layout.is_stale(),
    )
    if not report.is_consistent():
        logger.warning(f"Store {layout.root} is inconsistent: {report}")
    return report

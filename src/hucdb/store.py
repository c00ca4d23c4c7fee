"""
HucStore: a local store of watershed observations bound to one root directory.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Union

import pandas as pd

from . import query
from .config import StoreConfig
from .consistency import ConsistencyReport, check_consistency
from .index import MetadataIndex
from .layout import StoreLayout
from .save import Fetcher, SavedFiles, fetch_and_save, rebuild_index, save_huc

logger = logging.getLogger(__name__)


class HucStore:
    """
    File-based store of hydrologic observations partitioned by HUC8.

    Example:
        >>> with HucStore("~/data/nwis") as store:
        ...     store.save(fetch_result)
        ...     store.query_site_data(["06727500"], "00060")
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        config: Optional[StoreConfig] = None,
    ):
        if config is None:
            config = StoreConfig.from_env()
            if root is not None:
                config = replace(config, store_root=Path(root).expanduser())
        self.config = config
        self.layout = StoreLayout.from_config(config)
        if self.layout.is_stale():
            logger.warning(
                f"Store {self.layout.root} has a pending index update; "
                "call rebuild_index() before querying"
            )

    def __enter__(self) -> "HucStore":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        # Files are opened per operation; nothing stays open between calls
        return None

    def __repr__(self) -> str:
        return f"HucStore({str(self.root)!r})"

    @property
    def root(self) -> Path:
        return self.layout.root

    @property
    def needs_rebuild(self) -> bool:
        """True if an earlier save left the index un-updated."""
        return self.layout.is_stale()

    def hucs(self) -> List[str]:
        return self.layout.list_hucs()

    def index(self) -> MetadataIndex:
        return MetadataIndex.load(self.layout)

    def save(self, fetch_result: Mapping[str, Any]) -> SavedFiles:
        return save_huc(fetch_result, self.layout)

    def fetch_and_save(
        self, fetcher: Fetcher, huc8: str, products: Optional[Sequence[str]] = None
    ) -> SavedFiles:
        return fetch_and_save(fetcher, huc8, self.layout, products=products)

    def rebuild_index(self) -> MetadataIndex:
        return rebuild_index(self.layout)

    def check_consistency(self) -> ConsistencyReport:
        return check_consistency(self.layout)

    def query_site_info(self, fields: Optional[Sequence[str]] = None) -> pd.DataFrame:
        return query.query_site_info(fields, self.layout)

    def query_site_name(self, identifier_or_name: str) -> str:
        return query.query_site_name(identifier_or_name, self.layout)

    def query_site_data(
        self, site_nos: Union[str, Sequence[str]], product: str
    ) -> pd.DataFrame:
        return query.query_site_data(site_nos, product, self.layout)

    def query_huc_data(self, huc8: str, product: Optional[str] = None) -> pd.DataFrame:
        return query.query_huc_data(huc8, self.layout, product=product)

    def query_sites_in_huc(self, huc8: str) -> pd.DataFrame:
        return query.query_sites_in_huc(huc8, self.layout)

    def list_products(self, huc8: Optional[str] = None) -> List[str]:
        return query.list_products(self.layout, huc8=huc8)

"""
Local, file-based store for hydrologic station observations.

Fetched watershed data is saved per HUC8 and indexed so that site metadata
and observations can be queried offline as DataFrames.
"""

try:
    from importlib import metadata

    __version__ = metadata.version(__name__)
except Exception:
    __version__ = "unknown"

from .config import StoreConfig
from .consistency import ConsistencyReport, check_consistency
from .datafile import HucDataFile
from .exceptions import (
    ConfigError,
    HucDBError,
    InvalidLayoutError,
    InvalidQueryError,
    MalformedFetchResultError,
    MissingDataFileError,
    PersistenceError,
    UnknownSiteError,
)
from .index import MetadataIndex
from .layout import StoreLayout, validate_huc8
from .models import (
    FetchResult,
    ObservationRecord,
    ProductData,
    SiteInfo,
    StatisticInfo,
    VariableInfo,
)
from .query import (
    list_products,
    query_huc_data,
    query_site_data,
    query_site_info,
    query_site_name,
    query_sites_in_huc,
)
from .save import Fetcher, SavedFiles, fetch_and_save, rebuild_index, save_huc
from .store import HucStore

__all__ = [
    # Store facade and configuration
    "HucStore",
    "StoreConfig",
    "StoreLayout",
    "validate_huc8",
    # Data model
    "FetchResult",
    "ProductData",
    "ObservationRecord",
    "SiteInfo",
    "VariableInfo",
    "StatisticInfo",
    "HucDataFile",
    "MetadataIndex",
    # Saving
    "Fetcher",
    "SavedFiles",
    "save_huc",
    "fetch_and_save",
    "rebuild_index",
    # Queries
    "query_site_info",
    "query_site_name",
    "query_site_data",
    "query_huc_data",
    "query_sites_in_huc",
    "list_products",
    "ConsistencyReport",
    "check_consistency",
    # Exceptions
    "HucDBError",
    "ConfigError",
    "InvalidLayoutError",
    "MalformedFetchResultError",
    "PersistenceError",
    "UnknownSiteError",
    "MissingDataFileError",
    "InvalidQueryError",
]

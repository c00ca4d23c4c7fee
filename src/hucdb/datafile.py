"""
Per-watershed data files.

One JSON document per HUC8 holds, for every product fetched so far, the
metadata triple (site info table, variable info, statistic info) and the
full observation table::

    {"format_version": 1,
     "huc8": "10190005",
     "products": {"00060": {"site_info": {"columns": [...], "data": [...]},
                            "variable_info": {...},
                            "statistic_info": {...},
                            "data": {"columns": [...], "data": [...]}}}}

Tables use the column/row split layout so column order survives a round trip.
"""

import logging
import warnings
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from .exceptions import MissingDataFileError, PersistenceError
from .layout import StoreLayout, read_json, validate_huc8, write_json_atomic
from .models import (
    DATA_COLUMNS,
    DATETIME,
    HUC_CD,
    SITE_COLUMNS,
    SITE_NO,
    ProductData,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

# Prefixes used when variable/statistic descriptors are flattened into index rows
VARIABLE_PREFIX = "variable_"
STATISTIC_PREFIX = "statistic_"


def to_builtin(value: Any) -> Any:
    """Convert pandas/numpy scalars into JSON-serializable Python values."""
    if value is None or value is pd.NaT or value is pd.NA:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, Mapping):
        return {str(k): to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_builtin(v) for v in value]
    return value


def frame_to_table(frame: pd.DataFrame) -> Dict[str, Any]:
    columns = [str(c) for c in frame.columns]
    rows = [[to_builtin(v) for v in row] for row in frame.itertuples(index=False)]
    return {"columns": columns, "data": rows}


def table_to_frame(
    table: Mapping[str, Any], default_columns: Optional[List[str]] = None
) -> pd.DataFrame:
    columns = list(table.get("columns") or default_columns or [])
    return pd.DataFrame(list(table.get("data") or []), columns=columns)


def parse_timestamps(values: pd.Series) -> pd.Series:
    """
    Parse observation timestamps.

    Series carrying more than one UTC offset (e.g. across a daylight saving
    change) are converted to UTC so they sort and de-duplicate as instants.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", FutureWarning)
            parsed = pd.to_datetime(values)
    except ValueError:
        return pd.to_datetime(values, utc=True)
    if not pd.api.types.is_datetime64_any_dtype(parsed):
        # older pandas returns objects for mixed offsets instead of raising
        return pd.to_datetime(values, utc=True)
    return parsed


def normalize_data(data: pd.DataFrame) -> pd.DataFrame:
    """
    Canonical form of an observation table.

    Site numbers become strings, timestamps are parsed, duplicate
    (site_no, datetime) pairs keep their last occurrence, and rows are sorted
    by site then timestamp.
    """
    frame = data.copy()
    for column in DATA_COLUMNS:
        if column not in frame.columns:
            frame[column] = None
    ordered = DATA_COLUMNS + [c for c in frame.columns if c not in DATA_COLUMNS]
    frame = frame[ordered].copy()
    frame[SITE_NO] = frame[SITE_NO].astype(str).str.strip()
    frame[DATETIME] = parse_timestamps(frame[DATETIME])
    frame = frame.drop_duplicates(subset=[SITE_NO, DATETIME], keep="last")
    frame = frame.sort_values([SITE_NO, DATETIME], kind="mergesort")
    return frame.reset_index(drop=True)


def normalize_site_info(site_info: pd.DataFrame) -> pd.DataFrame:
    """One row per site, identifiers as strings, sorted by site number."""
    frame = site_info.copy()
    for column in SITE_COLUMNS:
        if column not in frame.columns:
            frame[column] = None
    ordered = SITE_COLUMNS + [c for c in frame.columns if c not in SITE_COLUMNS]
    frame = frame[ordered].copy()
    frame[SITE_NO] = frame[SITE_NO].astype(str).str.strip()
    frame[HUC_CD] = frame[HUC_CD].astype(str).str.strip()
    frame = frame.drop_duplicates(subset=[SITE_NO], keep="last")
    frame = frame.sort_values(SITE_NO, kind="mergesort")
    return frame.reset_index(drop=True)


class HucDataFile:
    """All products stored for one HUC8."""

    def __init__(self, huc8: str, products: Optional[Dict[str, ProductData]] = None):
        self.huc8 = validate_huc8(huc8)
        self.products: Dict[str, ProductData] = {}
        for product, product_data in (products or {}).items():
            self.products[str(product)] = ProductData(
                data=normalize_data(product_data.data),
                site_info=normalize_site_info(product_data.site_info),
                variable_info=dict(product_data.variable_info),
                statistic_info=dict(product_data.statistic_info),
            )

    def __repr__(self) -> str:
        return f"HucDataFile(huc8={self.huc8!r}, products={sorted(self.products)})"

    @classmethod
    def load(cls, layout: StoreLayout, huc8: str) -> "HucDataFile":
        """
        Read the data file for ``huc8``.

        Raises:
            MissingDataFileError: If the HUC8 has no data file.
            PersistenceError: If the file cannot be decoded.
        """
        path = layout.data_path(huc8)
        try:
            payload = read_json(path)
        except FileNotFoundError as e:
            raise MissingDataFileError(
                f"No data file for HUC8 {huc8} at {path}; "
                "re-save the HUC or rebuild the metadata index"
            ) from e
        datafile = cls.from_payload(payload, source=path)
        logger.debug(f"Loaded HUC8 {huc8} with products {sorted(datafile.products)}")
        return datafile

    @classmethod
    def load_or_empty(cls, layout: StoreLayout, huc8: str) -> "HucDataFile":
        if not layout.has_data_file(huc8):
            return cls(huc8)
        return cls.load(layout, huc8)

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], source: Optional[Path] = None
    ) -> "HucDataFile":
        try:
            version = payload.get("format_version")
            if version != FORMAT_VERSION:
                raise PersistenceError(
                    f"Unsupported data file format version {version!r} in {source}"
                )
            products = {}
            for product, group in payload["products"].items():
                products[product] = ProductData(
                    data=table_to_frame(group["data"], DATA_COLUMNS),
                    site_info=table_to_frame(group["site_info"], SITE_COLUMNS),
                    variable_info=dict(group.get("variable_info") or {}),
                    statistic_info=dict(group.get("statistic_info") or {}),
                )
            return cls(payload["huc8"], products)
        except (KeyError, TypeError, AttributeError) as e:
            raise PersistenceError(f"Malformed data file {source}: {e}") from e

    def to_payload(self) -> Dict[str, Any]:
        products = {}
        for product in sorted(self.products):
            product_data = self.products[product]
            products[product] = {
                "site_info": frame_to_table(product_data.site_info),
                "variable_info": to_builtin(product_data.variable_info),
                "statistic_info": to_builtin(product_data.statistic_info),
                "data": frame_to_table(product_data.data),
            }
        return {
            "format_version": FORMAT_VERSION,
            "huc8": self.huc8,
            "products": products,
        }

    def save(self, layout: StoreLayout) -> Path:
        """Write this file under ``layout``, replacing any previous version."""
        path = layout.data_path(self.huc8)
        write_json_atomic(path, self.to_payload(), indent=layout.config.indent)
        return path

    def merged_with(self, fetch_result: Mapping[str, ProductData]) -> "HucDataFile":
        """
        A new file where each fetched product replaces its prior entry and
        products absent from ``fetch_result`` are kept as they are.
        """
        products = dict(self.products)
        for product, product_data in fetch_result.items():
            products[str(product)] = product_data
        return HucDataFile(self.huc8, products)

    def metadata_rows(self) -> List[Dict[str, Any]]:
        """Index rows for this HUC: one per site per product."""
        rows = []
        for product in sorted(self.products):
            product_data = self.products[product]
            variable = {
                f"{VARIABLE_PREFIX}{k}": to_builtin(v)
                for k, v in product_data.variable_info.items()
            }
            statistic = {
                f"{STATISTIC_PREFIX}{k}": to_builtin(v)
                for k, v in product_data.statistic_info.items()
            }
            site_table = frame_to_table(product_data.site_info)
            for values in site_table["data"]:
                row: Dict[str, Any] = dict(zip(site_table["columns"], values))
                row.update(variable)
                row.update(statistic)
                row["huc8"] = self.huc8
                row["product"] = product
                rows.append(row)
        return rows

    def get_data(
        self, product: str, site_nos: Optional[Iterable[str]] = None
    ) -> pd.DataFrame:
        """Observations for ``product``, optionally limited to some sites."""
        if product not in self.products:
            return pd.DataFrame(columns=DATA_COLUMNS)
        data = self.products[product].data
        if site_nos is not None:
            data = data[data[SITE_NO].isin([str(s) for s in site_nos])]
        return data.reset_index(drop=True)

    def site_numbers(self, product: Optional[str] = None) -> List[str]:
        products = [product] if product else sorted(self.products)
        sites: List[str] = []
        for name in products:
            if name in self.products:
                sites.extend(self.products[name].site_numbers())
        return list(dict.fromkeys(sites))

"""
Saving fetched watershed data into the store.

A save is a read-modify-write of one HUC data file followed by the metadata
index. The data file is written first; a stale marker in the store root
covers the window until the index write succeeds, so an interrupted save is
detectable and repaired by :func:`rebuild_index` (or by the next save).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

import numpy as np
import pandas as pd

from .datafile import HucDataFile, parse_timestamps
from .exceptions import InvalidLayoutError, MalformedFetchResultError, PersistenceError
from .index import MetadataIndex
from .layout import StoreLayout, as_layout, validate_huc8
from .models import (
    DATETIME,
    HUC_CD,
    REQUIRED_DATA_FIELDS,
    REQUIRED_SITE_FIELDS,
    SITE_NO,
    ProductData,
)

logger = logging.getLogger(__name__)


@dataclass
class SavedFiles:
    """Files written by one save."""

    huc8: str
    data_file: Path
    index_file: Path
    products: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[Path]:
        return [self.data_file, self.index_file]


class Fetcher(Protocol):
    """Anything that retrieves one HUC8's data as a fetch result."""

    def __call__(
        self, huc8: str, products: Optional[Sequence[str]] = None
    ) -> Mapping[str, Any]: ...


def _as_frame(value: Any, product: str, name: str) -> pd.DataFrame:
    if isinstance(value, pd.DataFrame):
        return value
    if value is None:
        raise MalformedFetchResultError(f"Product {product} has no {name}")
    try:
        return pd.DataFrame(value)
    except (ValueError, TypeError) as e:
        raise MalformedFetchResultError(
            f"Product {product} {name} is not tabular: {e}"
        ) from e


def coerce_product(product: str, entry: Any) -> ProductData:
    """
    Accept a ProductData or a mapping with ``data``, ``site_info``,
    ``variable_info`` and ``statistic_info`` keys.
    """
    if isinstance(entry, ProductData):
        data, site_info = entry.data, entry.site_info
        variable_info, statistic_info = entry.variable_info, entry.statistic_info
    elif isinstance(entry, Mapping):
        missing = [
            key
            for key in ("data", "site_info", "variable_info", "statistic_info")
            if key not in entry
        ]
        if missing:
            raise MalformedFetchResultError(
                f"Product {product} is missing entries: {missing}"
            )
        data, site_info = entry["data"], entry["site_info"]
        variable_info, statistic_info = entry["variable_info"], entry["statistic_info"]
    else:
        raise MalformedFetchResultError(
            f"Product {product} entry has unsupported type {type(entry).__name__}"
        )

    for name, info in (("variable_info", variable_info), ("statistic_info", statistic_info)):
        if not isinstance(info, Mapping):
            raise MalformedFetchResultError(
                f"Product {product} {name} must be a mapping, got {type(info).__name__}"
            )

    return ProductData(
        data=_as_frame(data, product, "data"),
        site_info=_as_frame(site_info, product, "site_info"),
        variable_info=dict(variable_info),
        statistic_info=dict(statistic_info),
    )


def _blank(series: pd.Series) -> pd.Series:
    return series.isna() | (series.astype(str).str.strip() == "")


def _infinite_columns(frame: pd.DataFrame) -> List[str]:
    numeric = frame.select_dtypes(include="number")
    return [str(c) for c in numeric.columns if np.isinf(numeric[c]).any()]


def validate_fetch_result(fetch_result: Mapping[str, Any]) -> Dict[str, ProductData]:
    """
    Check a fetch result before anything is written.

    Every product needs at least one site row, every site row needs a site
    number and a HUC8, all rows must share one HUC8, and every observation
    must belong to a listed site.

    Returns:
        The products coerced to ProductData.

    Raises:
        MalformedFetchResultError: On any missing or inconsistent metadata.
    """
    if not isinstance(fetch_result, Mapping) or not fetch_result:
        raise MalformedFetchResultError("Fetch result must be a non-empty mapping of products")

    products: Dict[str, ProductData] = {}
    for product, entry in fetch_result.items():
        product = str(product).strip()
        if not product:
            raise MalformedFetchResultError("Fetch result contains an empty product code")
        product_data = coerce_product(product, entry)

        site_info = product_data.site_info
        missing = [c for c in REQUIRED_SITE_FIELDS if c not in site_info.columns]
        if missing:
            raise MalformedFetchResultError(
                f"Site info for product {product} lacks required fields {missing}"
            )
        if site_info.empty:
            raise MalformedFetchResultError(f"Product {product} has no site info rows")
        for column in REQUIRED_SITE_FIELDS:
            blank = _blank(site_info[column])
            if blank.any():
                raise MalformedFetchResultError(
                    f"Site info for product {product} has {int(blank.sum())} rows "
                    f"without {column}"
                )

        data = product_data.data
        missing = [c for c in REQUIRED_DATA_FIELDS if c not in data.columns]
        if missing:
            raise MalformedFetchResultError(
                f"Observations for product {product} lack required fields {missing}"
            )
        try:
            parse_timestamps(data[DATETIME])
        except (ValueError, TypeError) as e:
            raise MalformedFetchResultError(
                f"Observations for product {product} have unparseable timestamps: {e}"
            ) from e
        for name, frame in (("observations", data), ("site info", site_info)):
            infinite = _infinite_columns(frame)
            if infinite:
                raise MalformedFetchResultError(
                    f"{name.capitalize()} for product {product} have infinite "
                    f"values in {infinite}"
                )
        known_sites = set(site_info[SITE_NO].astype(str).str.strip())
        unknown = sorted(set(data[SITE_NO].astype(str).str.strip()) - known_sites)
        if unknown:
            raise MalformedFetchResultError(
                f"Observations for product {product} reference sites without "
                f"site info: {unknown}"
            )
        products[product] = product_data

    hucs = set()
    for product_data in products.values():
        hucs.update(product_data.site_info[HUC_CD].astype(str).str.strip())
    if len(hucs) != 1:
        raise MalformedFetchResultError(
            f"Fetch result spans more than one HUC8: {sorted(hucs)}"
        )
    try:
        validate_huc8(next(iter(hucs)))
    except InvalidLayoutError as e:
        raise MalformedFetchResultError(str(e)) from e
    return products


def fetch_result_huc(fetch_result: Mapping[str, Any]) -> str:
    """The single HUC8 that all products of ``fetch_result`` belong to."""
    products = validate_fetch_result(fetch_result)
    first = next(iter(products.values()))
    return str(first.site_info[HUC_CD].iloc[0]).strip()


def save_huc(
    fetch_result: Mapping[str, Any], store: Union[str, Path, StoreLayout]
) -> SavedFiles:
    """
    Merge a fetch result into the store.

    Fetched products replace their previous entries in the HUC's data file;
    other products already stored for the HUC are kept. The HUC's index rows
    are then replaced by the rows of the written file.

    Args:
        fetch_result: Mapping of product code to ProductData (or equivalent dict).
        store: Store root path or StoreLayout.

    Returns:
        SavedFiles describing what was written.

    Raises:
        MalformedFetchResultError: If metadata needed by the index is missing.
        PersistenceError: If a store file cannot be read or written.
        InvalidLayoutError: If the store root cannot be used.
    """
    layout = as_layout(store)
    products = validate_fetch_result(fetch_result)
    huc8 = fetch_result_huc(products)

    existing = HucDataFile.load_or_empty(layout, huc8)
    merged = existing.merged_with(products)

    # An earlier interrupted save leaves the index untrustworthy
    rebuild = layout.is_stale()
    index = None if rebuild else MetadataIndex.load(layout)

    layout.mark_stale(huc8)
    try:
        data_file = merged.save(layout)
    except Exception:
        # The previous data file is untouched, so the index is still valid
        if not rebuild:
            layout.clear_stale()
        raise

    try:
        if index is None:
            logger.warning(f"Store {layout.root} was flagged stale; rebuilding index")
            index = MetadataIndex.build(
                HucDataFile.load(layout, h) for h in layout.list_hucs()
            )
        else:
            index = index.replace_huc(merged)
        index_file = index.save(layout)
    except PersistenceError as e:
        logger.error(
            f"Saved data for HUC8 {huc8} but failed to update the metadata index; "
            f"store is flagged for rebuild: {e}"
        )
        raise PersistenceError(
            f"Data file {data_file} was written but the metadata index update "
            f"failed; run rebuild_index() on {layout.root}: {e}"
        ) from e

    layout.clear_stale()
    logger.info(
        f"Saved HUC8 {huc8}: products {sorted(products)} "
        f"({sum(len(p.data) for p in products.values())} observations), "
        f"{len(index)} index rows total"
    )
    return SavedFiles(
        huc8=huc8,
        data_file=data_file,
        index_file=index_file,
        products=sorted(products),
    )


def rebuild_index(store: Union[str, Path, StoreLayout]) -> MetadataIndex:
    """Regenerate the metadata index from all HUC data files."""
    return MetadataIndex.rebuild(as_layout(store))


def fetch_and_save(
    fetcher: Fetcher,
    huc8: str,
    store: Union[str, Path, StoreLayout],
    products: Optional[Sequence[str]] = None,
) -> SavedFiles:
    """
    Fetch one HUC8 with ``fetcher`` and save the result.

    The fetcher is called exactly once; retries are the caller's concern and
    its exceptions propagate unchanged.

    Raises:
        MalformedFetchResultError: If the fetcher returns data for another HUC8.
    """
    validate_huc8(huc8)
    fetch_result = fetcher(huc8, products)
    fetched_huc = fetch_result_huc(fetch_result)
    if fetched_huc != huc8:
        raise MalformedFetchResultError(
            f"Fetcher returned data for HUC8 {fetched_huc}, expected {huc8}"
        )
    return save_huc(fetch_result, store)

"""
Read-only queries against a hucdb store.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .datafile import HucDataFile
from .exceptions import InvalidQueryError, UnknownSiteError
from .index import HUC8, PRODUCT, MetadataIndex
from .layout import StoreLayout, as_layout, validate_huc8
from .models import DATA_COLUMNS, SITE_NO, STATION_NM

logger = logging.getLogger(__name__)

StoreArg = Union[str, Path, StoreLayout]


def _load_index(store: StoreArg) -> MetadataIndex:
    return MetadataIndex.load(as_layout(store, create=False))


def query_site_info(
    fields: Optional[Sequence[str]], store: StoreArg
) -> pd.DataFrame:
    """
    Project ``fields`` from every row of the metadata index.

    Rows are one per (HUC8, product, site), so a site stored under two
    products appears twice.

    Args:
        fields: Column names to return, e.g. ``["site_no", "station_nm"]``.
            None returns every column.
        store: Store root path or StoreLayout.

    Raises:
        InvalidQueryError: If a requested field is not an index column.
    """
    index = _load_index(store)
    frame = index.frame
    if fields is None:
        return frame.copy()
    if isinstance(fields, str):
        fields = [fields]
    fields = list(fields)
    unknown = [f for f in fields if f not in frame.columns]
    if unknown:
        raise InvalidQueryError(
            f"Unknown metadata fields {unknown}. Available: {list(frame.columns)}"
        )
    return frame[fields].reset_index(drop=True)


def query_site_name(identifier_or_name: str, store: StoreArg) -> str:
    """
    Translate a site number to its station name, or a station name to its
    site number.

    Site numbers are matched first. When several index rows disagree, the
    first row in index order (sorted by HUC8, product, site number) wins and
    a warning is logged.

    Raises:
        UnknownSiteError: If neither a site number nor a name matches.
    """
    index = _load_index(store)
    key = str(identifier_or_name).strip()

    rows = index.rows_for_site(key)
    if rows:
        names = [r[STATION_NM] for r in rows if r.get(STATION_NM) is not None]
        if not names:
            raise UnknownSiteError(f"Site {key} has no station name in the index")
        _warn_if_ambiguous(key, names)
        return names[0]

    rows = index.rows_for_name(key)
    if rows:
        site_nos = [r[SITE_NO] for r in rows]
        _warn_if_ambiguous(key, site_nos)
        return site_nos[0]

    raise UnknownSiteError(f"No site number or station name {key!r} in the index")


def _warn_if_ambiguous(key: str, matches: List[str]) -> None:
    distinct = list(dict.fromkeys(matches))
    if len(distinct) > 1:
        logger.warning(
            f"{key!r} maps to {len(distinct)} different values {distinct}; "
            f"using {distinct[0]!r}"
        )


def _result_columns(frames: Iterable[pd.DataFrame]) -> List[str]:
    columns = list(DATA_COLUMNS)
    for frame in frames:
        columns.extend(c for c in frame.columns if c not in columns)
    for extra in (HUC8, PRODUCT):
        if extra in columns:
            columns.remove(extra)
    return columns + [HUC8, PRODUCT]


def query_site_data(
    site_nos: Union[str, Sequence[str]], product: str, store: StoreArg
) -> pd.DataFrame:
    """
    Observations of ``product`` for one or more sites.

    Each site's HUC8 is looked up in the metadata index, each needed data
    file is read once, and the per-site results are concatenated in the order
    the sites were requested. The ``huc8`` and ``product`` columns record
    where each row came from.

    Raises:
        UnknownSiteError: If any site number is not in the index.
        MissingDataFileError: If the index points at a HUC8 without a data file.
    """
    layout = as_layout(store, create=False)
    index = MetadataIndex.load(layout)
    if isinstance(site_nos, str):
        site_nos = [site_nos]
    requested = list(dict.fromkeys(str(s).strip() for s in site_nos))

    site_hucs: Dict[str, str] = {}
    for site_no in requested:
        rows = index.rows_for_site(site_no)
        if not rows:
            raise UnknownSiteError(f"Site {site_no} is not in the metadata index")
        for_product = [r for r in rows if r[PRODUCT] == product]
        site_hucs[site_no] = (for_product or rows)[0][HUC8]

    datafiles: Dict[str, HucDataFile] = {}
    frames = []
    for site_no in requested:
        huc8 = site_hucs[site_no]
        if huc8 not in datafiles:
            datafiles[huc8] = HucDataFile.load(layout, huc8)
        data = datafiles[huc8].get_data(product, [site_no])
        if data.empty:
            logger.debug(f"No {product} observations stored for site {site_no}")
            continue
        data = data.assign(**{HUC8: huc8, PRODUCT: product})
        frames.append(data)

    columns = _result_columns(frames)
    if not frames:
        return pd.DataFrame(columns=columns)
    return pd.concat(frames, ignore_index=True)[columns]


def query_huc_data(
    huc8: str, store: StoreArg, product: Optional[str] = None
) -> pd.DataFrame:
    """All observations stored for one HUC8, optionally for one product only."""
    layout = as_layout(store, create=False)
    datafile = HucDataFile.load(layout, validate_huc8(huc8))
    products = [product] if product is not None else sorted(datafile.products)
    frames = [
        datafile.get_data(p).assign(**{HUC8: huc8, PRODUCT: p})
        for p in products
        if p in datafile.products
    ]
    frames = [f for f in frames if not f.empty]
    columns = _result_columns(frames)
    if not frames:
        return pd.DataFrame(columns=columns)
    return pd.concat(frames, ignore_index=True)[columns]


def query_sites_in_huc(huc8: str, store: StoreArg) -> pd.DataFrame:
    """Metadata index rows for one HUC8."""
    frame = _load_index(store).frame
    validate_huc8(huc8)
    return frame[frame[HUC8] == huc8].reset_index(drop=True)


def list_products(store: StoreArg, huc8: Optional[str] = None) -> List[str]:
    """Product codes present in the index, for the whole store or one HUC8."""
    return _load_index(store).products(huc8)

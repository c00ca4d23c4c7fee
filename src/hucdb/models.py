"""
Data models for watershed fetch results and their metadata.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

# NWIS column names shared by fetch results, data files and the index
SITE_NO = "site_no"
STATION_NM = "station_nm"
HUC_CD = "huc_cd"
DATETIME = "datetime"
VALUE = "value"
QUALIFIERS = "qualifiers"

SITE_COLUMNS = [SITE_NO, STATION_NM, "dec_lat_va", "dec_long_va", HUC_CD]
DATA_COLUMNS = [SITE_NO, DATETIME, VALUE, QUALIFIERS]
REQUIRED_SITE_FIELDS = [SITE_NO, HUC_CD]
REQUIRED_DATA_FIELDS = [SITE_NO, DATETIME]


@dataclass
class SiteInfo:
    """Descriptor of one observation site."""

    site_no: str
    station_nm: str
    dec_lat_va: Optional[float]
    dec_long_va: Optional[float]
    huc_cd: str
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> Dict[str, Any]:
        row = {k: v for k, v in asdict(self).items() if k != "extra_fields"}
        row.update(self.extra_fields)
        return row


@dataclass
class VariableInfo:
    """The measured quantity of one product, e.g. discharge in ft3/s."""

    code: str
    name: str
    unit: Optional[str] = None
    no_data_value: Optional[float] = None
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if k != "extra_fields"}
        data.update(self.extra_fields)
        return data


@dataclass
class StatisticInfo:
    """The statistic applied to a product's values, e.g. daily mean."""

    code: str
    name: str
    extra_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if k != "extra_fields"}
        data.update(self.extra_fields)
        return data


@dataclass
class ObservationRecord:
    """One timestamped value for a site and product."""

    site_no: str
    datetime: datetime
    value: Optional[float]
    qualifiers: Optional[str] = None


@dataclass
class ProductData:
    """
    Observations and metadata triple for one product within one HUC8.

    ``data`` holds one row per observation with at least ``site_no`` and
    ``datetime``; ``site_info`` holds one row per site with at least
    ``site_no`` and ``huc_cd``.
    """

    data: pd.DataFrame
    site_info: pd.DataFrame
    variable_info: Dict[str, Any] = field(default_factory=dict)
    statistic_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        records: List[ObservationRecord],
        sites: List[SiteInfo],
        variable: Optional[VariableInfo] = None,
        statistic: Optional[StatisticInfo] = None,
    ) -> "ProductData":
        """Build a product slice from dataclass records."""
        data = pd.DataFrame([asdict(r) for r in records], columns=DATA_COLUMNS)
        site_info = pd.DataFrame([s.to_row() for s in sites])
        if site_info.empty:
            site_info = pd.DataFrame(columns=SITE_COLUMNS)
        return cls(
            data=data,
            site_info=site_info,
            variable_info=variable.to_dict() if variable else {},
            statistic_info=statistic.to_dict() if statistic else {},
        )

    def site_numbers(self) -> List[str]:
        return [str(s) for s in self.site_info[SITE_NO].tolist()]


# A fetch result maps product codes (e.g. "00060") to their slice
FetchResult = Mapping[str, ProductData]

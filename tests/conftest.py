"""
Shared fixtures for hucdb tests.
"""

from datetime import datetime

import pytest

from hucdb.models import (
    ObservationRecord,
    ProductData,
    SiteInfo,
    StatisticInfo,
    VariableInfo,
)

FOURMILE_HUC = "10190005"
FOURMILE_SITE = "06727500"
FOURMILE_NAME = "FOURMILE CREEK AT ORODELL, CO"

BOULDER_SITE = "06730200"
BOULDER_NAME = "BOULDER CREEK AT NORTH 75TH ST. NEAR BOULDER, CO"

OTHER_HUC = "10190006"
OTHER_SITE = "06752260"
OTHER_NAME = "CACHE LA POUDRE RIVER AT FORT COLLINS, CO"

DISCHARGE = "00060"
GAGE_HEIGHT = "00065"


def make_site(site_no, name, huc8, lat=40.0, lon=-105.3):
    return SiteInfo(
        site_no=site_no,
        station_nm=name,
        dec_lat_va=lat,
        dec_long_va=lon,
        huc_cd=huc8,
        extra_fields={"agency_cd": "USGS", "site_tp_cd": "ST"},
    )


def make_records(site_no, values, start_day=1):
    return [
        ObservationRecord(
            site_no=site_no,
            datetime=datetime(2020, 1, start_day + i),
            value=value,
            qualifiers="A",
        )
        for i, value in enumerate(values)
    ]


def make_product(sites, records, product=DISCHARGE):
    variable = VariableInfo(
        code=product,
        name="Streamflow, ft3/s" if product == DISCHARGE else "Gage height, ft",
        unit="ft3/s" if product == DISCHARGE else "ft",
        no_data_value=-999999.0,
    )
    statistic = StatisticInfo(code="00003", name="Mean")
    return ProductData.from_records(records, sites, variable, statistic)


@pytest.fixture
def store_root(tmp_path):
    """A store root that does not exist yet."""
    return tmp_path / "store"


@pytest.fixture
def fourmile_result():
    """One site, three daily discharge values, in HUC8 10190005."""
    site = make_site(FOURMILE_SITE, FOURMILE_NAME, FOURMILE_HUC)
    return {
        DISCHARGE: make_product([site], make_records(FOURMILE_SITE, [1.2, 1.5, 1.1]))
    }


@pytest.fixture
def two_site_result():
    """Two sites in HUC8 10190005 with discharge."""
    sites = [
        make_site(FOURMILE_SITE, FOURMILE_NAME, FOURMILE_HUC),
        make_site(BOULDER_SITE, BOULDER_NAME, FOURMILE_HUC, lat=40.05, lon=-105.18),
    ]
    records = make_records(FOURMILE_SITE, [1.2, 1.5, 1.1]) + make_records(
        BOULDER_SITE, [30.0, 31.5]
    )
    return {DISCHARGE: make_product(sites, records)}


@pytest.fixture
def gage_height_result():
    """Gage height for the Fourmile site only."""
    site = make_site(FOURMILE_SITE, FOURMILE_NAME, FOURMILE_HUC)
    return {
        GAGE_HEIGHT: make_product(
            [site], make_records(FOURMILE_SITE, [2.01, 2.05]), product=GAGE_HEIGHT
        )
    }


@pytest.fixture
def other_huc_result():
    """One site in HUC8 10190006."""
    site = make_site(OTHER_SITE, OTHER_NAME, OTHER_HUC, lat=40.59, lon=-105.07)
    return {
        DISCHARGE: make_product([site], make_records(OTHER_SITE, [55.0, 56.0, 57.0, 58.0]))
    }

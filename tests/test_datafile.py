"""
Tests for per-HUC data files.
"""

import json
from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from conftest import (
    DISCHARGE,
    FOURMILE_HUC,
    FOURMILE_NAME,
    FOURMILE_SITE,
    GAGE_HEIGHT,
)
from hucdb.datafile import HucDataFile, normalize_data, parse_timestamps, to_builtin
from hucdb.exceptions import MissingDataFileError, PersistenceError
from hucdb.layout import StoreLayout


class TestNormalizeData:
    """Test canonical observation tables."""

    def test_sorts_and_deduplicates(self):
        """Test sorting and duplicate timestamp removal."""
        data = pd.DataFrame(
            {
                "site_no": ["2", "1", "1", "1"],
                "datetime": ["2020-01-02", "2020-01-03", "2020-01-01", "2020-01-03"],
                "value": [5.0, 1.0, 2.0, 3.0],
            }
        )
        result = normalize_data(data)
        assert result["site_no"].tolist() == ["1", "1", "2"]
        assert result["value"].tolist() == [2.0, 3.0, 5.0]
        assert list(result.columns[:4]) == ["site_no", "datetime", "value", "qualifiers"]

    def test_strips_site_numbers(self):
        """Test whitespace is stripped from site numbers."""
        data = pd.DataFrame({"site_no": [" 06727500 "], "datetime": ["2020-01-01"]})
        assert normalize_data(data)["site_no"].tolist() == ["06727500"]

    def test_integer_site_numbers_become_strings(self):
        """Test integer site numbers are stored as strings."""
        data = pd.DataFrame({"site_no": [6727500], "datetime": ["2020-01-01"]})
        assert normalize_data(data)["site_no"].tolist() == ["6727500"]


class TestParseTimestamps:
    """Test observation timestamp parsing."""

    def test_single_offset_kept(self):
        """Test a single UTC offset is preserved."""
        parsed = parse_timestamps(
            pd.Series(["2020-01-01T00:00:00-07:00", "2020-01-02T00:00:00-07:00"])
        )
        assert parsed.iloc[0].utcoffset().total_seconds() == -7 * 3600

    def test_mixed_offsets_become_utc(self):
        """Test mixed UTC offsets are converted to UTC."""
        parsed = parse_timestamps(
            pd.Series(["2020-11-01T01:30:00-06:00", "2020-11-01T01:15:00-07:00"])
        )
        assert parsed.tolist() == [
            pd.Timestamp("2020-11-01T07:30:00Z"),
            pd.Timestamp("2020-11-01T08:15:00Z"),
        ]

    def test_invalid_strings(self):
        """Test unparseable strings raise ValueError."""
        with pytest.raises(ValueError):
            parse_timestamps(pd.Series(["not a date"]))


class TestToBuiltin:
    """Test JSON value conversion."""

    def test_scalars(self):
        """Test numpy and pandas scalar conversion."""
        assert to_builtin(np.int64(3)) == 3
        assert isinstance(to_builtin(np.float64(1.5)), float)
        assert to_builtin(float("nan")) is None
        assert to_builtin(pd.NaT) is None
        assert to_builtin(pd.Timestamp("2020-01-01")) == "2020-01-01T00:00:00"
        assert to_builtin({"a": np.int32(1)}) == {"a": 1}


class TestHucDataFile:
    """Test HucDataFile persistence and merging."""

    def test_save_and_load(self, store_root, fourmile_result):
        """Test writing and reading a data file."""
        layout = StoreLayout(store_root)
        datafile = HucDataFile(FOURMILE_HUC, fourmile_result)
        path = datafile.save(layout)
        assert path == layout.data_path(FOURMILE_HUC)

        loaded = HucDataFile.load(layout, FOURMILE_HUC)
        assert loaded.huc8 == FOURMILE_HUC
        assert list(loaded.products) == [DISCHARGE]
        data = loaded.get_data(DISCHARGE)
        assert data["site_no"].tolist() == [FOURMILE_SITE] * 3
        assert data["value"].tolist() == [1.2, 1.5, 1.1]
        assert data["datetime"].iloc[0] == pd.Timestamp(datetime(2020, 1, 1))
        assert loaded.products[DISCHARGE].variable_info["unit"] == "ft3/s"

    def test_file_layout_is_nested(self, store_root, fourmile_result):
        """Test the product-grouped JSON layout."""
        layout = StoreLayout(store_root)
        HucDataFile(FOURMILE_HUC, fourmile_result).save(layout)
        payload = json.loads(layout.data_path(FOURMILE_HUC).read_text())
        group = payload["products"][DISCHARGE]
        assert set(group) == {"site_info", "variable_info", "statistic_info", "data"}
        assert group["site_info"]["columns"][:2] == ["site_no", "station_nm"]
        assert group["data"]["data"][0][:2] == [FOURMILE_SITE, "2020-01-01T00:00:00"]

    def test_leading_zeros_survive(self, store_root, fourmile_result):
        """Test site numbers keep leading zeros."""
        layout = StoreLayout(store_root)
        HucDataFile(FOURMILE_HUC, fourmile_result).save(layout)
        loaded = HucDataFile.load(layout, FOURMILE_HUC)
        assert loaded.site_numbers() == ["06727500"]

    def test_load_missing(self, store_root):
        """Test loading a HUC without a data file."""
        layout = StoreLayout(store_root)
        with pytest.raises(MissingDataFileError, match=FOURMILE_HUC):
            HucDataFile.load(layout, FOURMILE_HUC)
        assert HucDataFile.load_or_empty(layout, FOURMILE_HUC).products == {}

    def test_load_corrupt(self, store_root):
        """Test loading a data file with missing keys."""
        layout = StoreLayout(store_root)
        layout.data_path(FOURMILE_HUC).write_text('{"format_version": 1}')
        with pytest.raises(PersistenceError, match="Malformed data file"):
            HucDataFile.load(layout, FOURMILE_HUC)

    def test_load_unknown_version(self, store_root):
        """Test loading an unsupported format version."""
        layout = StoreLayout(store_root)
        layout.data_path(FOURMILE_HUC).write_text(
            '{"format_version": 99, "huc8": "10190005", "products": {}}'
        )
        with pytest.raises(PersistenceError, match="format version"):
            HucDataFile.load(layout, FOURMILE_HUC)

    def test_merge_replaces_only_fetched_products(
        self, fourmile_result, gage_height_result
    ):
        """Test product-level merge semantics."""
        datafile = HucDataFile(FOURMILE_HUC, fourmile_result)
        merged = datafile.merged_with(gage_height_result)
        assert sorted(merged.products) == [DISCHARGE, GAGE_HEIGHT]

        replacement = {
            DISCHARGE: gage_height_result[GAGE_HEIGHT]
        }
        replaced = merged.merged_with(replacement)
        assert len(replaced.get_data(DISCHARGE)) == 2
        assert len(replaced.get_data(GAGE_HEIGHT)) == 2
        assert len(datafile.get_data(DISCHARGE)) == 3

    def test_metadata_rows(self, fourmile_result, gage_height_result):
        """Test flattening metadata into index rows."""
        datafile = HucDataFile(FOURMILE_HUC, fourmile_result).merged_with(
            gage_height_result
        )
        rows = datafile.metadata_rows()
        assert [(r["huc8"], r["product"], r["site_no"]) for r in rows] == [
            (FOURMILE_HUC, DISCHARGE, FOURMILE_SITE),
            (FOURMILE_HUC, GAGE_HEIGHT, FOURMILE_SITE),
        ]
        assert rows[0]["station_nm"] == FOURMILE_NAME
        assert rows[0]["variable_code"] == DISCHARGE
        assert rows[0]["statistic_code"] == "00003"
        assert rows[0]["agency_cd"] == "USGS"

    def test_get_data_unknown_product(self, fourmile_result):
        """Test data lookup for absent products and sites."""
        datafile = HucDataFile(FOURMILE_HUC, fourmile_result)
        assert datafile.get_data("99999").empty
        assert datafile.get_data(DISCHARGE, ["00000000"]).empty

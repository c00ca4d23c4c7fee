"""
Tests for the metadata index and consistency checks.
"""

import json

import pytest

from conftest import (
    DISCHARGE,
    FOURMILE_HUC,
    FOURMILE_SITE,
    GAGE_HEIGHT,
    OTHER_HUC,
    OTHER_SITE,
)
from hucdb.consistency import check_consistency
from hucdb.datafile import HucDataFile
from hucdb.exceptions import PersistenceError
from hucdb.index import MetadataIndex
from hucdb.layout import StoreLayout
from hucdb.save import save_huc


class TestMetadataIndex:
    """Test building and updating the index."""

    def test_empty_when_missing(self, store_root):
        """Test an absent index loads as empty."""
        index = MetadataIndex.load(StoreLayout(store_root))
        assert index.empty
        assert list(index.frame.columns[:3]) == ["huc8", "product", "site_no"]

    def test_build_sorted_rows(self, fourmile_result, gage_height_result, other_huc_result):
        """Test index rows are sorted by HUC8, product and site."""
        files = [
            HucDataFile(OTHER_HUC, other_huc_result),
            HucDataFile(FOURMILE_HUC, fourmile_result).merged_with(gage_height_result),
        ]
        index = MetadataIndex.build(files)
        assert index.keys() == [
            (FOURMILE_HUC, DISCHARGE, FOURMILE_SITE),
            (FOURMILE_HUC, GAGE_HEIGHT, FOURMILE_SITE),
            (OTHER_HUC, DISCHARGE, OTHER_SITE),
        ]
        assert index.hucs() == [FOURMILE_HUC, OTHER_HUC]
        assert index.products(OTHER_HUC) == [DISCHARGE]

    def test_replace_huc_matches_full_build(
        self, fourmile_result, gage_height_result, other_huc_result
    ):
        """Test incremental update equals a full rebuild."""
        fourmile = HucDataFile(FOURMILE_HUC, fourmile_result)
        other = HucDataFile(OTHER_HUC, other_huc_result)
        updated = fourmile.merged_with(gage_height_result)

        incremental = MetadataIndex.build([fourmile, other]).replace_huc(updated)
        rebuilt = MetadataIndex.build([other, updated])
        assert incremental.rows() == rebuilt.rows()
        assert incremental.columns == rebuilt.columns

    def test_drop_huc(self, fourmile_result, other_huc_result):
        """Test removing the rows of one HUC8."""
        index = MetadataIndex.build(
            [HucDataFile(FOURMILE_HUC, fourmile_result), HucDataFile(OTHER_HUC, other_huc_result)]
        )
        assert index.drop_huc(FOURMILE_HUC).hucs() == [OTHER_HUC]

    def test_save_and_load(self, store_root, fourmile_result):
        """Test writing and reading the index."""
        layout = StoreLayout(store_root)
        index = MetadataIndex.build([HucDataFile(FOURMILE_HUC, fourmile_result)])
        index.save(layout)
        loaded = MetadataIndex.load(layout)
        assert loaded.rows() == index.rows()
        assert loaded.huc_for_site(FOURMILE_SITE) == FOURMILE_HUC
        assert loaded.huc_for_site("nope") is None

    def test_corrupt_index(self, store_root):
        """Test loading an index with missing keys."""
        layout = StoreLayout(store_root)
        layout.index_path.write_text(json.dumps({"format_version": 1}))
        with pytest.raises(PersistenceError, match="Malformed metadata index"):
            MetadataIndex.load(layout)

    def test_rebuild_from_files(self, store_root, fourmile_result, other_huc_result):
        """Test rebuilding the index from data files."""
        layout = StoreLayout(store_root)
        HucDataFile(FOURMILE_HUC, fourmile_result).save(layout)
        HucDataFile(OTHER_HUC, other_huc_result).save(layout)
        layout.mark_stale(OTHER_HUC)

        index = MetadataIndex.rebuild(layout)
        assert index.hucs() == [FOURMILE_HUC, OTHER_HUC]
        assert not layout.is_stale()
        assert MetadataIndex.load(layout).rows() == index.rows()


class TestConsistency:
    """Test the index/data-file consistency report."""

    def test_consistent_after_saves(self, store_root, fourmile_result, other_huc_result):
        """Test a store is consistent after saves."""
        save_huc(fourmile_result, store_root)
        save_huc(other_huc_result, store_root)
        report = check_consistency(store_root)
        assert report.is_consistent(), str(report)

    def test_detects_missing_file(self, store_root, fourmile_result, other_huc_result):
        """Test detection of index rows without a data file."""
        save_huc(fourmile_result, store_root)
        save_huc(other_huc_result, store_root)
        StoreLayout(store_root).data_path(OTHER_HUC).unlink()

        report = check_consistency(store_root)
        assert not report.is_consistent()
        assert report.missing_files == [OTHER_HUC]
        assert report.orphan_rows == [(OTHER_HUC, DISCHARGE, OTHER_SITE)]
        assert report.unindexed_rows == []

    def test_detects_unindexed_file(self, store_root, fourmile_result, other_huc_result):
        """Test detection of data files missing from the index."""
        save_huc(fourmile_result, store_root)
        layout = StoreLayout(store_root)
        HucDataFile(OTHER_HUC, other_huc_result).save(layout)

        report = check_consistency(store_root)
        assert report.unindexed_rows == [(OTHER_HUC, DISCHARGE, OTHER_SITE)]
        assert report.orphan_rows == []

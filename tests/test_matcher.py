"""Tests for discovery/matcher.py -- folder name parsing and share scans."""

from datetime import datetime
from pathlib import Path

import pytest

from artifact_relay.discovery.matcher import (
    dated_folder_name,
    lookup_dated,
    parse_candidate,
    scan_directory,
)
from artifact_relay.models import SENTINEL_TIMESTAMP


class TestParseCandidate:
    def test_versioned_name(self):
        c = parse_candidate(Path("/share/2026_02_11_03_34(1.3.7.P18)"))
        assert c.version == "1.3.7.P18"
        assert c.timestamp == datetime(2026, 2, 11, 3, 34)
        assert c.name == "2026_02_11_03_34(1.3.7.P18)"
        assert c.parsed is True

    def test_version_with_spaces_and_parens(self):
        c = parse_candidate(Path("2026_01_01_00_00(Release (beta))"))
        assert c.version == "Release (beta)"

    @pytest.mark.parametrize(
        "name",
        [
            "build-latest",
            "2026_02_11_03_34",
            "2026_02_11_03_34()",
            "26_02_11_03_34(1.0)",
            "2026_02_11_03_34(1.0).zip",
        ],
    )
    def test_non_matching_names(self, name):
        c = parse_candidate(Path(name))
        assert c.version == ""
        assert c.timestamp == SENTINEL_TIMESTAMP
        assert c.parsed is False

    def test_impossible_date(self):
        c = parse_candidate(Path("2026_02_30_10_00(1.0)"))
        assert c.version == ""
        assert c.timestamp == SENTINEL_TIMESTAMP

    def test_invalid_hour(self):
        c = parse_candidate(Path("2026_02_11_25_00(1.0)"))
        assert c.parsed is False


class TestScanDirectory:
    def test_lists_directories_only(self, tmp_path):
        (tmp_path / "2026_02_11_03_34(1.0)").mkdir()
        (tmp_path / "notes").mkdir()
        (tmp_path / "readme.txt").write_text("x")
        candidates = scan_directory(tmp_path)
        assert [c.name for c in candidates] == ["2026_02_11_03_34(1.0)", "notes"]

    def test_unparseable_entries_included(self, tmp_path):
        (tmp_path / "junk").mkdir()
        candidates = scan_directory(tmp_path)
        assert len(candidates) == 1
        assert candidates[0].parsed is False

    def test_sorted_by_name(self, tmp_path):
        for name in ["c", "a", "b"]:
            (tmp_path / name).mkdir()
        assert [c.name for c in scan_directory(tmp_path)] == ["a", "b", "c"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(OSError):
            scan_directory(tmp_path / "missing")


class TestLookupDated:
    NOW = datetime(2026, 2, 11, 14, 30)

    def test_folder_name_format(self):
        assert dated_folder_name("%y%m%d", self.NOW) == "260211"
        assert dated_folder_name("%Y-%m-%d", self.NOW) == "2026-02-11"

    def test_found(self, tmp_path):
        (tmp_path / "260211").mkdir()
        c = lookup_dated(tmp_path, "%y%m%d", self.NOW)
        assert c is not None
        assert c.name == "260211"
        assert c.path == tmp_path / "260211"
        assert c.timestamp == datetime(2026, 2, 11)

    def test_absent_returns_none(self, tmp_path):
        (tmp_path / "260210").mkdir()
        assert lookup_dated(tmp_path, "%y%m%d", self.NOW) is None

    def test_file_with_date_name_not_a_candidate(self, tmp_path):
        (tmp_path / "260211").write_text("not a folder")
        assert lookup_dated(tmp_path, "%y%m%d", self.NOW) is None

    def test_unreachable_share_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            lookup_dated(tmp_path / "offline", "%y%m%d", self.NOW)

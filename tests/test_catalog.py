"""Tests for the on-disk firmware catalog."""

import pytest

from fast_pinball_flasher.catalog import (
    FirmwareCatalog,
    FirmwareNotFound,
    parse_firmware_filename,
)
from fast_pinball_flasher.download import FirmwareDownloadError


def _touch(path, data=b":00\r"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


class TestParseFirmwareFilename:

    def test_board_type_with_dashes(self):
        assert parse_firmware_filename("FP-EXP-0091_EXP_firmware_v_0_48") == ("FP-EXP-0091", "EXP", 0, 48)

    def test_board_type_with_underscores(self):
        assert parse_firmware_filename("FP_CPU_2000_NET_firmware_v_2_28") == ("FP_CPU_2000", "NET", 2, 28)

    @pytest.mark.parametrize("stem", [
        "FP-EXP-0091_EXP_v_0_48",
        "EXP_firmware_v_0_48",
        "FP-EXP-0091_EXP_firmware_v_0",
        "FP-EXP-0091_EXP_firmware_v_0_48_1",
        "FP-EXP-0091_EXP_firmware_v_a_48",
    ])
    def test_rejects(self, stem):
        assert parse_firmware_filename(stem) is None


class TestFirmwareCatalog:

    def test_keys_and_canonical_versions(self, tmp_path):
        """Minor versions are zero-padded; paths are absolute."""
        p1 = _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_5.txt")
        p2 = _touch(tmp_path / "EXP" / "A_EXP_firmware_v_2_0.txt")

        catalog = FirmwareCatalog(tmp_path)
        assert catalog.catalog()["A_EXP"] == {
            "1.05": str(p1.resolve()),
            "2.00": str(p2.resolve()),
        }

    def test_ignores_non_firmware_files(self, tmp_path):
        _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_5.txt")
        _touch(tmp_path / "EXP" / "README.md")
        _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_6.hex")
        _touch(tmp_path / "EXP" / "notes.txt")
        _touch(tmp_path / "top_level_EXP_firmware_v_1_0.txt")

        catalog = FirmwareCatalog(tmp_path)
        assert catalog.keys() == ["A_EXP"]
        assert catalog.versions("A_EXP") == ["1.05"]

    def test_suffix_case_insensitive(self, tmp_path):
        _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_5.TXT")
        assert FirmwareCatalog(tmp_path).versions("A_EXP") == ["1.05"]

    def test_duplicate_version_first_family_wins(self, tmp_path):
        """Same key and version in two families: the first family in sorted order wins."""
        first = _touch(tmp_path / "A_family" / "X_EXP_firmware_v_1_5.txt")
        _touch(tmp_path / "B_family" / "X_EXP_firmware_v_1_05.txt")

        catalog = FirmwareCatalog(tmp_path)
        assert catalog.catalog()["X_EXP"] == {"1.05": str(first.resolve())}

    def test_versions_numeric_order(self, firmware_tree):
        catalog = FirmwareCatalog(firmware_tree)
        assert catalog.versions("FP-CPU-2000_NET") == ["2.06", "2.28"]
        assert catalog.versions("missing") == []

    def test_lookup_normalizes(self, firmware_tree):
        catalog = FirmwareCatalog(firmware_tree)
        path = catalog.lookup("FP-CPU-2000_NET", "2.6")
        assert path.endswith("FP-CPU-2000_NET_firmware_v_2_6.txt")

    def test_lookup_miss_reports_available(self, firmware_tree):
        catalog = FirmwareCatalog(firmware_tree)
        with pytest.raises(FirmwareNotFound) as exc_info:
            catalog.lookup("FP-EXP-0091_EXP", "0.49")

        err = exc_info.value
        assert err.key == "FP-EXP-0091_EXP"
        assert err.version == "0.49"
        assert err.available == ["0.48", "0.50"]
        assert isinstance(err, LookupError)

    def test_missing_directory_gives_empty_catalog(self, tmp_path):
        catalog = FirmwareCatalog(tmp_path / "nope")
        assert catalog.catalog() == {}
        assert not catalog.has_key("A_EXP")

    def test_built_once(self, tmp_path):
        """Files added after the first scan are not seen by the same instance."""
        _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_5.txt")
        catalog = FirmwareCatalog(tmp_path)
        assert catalog.versions("A_EXP") == ["1.05"]

        _touch(tmp_path / "EXP" / "A_EXP_firmware_v_1_6.txt")
        assert catalog.versions("A_EXP") == ["1.05"]
        assert FirmwareCatalog(tmp_path).versions("A_EXP") == ["1.05", "1.06"]


class TestCatalogDownload:

    def test_empty_directory_downloads_once(self, tmp_path):
        base = tmp_path / "firmware"
        calls = []

        def downloader(target):
            calls.append(target)
            _touch(target / "EXP" / "A_EXP_firmware_v_1_5.txt")

        catalog = FirmwareCatalog(base, downloader=downloader)
        assert catalog.versions("A_EXP") == ["1.05"]
        catalog.catalog()
        catalog.lookup("A_EXP", "1.5")
        assert calls == [base]

    def test_populated_directory_skips_download(self, firmware_tree):
        calls = []
        FirmwareCatalog(firmware_tree, downloader=calls.append).catalog()
        assert calls == []

    def test_download_failure_leaves_empty_catalog(self, tmp_path):
        def downloader(target):
            raise FirmwareDownloadError("offline")

        catalog = FirmwareCatalog(tmp_path / "firmware", downloader=downloader)
        assert catalog.catalog() == {}

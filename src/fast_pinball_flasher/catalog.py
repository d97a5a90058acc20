"""
Firmware catalog.

Maps ``{BoardType}_{Protocol}`` keys to the firmware versions found on disk.
The tree is laid out by the firmware archive:

    <base>/<board family>/<BoardType>_<Protocol>_firmware_v_<major>_<minor>.txt

The scan runs once per catalog instance; if the base directory is missing or
empty, the downloader is invoked once first. Versions are keyed by their
canonical ``{major}.{minor:02d}`` form.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from fast_pinball_flasher.core.parsing import (
    format_version,
    is_unsigned_int,
    normalize_version,
    sort_versions,
)
from fast_pinball_flasher.download import FirmwareDownloadError

logger = logging.getLogger(__name__)

DEFAULT_FIRMWARE_DIR = Path.home() / ".fast" / "firmware"
FIRMWARE_SUFFIX = ".txt"
VERSION_MARKER = "_firmware_v_"

Downloader = Callable[[Path], object]


class FirmwareNotFound(LookupError):
    """No firmware file for a catalog key / version pair."""

    def __init__(self, key: str, version: str, available: List[str]):
        self.key = key
        self.version = version
        self.available = available
        super().__init__(
            f"Firmware not found for key '{key}' version '{version}'. "
            f"Available: {available if available else 'none'}"
        )


def parse_firmware_filename(stem: str) -> Optional[Tuple[str, str, int, int]]:
    """
    Parse a firmware file stem.

    Expects ``{BoardType}_{Protocol}_firmware_v_{major}_{minor}``; board type
    may itself contain dashes and underscores, the protocol is the last
    underscore-separated part before the version marker.

    Returns:
        (board_type, protocol, major, minor), or None if the stem does not match.
    """
    prefix, marker, version_part = stem.partition(VERSION_MARKER)
    if not marker:
        return None
    board_type, sep, protocol = prefix.rpartition("_")
    if not sep or not board_type or not protocol:
        return None

    pieces = version_part.split("_")
    if len(pieces) != 2 or not is_unsigned_int(pieces[0]) or not is_unsigned_int(pieces[1]):
        return None
    return board_type, protocol, int(pieces[0]), int(pieces[1])


def _is_empty_dir(path: Path) -> bool:
    try:
        return next(path.iterdir(), None) is None
    except OSError:
        return True


class FirmwareCatalog:
    """
    Lazily built map of available firmware.

    Construct one per process and pass it to the channels that need lookups.

    Example:
        catalog = FirmwareCatalog()
        path = catalog.lookup("FP-EXP-0091_EXP", "0.48")
    """

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        downloader: Optional[Downloader] = None,
    ):
        """
        Args:
            base_dir: Firmware tree root (default ~/.fast/firmware)
            downloader: Called with base_dir when the tree is missing or empty;
                None disables downloading
        """
        self.base_dir = Path(base_dir) if base_dir is not None else DEFAULT_FIRMWARE_DIR
        self.downloader = downloader
        self._entries: Optional[Dict[str, Dict[str, str]]] = None

    def catalog(self) -> Dict[str, Dict[str, str]]:
        """Return ``{key: {version: path}}``, scanning on first access."""
        if self._entries is None:
            self._entries = self._build()
        return self._entries

    def _ensure_downloaded(self) -> None:
        if not _is_empty_dir(self.base_dir):
            return
        if self.downloader is None:
            logger.info(f"Firmware directory {self.base_dir} is missing or empty")
            return
        logger.info(f"Firmware directory {self.base_dir} is missing or empty, downloading...")
        try:
            self.downloader(self.base_dir)
        except FirmwareDownloadError as e:
            logger.warning(f"Firmware download failed: {e}")

    def _build(self) -> Dict[str, Dict[str, str]]:
        self._ensure_downloaded()

        found: Dict[str, Dict[Tuple[int, int], str]] = {}
        try:
            families = sorted(p for p in self.base_dir.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Cannot read firmware directory {self.base_dir}: {e}")
            return {}

        for family in families:
            try:
                files = sorted(family.iterdir())
            except OSError as e:
                logger.debug(f"Skipping unreadable directory {family}: {e}")
                continue

            for fpath in files:
                if not fpath.is_file() or fpath.suffix.lower() != FIRMWARE_SUFFIX:
                    continue
                parsed = parse_firmware_filename(fpath.stem)
                if parsed is None:
                    logger.debug(f"Ignoring unrecognized firmware file name: {fpath.name}")
                    continue
                board_type, protocol, major, minor = parsed
                versions = found.setdefault(f"{board_type}_{protocol}", {})
                # First occurrence wins
                versions.setdefault((major, minor), str(fpath.resolve()))

        entries: Dict[str, Dict[str, str]] = {}
        for key, versions in found.items():
            entries[key] = {
                format_version(major, minor): path
                for (major, minor), path in sorted(versions.items())
            }

        logger.debug(
            f"Firmware catalog: {sum(len(v) for v in entries.values())} files "
            f"under {len(entries)} keys"
        )
        return entries

    def keys(self) -> List[str]:
        """Catalog keys, sorted."""
        return sorted(self.catalog())

    def versions(self, key: str) -> List[str]:
        """Available versions for ``key``, oldest first, compared numerically."""
        return sort_versions(self.catalog().get(key, {}))

    def has_key(self, key: str) -> bool:
        return key in self.catalog()

    def lookup(self, key: str, version: str) -> str:
        """
        Resolve a firmware file path.

        Args:
            key: ``{BoardType}_{Protocol}``
            version: Any version form; normalized before lookup

        Raises:
            FirmwareNotFound: With the key and the versions actually available
        """
        normalized = normalize_version(version)
        path = self.catalog().get(key, {}).get(normalized)
        if path is None:
            raise FirmwareNotFound(key, normalized, self.versions(key))
        return path

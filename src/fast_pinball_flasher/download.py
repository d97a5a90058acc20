"""
Firmware archive download.

Fetches the FAST firmware repository archive and extracts its ``.txt``
firmware images into the local firmware tree, dropping the archive's
top-level folder (e.g. ``fast-firmware-main/``).
"""

import io
import logging
import zipfile
from pathlib import Path, PurePosixPath

import requests

logger = logging.getLogger(__name__)

FIRMWARE_ARCHIVE_URL = "https://github.com/fastpinball/fast-firmware/archive/refs/heads/main.zip"
DOWNLOAD_TIMEOUT = 60


class FirmwareDownloadError(Exception):
    """Download or extraction of the firmware archive failed."""


def _relative_member_path(name: str) -> PurePosixPath:
    """Strip the archive's top-level folder from a member name."""
    parts = PurePosixPath(name).parts[1:]
    return PurePosixPath(*parts) if parts else PurePosixPath()


def extract_firmware(archive: bytes, target_dir: Path) -> int:
    """
    Extract firmware text files from a zip archive.

    Args:
        archive: Zip file contents
        target_dir: Firmware tree root

    Returns:
        Number of files written.

    Raises:
        FirmwareDownloadError: If the archive is invalid or a file cannot be written
    """
    target_dir = Path(target_dir)
    try:
        zf = zipfile.ZipFile(io.BytesIO(archive))
    except zipfile.BadZipFile as e:
        raise FirmwareDownloadError(f"invalid zip: {e}")

    root = target_dir.resolve()
    extracted = 0
    with zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            rel_path = _relative_member_path(info.filename)
            if not rel_path.parts or rel_path.suffix.lower() != ".txt":
                continue

            out_path = (target_dir / rel_path).resolve()
            if root not in out_path.parents:
                logger.warning(f"Skipping archive entry outside target: {info.filename}")
                continue

            try:
                out_path.parent.mkdir(parents=True, exist_ok=True)
                out_path.write_bytes(zf.read(info))
            except (OSError, zipfile.BadZipFile) as e:
                raise FirmwareDownloadError(f"write file {out_path} failed: {e}")
            extracted += 1

    return extracted


def download_firmware(target_dir: Path, url: str = FIRMWARE_ARCHIVE_URL) -> int:
    """
    Download the latest firmware archive and extract it into ``target_dir``.

    Returns:
        Number of firmware files written.

    Raises:
        FirmwareDownloadError: On network, HTTP, or extraction failure
    """
    target_dir = Path(target_dir)
    logger.info(f"Downloading firmware archive from {url} ...")
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise FirmwareDownloadError(f"download failed: {e}")

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FirmwareDownloadError(f"create target dir failed: {e}")

    extracted = extract_firmware(response.content, target_dir)
    if extracted == 0:
        logger.warning("No .txt firmware files were found in the archive.")
    else:
        logger.info(f"Downloaded and updated {extracted} firmware files into {target_dir}.")
    return extracted

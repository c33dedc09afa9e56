"""
Firmware package loading and validation.

A firmware package is a ZIP archive holding a MANIFEST.json, the RAM
flashloader and the application image. load_package() either returns a
fully populated FirmwarePackage or raises a ValidationError; no device is
touched and nothing is written to disk.

Validation order matters: the manifest (and its processor check) is
resolved before any image is extracted, so a package for the wrong
processor is rejected without reading its binaries.
"""

import hashlib
import io
import json
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

from ..models import DeviceModel, DEFAULT_MODEL
from .errors import ArchiveInvalid, EntryMissing, ManifestMissing, UnsupportedProcessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FirmwarePackage:
    """
    Validated, immutable firmware package.

    Attributes:
        flashloader_image: Second-stage loader uploaded to RAM over SDP
        firmware_image: Application image written to external flash
        declared_processor: Processor named by the manifest ("" if absent)
        firmware_entry_path: Archive path the firmware image was read from
        source: Where the archive came from (path or "<memory>")
        manifest: Parsed manifest object
    """
    flashloader_image: bytes = field(repr=False)
    firmware_image: bytes = field(repr=False)
    declared_processor: str
    firmware_entry_path: str
    source: str = "<memory>"
    manifest: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def erase_size(self, model: DeviceModel = DEFAULT_MODEL) -> int:
        """Bytes erased from the flash base before this firmware is written."""
        return model.erase_size(len(self.firmware_image))

    def sha256(self) -> Dict[str, str]:
        """SHA-256 digests of both images."""
        return {
            "firmware_sha256": hashlib.sha256(self.firmware_image).hexdigest(),
            "flashloader_sha256": hashlib.sha256(self.flashloader_image).hexdigest(),
        }


class _Archive:
    """Thin read-only view over a ZIP held in memory."""

    def __init__(self, archive_bytes: bytes):
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(archive_bytes))
        except (zipfile.BadZipFile, ValueError) as e:
            raise ArchiveInvalid(f"Failed to open ZIP archive: {e}")

    def read(self, name: str) -> bytes:
        """
        Return entry contents.

        Raises:
            KeyError: Entry absent
            ArchiveInvalid: Entry present but unreadable (bad CRC, corrupt
                            or unsupported compression, encryption)
        """
        try:
            data = self._zip.read(name)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
            raise ArchiveInvalid(f"Failed to read {name} from ZIP archive: {e}")
        logger.debug(f"Extracted {name} ({len(data)} bytes)")
        return data

    def close(self) -> None:
        self._zip.close()


def parse_manifest(data: bytes) -> Dict[str, Any]:
    """
    Parse MANIFEST.json contents.

    Raises:
        ManifestMissing: If the data is not a JSON object.
    """
    try:
        manifest = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestMissing(f"Failed to parse MANIFEST.json: {e}")
    if not isinstance(manifest, dict):
        raise ManifestMissing("Failed to parse MANIFEST.json: not a JSON object")
    return manifest


def _extract_image(archive: _Archive, entry: str, path: str) -> bytes:
    try:
        data = archive.read(path)
    except KeyError:
        raise EntryMissing(entry, path)
    if not data:
        raise EntryMissing(entry, path)
    return data


def load_package(
    archive_bytes: bytes,
    model: DeviceModel = DEFAULT_MODEL,
    source: str = "<memory>",
) -> FirmwarePackage:
    """
    Validate a firmware archive and extract its images.

    Args:
        archive_bytes: Raw ZIP archive contents
        model: Target device the package must be built for
        source: Description of where the archive came from, for logs

    Returns:
        FirmwarePackage with both images populated.

    Raises:
        ArchiveInvalid: Input is not a ZIP archive
        ManifestMissing: Manifest absent or unparsable
        UnsupportedProcessor: Manifest names a different processor
        EntryMissing: Flashloader or firmware image absent or empty
    """
    archive = _Archive(archive_bytes)
    try:
        try:
            manifest_data = archive.read(model.manifest_entry)
        except KeyError:
            raise ManifestMissing(f"File not found in ZIP: {model.manifest_entry}")
        manifest = parse_manifest(manifest_data)

        processor = manifest.get("processor")
        declared = processor if isinstance(processor, str) else ""
        if declared and declared != model.processor:
            raise UnsupportedProcessor(declared, model.processor)

        app_firmware = manifest.get("app_firmware")
        if isinstance(app_firmware, str) and app_firmware:
            firmware_path = app_firmware
        else:
            firmware_path = model.default_firmware_entry

        flashloader = _extract_image(archive, "flashloader", model.flashloader_entry)
        firmware = _extract_image(archive, "firmware", firmware_path)
    finally:
        archive.close()

    logger.info(
        f"Package loaded: flashloader={len(flashloader)} bytes, "
        f"firmware={len(firmware)} bytes"
    )
    return FirmwarePackage(
        flashloader_image=flashloader,
        firmware_image=firmware,
        declared_processor=declared,
        firmware_entry_path=firmware_path,
        source=source,
        manifest=manifest,
    )


def load_package_file(
    path: Union[str, Path],
    model: DeviceModel = DEFAULT_MODEL,
) -> FirmwarePackage:
    """
    Read a firmware archive from disk and validate it.

    Raises:
        ArchiveInvalid: If the file cannot be read.
        ValidationError: Any error raised by load_package().
    """
    path = Path(path)
    logger.info(f"Loading firmware package: {path}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ArchiveInvalid(f"Cannot open file: {path} ({e.strerror or e})")
    logger.debug(f"Loaded {path} ({len(data)} bytes)")
    return load_package(data, model=model, source=str(path))

"""
Firmware release download.

Resolves a release version to its archive URL and fetches archives over
HTTP(S) with httpx. There is no retry logic here: a failed fetch is
reported once and the run ends.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import httpx

from .core.errors import DownloadError
from .core.parsing import parse_version
from .models import DeviceModel, DEFAULT_MODEL

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def firmware_url(version: str, model: DeviceModel = DEFAULT_MODEL) -> str:
    """
    Build the download URL for a release.

    Args:
        version: Release identifier, X.Y.Z
        model: Device whose release catalogue to use

    Raises:
        ValueError: If version is not of the form X.Y.Z
    """
    parsed = parse_version(version)
    if parsed is None:
        raise ValueError("A firmware version is required")
    return f"{model.firmware_base_url}{model.archive_prefix}{parsed}.zip"


def fetch(
    url: str,
    dest: Union[str, Path],
    client: Optional[httpx.Client] = None,
    timeout: float = 60.0,
) -> Path:
    """
    Download ``url`` to ``dest``.

    Args:
        url: HTTP(S) URL of a firmware archive
        dest: Local file to write
        client: Client to use; a new one is created (and closed) if omitted
        timeout: Network timeout in seconds for a new client

    Returns:
        Path of the downloaded file.

    Raises:
        DownloadError: Any network or HTTP failure. A partially written
                       file is removed first.
    """
    dest = Path(dest)
    logger.info(f"Downloading: {url}")

    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    received = 0
    try:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with dest.open("wb") as f:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    received += len(chunk)
    except httpx.HTTPStatusError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Download failed: HTTP {e.response.status_code} for {url}") from e
    except httpx.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Download failed: {e}") from e
    except OSError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Cannot write {dest}: {e}") from e
    finally:
        if owns_client:
            client.close()

    if received == 0:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Download failed: empty response from {url}")

    logger.info(f"Downloaded {received} bytes to {dest}")
    return dest

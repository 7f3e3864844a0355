"""
Network download with retry logic and checksum verification.

Dependencies listed in the manifest are fetched over HTTP(S) with:
- Streaming download to disk (no whole-file buffering)
- SHA256 verification computed while streaming
- Retry with exponential backoff on transport errors
"""

import hashlib
import logging
import time
from pathlib import Path
from typing import Optional

import requests
from requests.exceptions import RequestException

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class DownloadError(Exception):
    """Exception raised when download fails."""

    pass


class ChecksumError(Exception):
    """Exception raised when checksum verification fails."""

    pass


class StreamingHasher:
    """Compute a SHA-256 digest incrementally for streaming downloads."""

    def __init__(self):
        self.hasher = hashlib.sha256()

    def update(self, data: bytes):
        """Add data to hash computation."""
        self.hasher.update(data)

    def finalize(self) -> str:
        """Get final hash value as hex string."""
        return self.hasher.hexdigest()

    def verify(self, expected_hash: str) -> bool:
        """Check if computed hash matches expected value."""
        return self.finalize().lower() == expected_hash.lower()


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    timeout: int = 30,
    max_retries: int = 3,
) -> Path:
    """
    Download file from URL to destination with retry logic and checksum verification.

    Args:
        url: URL to download from
        destination: Local path to save file
        expected_sha256: Expected SHA256 hash (verified during download)
        timeout: Socket timeout in seconds for each request
        max_retries: Maximum number of retry attempts

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: If download fails after retries
        ChecksumError: If checksum doesn't match expected value
        ValueError: If URL or destination is invalid

    Example:
        >>> download_file(
        ...     "https://example.com/jq-1.6.tar.gz",
        ...     Path("/tmp/dependencies/v1/jq-1.6.0"),
        ...     expected_sha256="abc123...",
        ... )
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    for attempt in range(max_retries):
        try:
            return _download_to(url, destination, expected_sha256, timeout)
        except RequestException as e:
            if attempt == max_retries - 1:
                raise DownloadError(
                    f"Download failed after {max_retries} attempts: {e}"
                ) from e

            backoff_seconds = 2**attempt
            logger.warning(
                f"Download attempt {attempt + 1} failed: {e}. "
                f"Retrying in {backoff_seconds}s..."
            )
            time.sleep(backoff_seconds)

    raise DownloadError("Download failed for unknown reason")


def _download_to(
    url: str,
    destination: Path,
    expected_sha256: Optional[str],
    timeout: int,
) -> Path:
    """Perform one streaming download attempt."""
    logger.debug(f"Downloading from {url}")

    response = requests.get(url, stream=True, timeout=timeout, allow_redirects=True)
    response.raise_for_status()

    hasher = StreamingHasher() if expected_sha256 else None

    with open(destination, "wb") as f:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if chunk:
                f.write(chunk)
                if hasher:
                    hasher.update(chunk)

    if expected_sha256 and hasher and not hasher.verify(expected_sha256):
        actual_hash = hasher.finalize()
        destination.unlink()
        raise ChecksumError(
            f"Checksum mismatch for {destination.name}: "
            f"expected {expected_sha256}, got {actual_hash}"
        )

    logger.debug(f"Download complete: {destination}")
    return destination


def compute_sha256(file_path: Path) -> str:
    """Compute the SHA256 hex digest of a file."""
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_checksum(file_path: Path, expected_sha256: str) -> bool:
    """
    Verify file SHA256 checksum.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    return compute_sha256(file_path).lower() == expected_sha256.lower()

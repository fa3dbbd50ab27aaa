"""Download point cloud files over HTTP.

Files are streamed to disk in chunks and written under a temporary ``.part``
name until complete, so an interrupted transfer is never mistaken for a
finished download on the next run.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Default chunk size for streaming downloads (1MB)
DEFAULT_CHUNK_SIZE = 1024 * 1024

__all__ = [
    "download_file",
    "download_files",
    "filename_from_url",
    "DEFAULT_CHUNK_SIZE",
]


def filename_from_url(url: str) -> str:
    """Return the last path segment of *url*, ignoring any query string."""
    return urlsplit(url).path.rstrip("/").rsplit("/", 1)[-1]


@retry(
    reraise=True,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
)
def download_file(
    url: str,
    directory: Path,
    session: requests.Session,
    *,
    filename: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    timeout: Optional[float] = None,
) -> Path:
    """Download a single file into *directory*.

    Parameters:
        url: The URL to download from; signed URLs keep their query string.
        directory: Existing target directory.
        session: Session used for the request.
        filename: Local file name; the last URL path segment by default.
        chunk_size: Size of chunks for streaming download.
        timeout: Connect/read timeout in seconds.

    Returns:
        Path to the downloaded file.

    Raises:
        requests.HTTPError: If the server answers with an error status.
    """
    local_filename = filename or filename_from_url(url)
    path = directory / local_filename
    if path.exists():
        logger.info("File %s already downloaded", local_filename)
        return path

    partial = path.with_name(f"{local_filename}.part")
    with session.get(
        url, stream=True, allow_redirects=True, timeout=timeout
    ) as response:
        response.raise_for_status()
        with open(partial, "wb") as f:
            for chunk in response.iter_content(chunk_size=chunk_size):
                f.write(chunk)
    partial.replace(path)

    logger.info("Downloaded: %s", local_filename)
    return path


def download_files(
    downloads: Sequence[Tuple[str, str]],
    directory: Union[str, Path],
    session: Optional[requests.Session] = None,
    *,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> List[Path]:
    """Download ``(url, filename)`` pairs into *directory* in parallel.

    The directory is created if it doesn't exist. Results keep the order of
    *downloads*; the first failure is raised once all workers finish.
    """
    if not downloads:
        return []

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    session = session or requests.Session()

    def _download(job: Tuple[str, str]) -> Path:
        url, filename = job
        return download_file(
            url, directory, session, filename=filename, timeout=timeout
        )

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(_download, downloads))

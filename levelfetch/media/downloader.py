"""
Handles the low-level downloading of payload files over HTTP.
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os
import aiohttp

from levelfetch.exceptions import DownloadError
from levelfetch.utils.formatting import format_size

log = logging.getLogger(__name__)

CHUNK_SIZE = 262144  # 256 KB
PART_SUFFIX = ".part"


def part_path(destination: Path) -> Path:
    """The sibling temporary file a download is written to before the rename."""
    return destination.with_name(destination.name + PART_SUFFIX)


async def stream_to_file(
    session: aiohttp.ClientSession, url: str, destination: Path
) -> int:
    """
    Downloads `url` into `destination` and returns the number of bytes written.

    The body is written to `<destination>.part` and renamed into place only
    after it was fully received, so `destination` never holds a partial file.
    A failed attempt may leave the `.part` file behind; the next attempt
    overwrites it.

    Raises:
        DownloadError: On a non-2xx status, a transport error, or a local
        write failure.
    """
    tmp_path = part_path(destination)
    try:
        await asyncio.to_thread(os.makedirs, destination.parent, exist_ok=True)
        async with session.get(url, allow_redirects=True) as response:
            if not 200 <= response.status < 300:
                raise DownloadError(f"download response status: {response.status}")

            bytes_written = 0
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    await f.write(chunk)
                    bytes_written += len(chunk)
                await f.flush()

        await aiofiles.os.replace(tmp_path, destination)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise DownloadError(f"download request failed: {url}: {e}") from e
    except OSError as e:
        raise DownloadError(f"could not write '{destination.name}': {e}") from e

    log.debug(f"Saved {format_size(bytes_written)} to '{destination.name}'")
    return bytes_written

# icofile/utils/byte_source.py

import contextlib
import io
import logging
import os
from typing import BinaryIO, Iterator
from urllib.parse import unquote, urlparse

import requests

logger = logging.getLogger(__name__)

URL_TIMEOUT_SECONDS = 30.0


def _is_url(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https", "file")


@contextlib.contextmanager
def _open_url(url: str) -> Iterator[BinaryIO]:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        with open(unquote(parsed.path), "rb") as f:
            yield f
        return

    logger.info("Fetching %s", url)
    with requests.get(url, stream=True, timeout=URL_TIMEOUT_SECONDS) as response:
        response.raise_for_status()
        # The raw urllib3 response is a forward-only stream; let it undo any transfer encoding.
        response.raw.decode_content = True
        yield response.raw


@contextlib.contextmanager
def open_byte_source(source) -> Iterator[BinaryIO]:
    """
    Opens a forward-readable binary stream for `source`.

    Accepts a filesystem path (str or os.PathLike), an http(s)/file URL, a
    bytes-like object, or a binary stream with a `read` method. Streams passed
    in are not closed; everything opened here is.
    """
    if hasattr(source, "read"):
        yield source
    elif isinstance(source, (bytes, bytearray, memoryview)):
        yield io.BytesIO(bytes(source))
    elif isinstance(source, str) and _is_url(source):
        with _open_url(source) as stream:
            yield stream
    elif isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as f:
            yield f
    else:
        raise TypeError(f"Cannot read icon data from {type(source).__name__}.")

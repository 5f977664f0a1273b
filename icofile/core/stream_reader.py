# icofile/core/stream_reader.py

import struct
from typing import BinaryIO, Tuple

from .ico_errors import TruncatedDataError

# Largest single read handed to the stream. Sizes come from untrusted headers.
_CHUNK = 64 * 1024


class ForwardReader:
    """
    Reads a binary stream strictly forward, never seeking, and counts every
    byte consumed. `offset` is the absolute position in the container.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self.offset = 0

    def read_exact(self, size: int) -> bytes:
        """Reads exactly `size` bytes or raises TruncatedDataError."""
        if size <= 0:
            return b''
        chunks = []
        remaining = size
        # Network streams may return short reads before the real end.
        while remaining > 0:
            chunk = self._stream.read(min(_CHUNK, remaining))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        data = b''.join(chunks)
        start = self.offset
        self.offset += len(data)
        if len(data) < size:
            raise TruncatedDataError(size, len(data), start)
        return data

    def unpack(self, fmt: str) -> Tuple:
        return struct.unpack(fmt, self.read_exact(struct.calcsize(fmt)))

    def read_u32(self) -> int:
        return self.unpack('<I')[0]

    def skip(self, size: int) -> int:
        """Discards up to `size` bytes. Returns how many were actually skipped."""
        skipped = 0
        while skipped < size:
            chunk = self._stream.read(min(_CHUNK, size - skipped))
            if not chunk:
                break
            skipped += len(chunk)
        self.offset += skipped
        return skipped

    def skip_to(self, target: int) -> bool:
        """Advances to absolute offset `target`. False if the stream ended first or target is behind."""
        if target < self.offset:
            return False
        wanted = target - self.offset
        return self.skip(wanted) == wanted

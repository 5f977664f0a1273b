# icofile/core/ico_parser.py

import logging
from typing import BinaryIO, Dict, List, Optional, Set, Tuple

from .decode_options import DecodeOptions, DEFAULT_OPTIONS
from .dib_decoder import decode_dib
from .ico_base import (
    DecodedImage, IconBitmap, IconDirEntry, IconDirectory, IconType,
    BITMAPINFOHEADER_SIZE, ICONDIR_FORMAT, ICONDIRENTRY_FORMAT,
)
from .ico_errors import DirectoryEntryError, HeaderError, ImageDecodeError, TruncatedDataError
from .png_decoder import decode_png_bytes, is_png_signature, read_png_resource
from .stream_reader import ForwardReader
from ..utils.byte_source import open_byte_source

logger = logging.getLogger(__name__)

# Notes on decoding order:
# The source is read strictly forward, so image blocks are visited in the order
# they are stored, which need not be the directory order. Each block is claimed
# by the directory record whose dwImageOffset equals the number of bytes read so
# far. A block no record claims is still decoded to keep the stream position in
# step, but its image is discarded.


def read_icon_dir_header(reader: ForwardReader) -> Tuple[int, int, int]:
    """Reads ICONDIR and returns (reserved, type, count)."""
    try:
        reserved, type_id, count = reader.unpack(ICONDIR_FORMAT)
    except TruncatedDataError as e:
        raise HeaderError(f"File too short for an icon header: {e}") from e
    if reserved != 0:
        raise HeaderError(f"Reserved word is {reserved}, must be 0.")
    if type_id not in (IconType.ICON, IconType.CURSOR):
        raise HeaderError(f"Resource type {type_id} is not an icon (1) or cursor (2).")
    return reserved, type_id, count


def make_dir_entry(index: int, record: Tuple[int, ...]) -> IconDirEntry:
    entry = IconDirEntry.from_record(index, record)
    if entry.reserved != 0:
        raise DirectoryEntryError(index, f"reserved byte is {entry.reserved}, must be 0")
    return entry


def read_dir_entries(reader: ForwardReader, count: int) -> Tuple[List[IconDirEntry], Set[int]]:
    """
    Reads `count` ICONDIRENTRY records.

    Returns:
        A tuple (records, dropped). records holds every record in table order,
        dropped holds the indices of malformed records that must not be exposed.
    """
    records: List[IconDirEntry] = []
    dropped: Set[int] = set()
    for index in range(count):
        try:
            raw = reader.unpack(ICONDIRENTRY_FORMAT)
        except TruncatedDataError as e:
            raise HeaderError(f"Directory table ends after {index} of {count} entries: {e}") from e
        try:
            records.append(make_dir_entry(index, raw))
        except DirectoryEntryError as e:
            logger.warning("Dropping %s", e)
            records.append(IconDirEntry.from_record(index, raw))
            dropped.add(index)
    return records, dropped


class ResourceLocator:
    """
    Pending directory records keyed by image offset. Each record is handed out
    at most once, when the reader reaches its offset.
    """

    def __init__(self, records: List[IconDirEntry]):
        self._pending: Dict[int, List[IconDirEntry]] = {}
        for record in records:
            self._pending.setdefault(record.image_offset, []).append(record)

    def claim(self, offset: int) -> Optional[IconDirEntry]:
        """Removes and returns the pending record stored at `offset`, if any."""
        waiting = self._pending.get(offset)
        if not waiting:
            return None
        record = waiting.pop(0)
        if not waiting:
            del self._pending[offset]
        return record

    def next_offset(self, offset: int) -> Optional[int]:
        """Lowest pending offset at or after `offset`."""
        ahead = [o for o in self._pending if o >= offset]
        return min(ahead) if ahead else None

    def __len__(self):
        return sum(len(waiting) for waiting in self._pending.values())


def decode_block(reader: ForwardReader, entry: Optional[IconDirEntry],
                 options: DecodeOptions = DEFAULT_OPTIONS) -> Tuple[DecodedImage, Optional[IconBitmap]]:
    """Decodes the image block starting at the reader's position."""
    size = reader.read_u32()
    if size == BITMAPINFOHEADER_SIZE:
        return decode_dib(reader, size, entry, options)

    second = reader.read_u32()
    if is_png_signature(size, second):
        if entry is None:
            raise ImageDecodeError("Unclaimed PNG block has no known length.")
        data = read_png_resource(reader, size, second, entry.bytes_in_resource)
        logger.debug("PNG resource of %d bytes for entry %d", len(data), entry.index)
        return decode_png_bytes(data), None

    raise ImageDecodeError(f"Unrecognized bitmap header size {size:#010x}.")


def _resync(reader: ForwardReader, locator: ResourceLocator) -> bool:
    target = locator.next_offset(reader.offset)
    if target is None:
        return False
    logger.debug("Resynchronizing from offset %d to %d", reader.offset, target)
    return reader.skip_to(target)


def parse_stream(stream: BinaryIO, options: Optional[DecodeOptions] = None) -> IconDirectory:
    """
    Parses an ICO/CUR container from a forward-readable binary stream.

    Raises:
        HeaderError: the header or directory table is invalid.
        OSError: propagated from the stream.
    """
    options = options or DEFAULT_OPTIONS
    reader = ForwardReader(stream)
    reserved, type_id, count = read_icon_dir_header(reader)
    records, dropped = read_dir_entries(reader, count)

    images: List[Optional[DecodedImage]] = [None] * count
    completed: Dict[int, IconDirEntry] = {}
    locator = ResourceLocator(records)

    for _ in range(count):
        if not len(locator):
            break
        block_start = reader.offset
        entry = locator.claim(block_start)
        if entry is None:
            logger.warning("No directory entry claims the block at offset %d; decoding it without attaching.",
                           block_start)

        try:
            image, bitmap = decode_block(reader, entry, options)
        except TruncatedDataError as e:
            if e.got == 0 and e.offset == block_start:
                logger.warning("Stream ended at offset %d with %d entries unresolved.", block_start, len(locator))
            else:
                owner = f"entry {entry.index}" if entry is not None else "unclaimed block"
                logger.warning("Truncated image data for %s: %s", owner, e)
            break
        except ImageDecodeError as e:
            owner = f"entry {entry.index}" if entry is not None else "unclaimed block"
            logger.warning("Failed to decode %s at offset %d: %s", owner, block_start, e)
            if not _resync(reader, locator):
                break
            continue

        if entry is None:
            continue

        if options.skip_unclaimed_bytes:
            leftover = entry.bytes_in_resource - (reader.offset - block_start)
            if leftover > 0:
                reader.skip(leftover)

        if entry.index in dropped:
            continue
        images[entry.index] = image
        completed[entry.index] = entry.with_decoded(image, bitmap)

    entries = [completed.get(record.index, record) for record in records if record.index not in dropped]
    directory = IconDirectory(reserved, type_id, count, entries, images)
    logger.debug("Parsed %r", directory)
    return directory


def parse(source, options: Optional[DecodeOptions] = None) -> IconDirectory:
    """
    Parses an icon or cursor file.

    Args:
        source: a file path, os.PathLike, http(s) or file URL, bytes-like object,
            or an already opened binary stream.
        options: decode options; defaults are used when omitted.

    Returns:
        An IconDirectory whose `images` has one slot per declared directory
        record; failed or dropped records leave None in their slot.
    """
    with open_byte_source(source) as stream:
        return parse_stream(stream, options)

# icofile/core/dib_decoder.py

import logging
import struct
from typing import List, Optional, Sequence, Tuple

from .decode_options import DecodeOptions, DEFAULT_OPTIONS
from .ico_base import (
    BitmapInfoHeader, DecodedImage, IconBitmap, IconDirEntry, RGBQuad,
    BITMAPINFOHEADER_FORMAT, BITMAPINFOHEADER_SIZE, RGBQUAD_SIZE,
)
from .ico_errors import ImageDecodeError
from .stream_reader import ForwardReader

logger = logging.getLogger(__name__)

# Bit for column x within a byte of a 1 bpp plane, indexed by x % 8.
BIT_MASKS = (128, 64, 32, 16, 8, 4, 2, 1)

OPAQUE = 0xFF000000


def resolve_color_count(color_count: int, planes: int, bit_count: int) -> int:
    """
    Returns the number of color table entries that follow the header.
    A nonzero directory color count wins; 0 means derive it from the header.
    0 as the result means a true-color image without a palette.
    """
    if color_count:
        return color_count
    if planes == 1:
        return {1: 2, 4: 16, 8: 256}.get(bit_count, 0)
    return 2 ** (bit_count * planes)


def xor_stride(width: int, bit_count: int) -> int:
    """Bytes per XOR scanline, padded to a DWORD."""
    return ((width * bit_count + 31) // 32) * 4


def and_stride(width: int) -> int:
    """Bytes per 1 bpp AND scanline, padded to a DWORD."""
    return ((width + 31) // 32) * 4


def read_bitmap_header(reader: ForwardReader, size: int) -> BitmapInfoHeader:
    """Reads the 36 bytes of a BITMAPINFOHEADER following its already consumed size field."""
    rest = reader.read_exact(BITMAPINFOHEADER_SIZE - 4)
    return BitmapInfoHeader._make(struct.unpack(BITMAPINFOHEADER_FORMAT, struct.pack('<I', size) + rest))


def read_color_table(reader: ForwardReader, count: int) -> Tuple[RGBQuad, ...]:
    if count <= 0:
        return ()
    raw = reader.read_exact(count * RGBQUAD_SIZE)
    return tuple(RGBQuad._make(quad) for quad in struct.iter_unpack('<BBBB', raw))


def _is_masked(and_mask: bytes, row_start: int, x: int) -> bool:
    return bool(and_mask[row_start + (x >> 3)] & BIT_MASKS[x & 7])


def _palette_index(bit_count: int, xor_mask: bytes, row_start: int, x: int) -> int:
    if bit_count == 1:
        return 1 if xor_mask[row_start + (x >> 3)] & BIT_MASKS[x & 7] else 0
    if bit_count == 4:
        byte = xor_mask[row_start + (x >> 1)]
        return byte & 0x0F if x & 1 else byte >> 4
    return xor_mask[row_start + x]


def _expand_555(value: int) -> int:
    return (value << 3) | (value >> 2)


def _expand_indexed(header: BitmapInfoHeader, palette: Sequence[RGBQuad],
                    xor_mask: bytes, and_mask: bytes) -> List[int]:
    width, height, bit_count = header.width, header.pixel_height, header.bit_count
    if bit_count not in (1, 4, 8):
        raise ImageDecodeError(f"A {len(palette)} color table cannot be indexed with {bit_count} bpp pixels.")
    colors = [quad.rgb for quad in palette]
    x_stride = xor_stride(width, bit_count)
    a_stride = and_stride(width)
    pixels = []
    for y in range(height):
        row = height - 1 - y
        xor_row = row * x_stride
        and_row = row * a_stride
        for x in range(width):
            index = _palette_index(bit_count, xor_mask, xor_row, x)
            if index >= len(colors):
                raise ImageDecodeError(f"Palette index {index} at ({x}, {y}) exceeds color table of {len(colors)}.")
            rgb = colors[index]
            if not _is_masked(and_mask, and_row, x):
                rgb |= OPAQUE
            pixels.append(rgb)
    return pixels


def _expand_true_color(header: BitmapInfoHeader, xor_mask: bytes, and_mask: bytes,
                       options: DecodeOptions) -> List[int]:
    width, height, bit_count = header.width, header.pixel_height, header.bit_count
    x_stride = xor_stride(width, bit_count)
    a_stride = and_stride(width)
    pixels = []
    if bit_count == 32:
        # Alpha comes from the pixel itself; the AND plane is ignored.
        for y in range(height):
            row = height - 1 - y if options.flip_32bpp_rows else y
            start = row * x_stride
            for b, g, r, a in struct.iter_unpack('<BBBB', xor_mask[start:start + width * 4]):
                pixels.append((a << 24) | (r << 16) | (g << 8) | b)
        return pixels

    if bit_count not in (16, 24):
        raise ImageDecodeError(f"Unsupported true color depth: {bit_count} bpp.")
    for y in range(height):
        row = height - 1 - y
        start = row * x_stride
        and_row = row * a_stride
        for x in range(width):
            if bit_count == 16:
                word = xor_mask[start + 2 * x] | (xor_mask[start + 2 * x + 1] << 8)
                b, g, r = word & 0x1F, (word >> 5) & 0x1F, (word >> 10) & 0x1F
                if options.expand_555:
                    b, g, r = _expand_555(b), _expand_555(g), _expand_555(r)
            else:
                b, g, r = xor_mask[start + 3 * x:start + 3 * x + 3]
            rgb = (r << 16) | (g << 8) | b
            if not _is_masked(and_mask, and_row, x):
                rgb |= OPAQUE
            pixels.append(rgb)
    return pixels


def expand_pixels(header: BitmapInfoHeader, color_table: Sequence[RGBQuad], xor_mask: bytes,
                  and_mask: bytes, options: DecodeOptions = DEFAULT_OPTIONS) -> DecodedImage:
    """
    Combines the XOR and AND planes of a DIB into a top-down ARGB image.
    Rows are stored bottom-up in the planes.
    """
    if color_table:
        pixels = _expand_indexed(header, color_table, xor_mask, and_mask)
    else:
        pixels = _expand_true_color(header, xor_mask, and_mask, options)
    return DecodedImage(header.width, header.pixel_height, pixels)


def decode_dib(reader: ForwardReader, size: int, entry: Optional[IconDirEntry],
               options: DecodeOptions = DEFAULT_OPTIONS) -> Tuple[DecodedImage, IconBitmap]:
    """
    Decodes one DIB image block whose 4-byte header size has already been read.
    `entry` is the owning directory record, or None for a block nobody claimed.
    Consumes the header, color table and both planes even when expansion fails,
    so the reader stays at the end of the block whenever possible. A claimed
    block whose header describes more data than the entry holds is rejected
    before its planes are read.
    """
    header = read_bitmap_header(reader, size)
    if header.width <= 0 or header.pixel_height <= 0:
        raise ImageDecodeError(f"Invalid bitmap dimensions {header.width}x{header.height}.")

    color_count = resolve_color_count(entry.color_count if entry is not None else 0,
                                      header.planes, header.bit_count)
    if color_count > options.max_color_table:
        raise ImageDecodeError(f"Color table of {color_count} entries exceeds limit {options.max_color_table}.")

    height = header.pixel_height
    xor_size = xor_stride(header.width, header.bit_count) * height
    and_size = and_stride(header.width) * height
    if entry is not None:
        needed = BITMAPINFOHEADER_SIZE + color_count * RGBQUAD_SIZE + xor_size + and_size
        if needed > entry.bytes_in_resource:
            raise ImageDecodeError(f"A {header.width}x{height} {header.bit_count} bpp bitmap needs {needed} bytes, "
                                   f"entry {entry.index} holds {entry.bytes_in_resource}.")

    color_table = read_color_table(reader, color_count)
    xor_mask = reader.read_exact(xor_size)
    and_mask = reader.read_exact(and_size)
    logger.debug("DIB %dx%d, %d bpp, %d colors", header.width, height, header.bit_count, color_count)

    image = expand_pixels(header, color_table, xor_mask, and_mask, options)
    return image, IconBitmap(header, color_table, xor_mask, and_mask)

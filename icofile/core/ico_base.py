# icofile/core/ico_base.py

from collections import namedtuple
from enum import IntEnum
from typing import Iterator, List, Optional, Tuple


# Notes on the ICO/CUR container (all fields little-endian):
# 1. ICONDIR (6 bytes): idReserved (WORD, 0), idType (WORD, 1=icon 2=cursor), idCount (WORD).
# 2. ICONDIRENTRY (16 bytes) x idCount:
#    bWidth, bHeight (BYTE, 0 means 256), bColorCount (BYTE, 0 if >= 8bpp), bReserved (BYTE, 0),
#    wPlanes (WORD, cursor: hotspot x), wBitCount (WORD, cursor: hotspot y),
#    dwBytesInRes (DWORD), dwImageOffset (DWORD, absolute offset of the image block).
# 3. Image blocks: either BITMAPINFOHEADER + RGBQUAD[] + XOR plane + AND plane,
#    or a complete PNG stream.

ICONDIR_FORMAT = '<HHH'
ICONDIR_SIZE = 6
ICONDIRENTRY_FORMAT = '<BBBBHHII'
ICONDIRENTRY_SIZE = 16
BITMAPINFOHEADER_FORMAT = '<IiiHHIIiiII'
BITMAPINFOHEADER_SIZE = 40
RGBQUAD_SIZE = 4


class IconType(IntEnum):
    UNKNOWN = 0
    ICON = 1
    CURSOR = 2

    @classmethod
    def from_value(cls, value: int) -> 'IconType':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class RGBQuad(namedtuple("RGBQuad", ["blue", "green", "red", "reserved"])):
    """One color table entry, stored as blue, green, red, reserved."""
    __slots__ = ()

    @property
    def rgb(self) -> int:
        return (self.red << 16) | (self.green << 8) | self.blue


class BitmapInfoHeader(namedtuple("BitmapInfoHeader", [
    "size", "width", "height", "planes", "bit_count", "compression",
    "size_image", "x_pels_per_meter", "y_pels_per_meter", "clr_used", "clr_important"
])):
    """
    BITMAPINFOHEADER of a DIB-encoded icon image.
    `height` covers the XOR and AND planes stacked, so it is twice the pixel height.
    """
    __slots__ = ()

    @property
    def pixel_height(self) -> int:
        return self.height // 2


class IconBitmap(namedtuple("IconBitmap", ["header", "color_table", "xor_mask", "and_mask"])):
    """Raw DIB parts of one directory entry: header, palette and both bit planes."""
    __slots__ = ()

    def __repr__(self):
        return (f"IconBitmap(header={self.header}, colors={len(self.color_table)}, "
                f"xor_len={len(self.xor_mask)}, and_len={len(self.and_mask)})")


class DecodedImage:
    """
    A width x height buffer of 0xAARRGGBB pixels, row-major, top row first.
    """
    __slots__ = ("width", "height", "pixels")

    def __init__(self, width: int, height: int, pixels):
        pixels = tuple(pixels)
        if len(pixels) != width * height:
            raise ValueError(f"Pixel buffer holds {len(pixels)} pixels, expected {width}x{height}.")
        self.width = width
        self.height = height
        self.pixels: Tuple[int, ...] = pixels

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def get_pixel(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} image.")
        return self.pixels[y * self.width + x]

    def rows(self) -> Iterator[Tuple[int, ...]]:
        for y in range(self.height):
            yield self.pixels[y * self.width:(y + 1) * self.width]

    def __eq__(self, other):
        if not isinstance(other, DecodedImage):
            return NotImplemented
        return self.size == other.size and self.pixels == other.pixels

    def __hash__(self):
        return hash((self.width, self.height, self.pixels))

    def __repr__(self):
        return f"DecodedImage({self.width}x{self.height})"


class IconDirEntry(namedtuple("IconDirEntry", [
    "index", "width", "height", "color_count", "reserved", "planes", "bit_count",
    "bytes_in_resource", "image_offset", "image", "bitmap"
])):
    """
    One ICONDIRENTRY. `index` is the record's position in the directory table.
    `image` and `bitmap` are attached once the entry's block has been decoded;
    use `with_decoded` to get the completed record.
    """
    __slots__ = ()

    @classmethod
    def from_record(cls, index: int, record: Tuple[int, ...]) -> 'IconDirEntry':
        return cls(index, *record, image=None, bitmap=None)

    @property
    def pixel_width(self) -> int:
        return self.width or 256

    @property
    def pixel_height(self) -> int:
        return self.height or 256

    # For cursors the planes/bit count words hold the click point.
    @property
    def hotspot_x(self) -> int:
        return self.planes

    @property
    def hotspot_y(self) -> int:
        return self.bit_count

    def with_decoded(self, image: Optional[DecodedImage], bitmap: Optional[IconBitmap] = None) -> 'IconDirEntry':
        return self._replace(image=image, bitmap=bitmap)

    def __repr__(self):
        return (f"IconDirEntry(index={self.index}, size={self.pixel_width}x{self.pixel_height}, "
                f"colors={self.color_count}, planes={self.planes}, bit_count={self.bit_count}, "
                f"bytes={self.bytes_in_resource}, offset={self.image_offset}, image={self.image!r})")


class IconDirectory:
    """
    The parsed container: header fields, the usable directory entries and one
    image slot per declared record.
    """
    __slots__ = ("_reserved", "_type", "_count", "_entries", "_images")

    def __init__(self, reserved: int, type_id: int, count: int,
                 entries: List[IconDirEntry], images: List[Optional[DecodedImage]]):
        if len(images) != count:
            raise ValueError(f"Expected {count} image slots, got {len(images)}.")
        self._reserved = reserved
        self._type = type_id
        self._count = count
        self._entries: Tuple[IconDirEntry, ...] = tuple(entries)
        self._images: Tuple[Optional[DecodedImage], ...] = tuple(images)

    @property
    def reserved(self) -> int:
        return self._reserved

    @property
    def type_id(self) -> int:
        return self._type

    @property
    def icon_type(self) -> IconType:
        return IconType.from_value(self._type)

    @property
    def is_cursor(self) -> bool:
        return self._type == IconType.CURSOR

    @property
    def count(self) -> int:
        return self._count

    @property
    def entries(self) -> Tuple[IconDirEntry, ...]:
        return self._entries

    @property
    def images(self) -> Tuple[Optional[DecodedImage], ...]:
        return self._images

    def get_image(self, index: int) -> Optional[DecodedImage]:
        return self._images[index]

    def __len__(self):
        return self._count

    def __repr__(self):
        return (f"IconDirectory(type={self.icon_type.name}, count={self._count}, "
                f"entries={len(self._entries)}, decoded={sum(1 for i in self._images if i is not None)})")

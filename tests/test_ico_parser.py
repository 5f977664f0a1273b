import io
import logging
import struct

import pytest

from icofile.core.ico_base import BITMAPINFOHEADER_FORMAT, IconType
from icofile.core.ico_errors import HeaderError
from icofile.core.ico_parser import ResourceLocator, parse, parse_stream
from icofile.core.png_decoder import PNG_SIGNATURE

from ico_fixtures import build_ico, image, png_block, solid_24bpp, two_by_two_mono

OPAQUE_BLACK = 0xFF000000
OPAQUE_WHITE = 0xFFFFFFFF


def mono_image(**kwargs):
    return image(two_by_two_mono(), 2, 2, bit_count=1, color_count=2, **kwargs)


def red_image(size=3, **kwargs):
    return image(solid_24bpp(size, size, (255, 0, 0)), size, size, bit_count=24, **kwargs)


def test_nonzero_reserved_word_is_fatal():
    data = build_ico([mono_image()], reserved=1)
    with pytest.raises(HeaderError):
        parse(data)


@pytest.mark.parametrize("type_id", [0, 3, 0xFFFF])
def test_unsupported_resource_type_is_fatal(type_id):
    with pytest.raises(HeaderError):
        parse(build_ico([mono_image()], type_id=type_id))


def test_short_header_is_fatal():
    with pytest.raises(HeaderError):
        parse(b'\x00\x00\x01')


def test_truncated_directory_table_is_fatal():
    data = build_ico([mono_image()], count=2)
    with pytest.raises(HeaderError):
        parse(data[:6 + 16 + 8])


def test_mono_icon_pixels():
    directory = parse(build_ico([mono_image()]))
    assert directory.icon_type == IconType.ICON
    assert directory.count == 1
    img = directory.images[0]
    assert img.size == (2, 2)
    # Stored row `01` is the top row.
    assert img.get_pixel(0, 0) == OPAQUE_BLACK
    assert img.get_pixel(1, 0) == OPAQUE_WHITE
    assert img.get_pixel(0, 1) == OPAQUE_WHITE
    assert img.get_pixel(1, 1) == OPAQUE_BLACK


def test_entry_carries_decoded_image_and_bitmap():
    directory = parse(build_ico([mono_image()]))
    entry, = directory.entries
    assert entry.image is directory.images[0]
    assert entry.bitmap.header.size == 40
    assert entry.bitmap.header.pixel_height == 2
    assert len(entry.bitmap.color_table) == 2
    assert entry.image_offset == 6 + 16
    assert entry.bytes_in_resource == len(two_by_two_mono())


def test_dropped_entry(caplog):
    data = build_ico([mono_image(reserved=7), red_image()])
    with caplog.at_level(logging.WARNING):
        directory = parse(data)
    assert directory.count == 2
    assert [e.index for e in directory.entries] == [1]
    assert directory.images[0] is None
    assert directory.images[1].get_pixel(0, 0) == 0xFFFF0000
    assert "reserved byte" in caplog.text


def test_images_align_with_declared_count():
    data = build_ico([
        red_image(),
        image(b'\x99' * 20, 4, 4, bit_count=8),
        mono_image(reserved=1),
        mono_image(),
    ])
    directory = parse(data)
    assert len(directory.images) == 4
    assert [img is not None for img in directory.images] == [True, False, False, True]
    assert [e.index for e in directory.entries] == [0, 1, 3]
    assert directory.entries[1].image is None


def test_blocks_resolved_in_file_order():
    data = build_ico([red_image(4), mono_image()], storage_order=[1, 0])
    directory = parse(data)
    assert directory.images[0].size == (4, 4)
    assert directory.images[1].size == (2, 2)
    assert directory.entries[0].image_offset > directory.entries[1].image_offset


def test_unclaimed_block_is_decoded_but_dropped(caplog):
    data = build_ico([mono_image(), red_image(offset=9999)])
    with caplog.at_level(logging.WARNING):
        directory = parse(data)
    assert directory.images[0] is not None
    assert directory.images[1] is None
    assert directory.entries[1].image is None
    assert "No directory entry claims" in caplog.text


def test_png_entry():
    png = png_block(3, 2, (10, 20, 30, 128))
    directory = parse(build_ico([image(png, 3, 2, bit_count=32)]))
    img = directory.images[0]
    assert img.size == (3, 2)
    assert img.get_pixel(2, 1) == (128 << 24) | (10 << 16) | (20 << 8) | 30
    assert directory.entries[0].bitmap is None


def test_corrupt_png_leaves_slot_empty():
    corrupt = PNG_SIGNATURE + b'\x00\x00\x00\x0dIHDR\x00\x00'
    data = build_ico([image(corrupt, 16, 16, bit_count=32), mono_image()])
    directory = parse(data)
    assert directory.images[0] is None
    assert directory.images[1].get_pixel(1, 0) == OPAQUE_WHITE


def test_unrecognized_header_resynchronizes():
    data = build_ico([image(b'\x99' * 20, 4, 4), mono_image()])
    directory = parse(data)
    assert directory.images[0] is None
    assert directory.images[1] is not None


def test_padding_after_block_is_skipped():
    padded = image(two_by_two_mono() + b'\0' * 6, 2, 2, bit_count=1, color_count=2)
    directory = parse(build_ico([padded, red_image()]))
    assert all(img is not None for img in directory.images)


def test_truncated_block_keeps_earlier_images():
    data = build_ico([mono_image(), red_image()])
    directory = parse(data[:-10])
    assert directory.images[0] is not None
    assert directory.images[1] is None


def test_missing_image_data():
    data = build_ico([mono_image()])
    directory = parse(data[:6 + 16])
    assert directory.images == (None,)
    assert len(directory.entries) == 1


def test_cursor_hotspot():
    cursor = image(two_by_two_mono(), 2, 2, planes=1, bit_count=1, color_count=2)
    data = bytearray(build_ico([cursor], type_id=2))
    struct.pack_into('<HH', data, 6 + 4, 5, 7)
    directory = parse(bytes(data))
    assert directory.is_cursor
    assert directory.icon_type == IconType.CURSOR
    entry = directory.entries[0]
    assert (entry.hotspot_x, entry.hotspot_y) == (5, 7)
    assert directory.images[0].size == (2, 2)


def test_zero_dimension_means_256():
    big = image(b'', 256, 256)
    data = build_ico([big])
    directory = parse(data)
    entry = directory.entries[0]
    assert (entry.width, entry.height) == (0, 0)
    assert (entry.pixel_width, entry.pixel_height) == (256, 256)


def test_results_are_immutable():
    directory = parse(build_ico([mono_image()]))
    with pytest.raises(AttributeError):
        directory.entries[0].image = None
    with pytest.raises(TypeError):
        directory.images[0] = None


def test_parse_stream_reads_forward_only():
    class ForwardOnly(io.RawIOBase):
        def __init__(self, data):
            self._buf = io.BytesIO(data)

        def readable(self):
            return True

        def readinto(self, b):
            # Hand out at most 5 bytes per call to exercise short reads.
            chunk = self._buf.read(min(len(b), 5))
            b[:len(chunk)] = chunk
            return len(chunk)

        def seekable(self):
            return False

    data = build_ico([red_image(4), mono_image()], storage_order=[1, 0])
    directory = parse_stream(ForwardOnly(data))
    assert all(img is not None for img in directory.images)


def test_resource_locator():
    directory = parse(build_ico([mono_image(), red_image()]))
    first, second = directory.entries
    locator = ResourceLocator([first, second])
    assert len(locator) == 2
    assert locator.claim(5) is None
    assert locator.next_offset(0) == first.image_offset
    assert locator.claim(first.image_offset) == first
    assert locator.claim(first.image_offset) is None
    assert locator.next_offset(first.image_offset) == second.image_offset
    assert len(locator) == 1


def test_oversized_bitmap_header_in_file(tmp_path):
    # 2**24 x 2**24 pixels at 32 bpp, backed by a few bytes.
    header = struct.pack(BITMAPINFOHEADER_FORMAT, 40, 1 << 24, 1 << 25, 1, 32, 0, 0, 0, 0, 0, 0)
    huge = image(header + bytes(32), 16, 16, bit_count=32)
    path = tmp_path / "huge.ico"
    path.write_bytes(build_ico([huge, mono_image()]))
    directory = parse(path)
    assert directory.images[0] is None
    assert directory.images[1].size == (2, 2)


def test_png_claiming_more_than_the_file_holds(tmp_path):
    png = image(png_block(), 3, 2, bit_count=32, size=0xFFFFFFFF)
    path = tmp_path / "long.ico"
    path.write_bytes(build_ico([mono_image(), png]))
    directory = parse(path)
    assert directory.images[0] is not None
    assert directory.images[1] is None


def test_unclaimed_png_resynchronizes_to_next_entry(caplog):
    # The PNG record points nowhere, so its block has no known length.
    data = build_ico([image(png_block(), 3, 2, bit_count=32, offset=9999), mono_image()])
    with caplog.at_level(logging.WARNING):
        directory = parse(data)
    assert directory.images[0] is None
    assert directory.images[1].get_pixel(1, 0) == OPAQUE_WHITE
    assert "Unclaimed PNG block" in caplog.text


def test_unclaimed_png_with_nothing_ahead_stops(caplog):
    data = build_ico([mono_image(), image(png_block(), 3, 2, bit_count=32, offset=5)])
    with caplog.at_level(logging.WARNING):
        directory = parse(data)
    assert directory.images[0] is not None
    assert directory.images[1] is None
    assert "Unclaimed PNG block" in caplog.text

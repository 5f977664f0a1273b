# icofile/core/png_decoder.py

from __future__ import annotations
import io
import logging
import struct

from PIL import Image, UnidentifiedImageError

from .ico_base import DecodedImage
from .ico_errors import ImageDecodeError, PNGDecodeError
from .stream_reader import ForwardReader

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'
# The signature read back as two little-endian DWORDs.
PNG_MAGIC_1, PNG_MAGIC_2 = struct.unpack('<II', PNG_SIGNATURE)


def is_png_signature(first: int, second: int) -> bool:
    return first == PNG_MAGIC_1 and second == PNG_MAGIC_2


def image_from_pil(img: Image.Image) -> DecodedImage:
    """Repacks a Pillow image as an ARGB DecodedImage."""
    rgba = img.convert("RGBA")
    pixels = [(a << 24) | (r << 16) | (g << 8) | b for r, g, b, a in struct.iter_unpack('<BBBB', rgba.tobytes())]
    return DecodedImage(rgba.width, rgba.height, pixels)


def decode_png_bytes(data: bytes) -> DecodedImage:
    """Return a DecodedImage from a complete PNG stream."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "PNG":
                raise PNGDecodeError(f"Embedded payload decoded as {img.format}, not PNG.")
            img.load()
            logger.debug("PNG %dx%d, mode %s", img.width, img.height, img.mode)
            return image_from_pil(img)
    except UnidentifiedImageError as e:
        raise PNGDecodeError(f"Cannot identify embedded PNG: {e}") from e
    except (OSError, SyntaxError, ValueError, EOFError, struct.error, Image.DecompressionBombError) as e:
        # Pillow reports truncated or corrupt chunks through these.
        raise PNGDecodeError(f"Corrupt embedded PNG: {e}") from e


def read_png_resource(reader: ForwardReader, first: int, second: int, bytes_in_resource: int) -> bytes:
    """
    Rebuilds the full PNG resource: the two signature DWORDs already consumed
    by the dispatcher, followed by the rest of the block read verbatim.
    """
    if bytes_in_resource < len(PNG_SIGNATURE):
        raise ImageDecodeError(f"PNG resource of {bytes_in_resource} bytes is shorter than its signature.")
    body = reader.read_exact(bytes_in_resource - len(PNG_SIGNATURE))
    return struct.pack('<II', first, second) + body

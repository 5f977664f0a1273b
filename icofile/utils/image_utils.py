# icofile/utils/image_utils.py

from __future__ import annotations
import logging
import os
from typing import List, Optional

from PIL import Image

from ..core.ico_base import DecodedImage, IconDirectory

logger = logging.getLogger(__name__)


def to_pil_image(decoded: DecodedImage) -> Image.Image:
    """Return an RGBA PIL Image holding the pixels of a DecodedImage."""
    raw = bytearray()
    for p in decoded.pixels:
        raw += bytes(((p >> 16) & 0xFF, (p >> 8) & 0xFF, p & 0xFF, (p >> 24) & 0xFF))
    return Image.frombytes("RGBA", decoded.size, bytes(raw))


def export_filename(directory: IconDirectory, index: int, stem: str) -> str:
    """
    Builds a file name such as `app_2_32x32.png`, or `arrow_0_32x32_hot5-7.png`
    for cursors so the hotspot survives the export.
    """
    image = directory.get_image(index)
    name = f"{stem}_{index}_{image.width}x{image.height}"
    if directory.is_cursor:
        entry = next((e for e in directory.entries if e.index == index), None)
        if entry is not None:
            name += f"_hot{entry.hotspot_x}-{entry.hotspot_y}"
    return name + ".png"


def save_images(directory: IconDirectory, out_dir: str, stem: str = "icon") -> List[Optional[str]]:
    """
    Writes every decoded image of `directory` into `out_dir` as PNG.
    Returns the written paths aligned with `directory.images`; empty slots give None.
    """
    os.makedirs(out_dir, exist_ok=True)
    written: List[Optional[str]] = []
    for index, decoded in enumerate(directory.images):
        if decoded is None:
            logger.info("Slot %d has no decoded image, skipping.", index)
            written.append(None)
            continue
        filepath = os.path.join(out_dir, export_filename(directory, index, stem))
        to_pil_image(decoded).save(filepath, format="PNG")
        logger.info("Image %d saved to %s", index, filepath)
        written.append(filepath)
    return written

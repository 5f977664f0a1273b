# icofile/__main__.py

import argparse
import logging
import os
import sys

import requests
from pydantic import ValidationError

from .core.decode_options import DecodeOptions
from .core.ico_errors import HeaderError
from .core.ico_parser import parse
from .utils.image_utils import save_images


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="icofile",
        description="Decode Windows .ico/.cur files and list or export their images.",
    )
    parser.add_argument("source", help="Path or URL of the icon or cursor file.")
    parser.add_argument("--export", metavar="DIR", help="Write every decoded image to DIR as PNG.")
    parser.add_argument("--no-flip-32bpp", dest="flip_32bpp_rows", action="store_const", const=False,
                        help="Keep 32 bpp rows in stored order instead of reading them bottom-up.")
    parser.add_argument("--raw-555", dest="expand_555", action="store_const", const=False,
                        help="Do not scale 16 bpp 5-bit channels to 8 bits.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(name)s: %(message)s",
    )
    log = logging.getLogger("icofile")

    try:
        options = DecodeOptions.from_env(flip_32bpp_rows=args.flip_32bpp_rows, expand_555=args.expand_555)
    except ValidationError as e:
        log.error("Invalid ICOFILE_* configuration: %s", e)
        return 2

    try:
        directory = parse(args.source, options)
    except HeaderError as e:
        log.error("Not a valid icon or cursor file '%s': %s", args.source, e)
        return 2
    except (OSError, requests.RequestException) as e:
        log.error("Cannot read '%s': %s", args.source, e)
        return 1

    print(f"{args.source}: {directory.icon_type.name.lower()}, {directory.count} declared, "
          f"{len(directory.entries)} usable")
    for entry in directory.entries:
        image = entry.image
        decoded = f"{image.width}x{image.height}" if image is not None else "not decoded"
        kind = "DIB" if entry.bitmap is not None else ("PNG" if image is not None else "-")
        if directory.is_cursor:
            detail = f"hotspot=({entry.hotspot_x}, {entry.hotspot_y})"
        else:
            detail = f"planes={entry.planes} bpp={entry.bit_count}"
        print(f"  [{entry.index}] {entry.pixel_width}x{entry.pixel_height} colors={entry.color_count} "
              f"{detail} bytes={entry.bytes_in_resource} offset={entry.image_offset} {kind}: {decoded}")

    if args.export:
        stem = os.path.splitext(os.path.basename(args.source.rstrip("/")))[0] or "icon"
        written = save_images(directory, args.export, stem)
        print(f"Exported {sum(1 for p in written if p)} image(s) to {args.export}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

import argparse
import logging
import sys
from typing import List, Optional

from qoi_decoder.errors import QOIError
from qoi_decoder.reader import ImageDecoder, to_image


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="qoi_decoder", description="Decode a QOI file")
    parser.add_argument("file", help="file to decode")
    parser.add_argument("--pixels", "-p", action="store_true", help="print every decoded pixel")
    parser.add_argument("--output", "-o", help="save the decoded image as (any format Pillow can write)")
    parser.add_argument("--channels", "-c", type=int, choices=(3, 4), help="output channels, defaults to the header's")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        with open(args.file, "rb") as file:
            decoder = ImageDecoder(file)
            header = decoder.header
            print(f"width: {header.width}, height: {header.height}, "
                  f"channels: {header.channels}, colorspace: {header.colorspace}")
            pixels = []
            for pixel in decoder.chunks_iter():
                if args.pixels:
                    print(pixel)
                pixels.append(pixel)
    except (OSError, QOIError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(f"pixels: {len(pixels)}")

    if args.output:
        try:
            to_image(header, pixels, args.channels).save(args.output)
        except (OSError, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print(f"saved {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

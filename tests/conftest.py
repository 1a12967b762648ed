import io
import random
from io import BytesIO
from typing import List, Sequence, Tuple

import pytest

from qoi_decoder.utils import to_u8bit, QOI_END_MARKER


def write_header(width: int, height: int, channels: int, colorspace: int, destination: BytesIO):
    destination.write(b"qoif")
    destination.write(width.to_bytes(4, "big"))
    destination.write(height.to_bytes(4, "big"))
    destination.write(to_u8bit(channels))
    destination.write(to_u8bit(colorspace))


def write_stream_end(destination: BytesIO):
    destination.write(QOI_END_MARKER)


def _signed(diff: int) -> int:
    diff &= 0xff
    return diff - 256 if diff > 127 else diff


def encode(pixels: Sequence[Tuple[int, int, int, int]], width: int, height: int, channels: int = 4) -> bytes:
    """ a straightforward qoi encoder, only used to produce streams for the decoder under test """
    destination = BytesIO()
    write_header(width, height, channels, 0, destination)
    index = [(0, 0, 0, 0)] * 64
    previous = (0, 0, 0, 255)
    run = 0
    for position, pixel in enumerate(pixels):
        r, g, b, a = pixel
        if pixel == previous:
            run += 1
            if run == 62 or position == len(pixels) - 1:
                destination.write(to_u8bit(0xc0 | (run - 1)))
                run = 0
            continue
        if run:
            destination.write(to_u8bit(0xc0 | (run - 1)))
            run = 0
        index_position = (r * 3 + g * 5 + b * 7 + a * 11) % 64
        if index[index_position] == pixel:
            destination.write(to_u8bit(index_position))
        else:
            index[index_position] = pixel
            if a == previous[3]:
                vr = _signed(r - previous[0])
                vg = _signed(g - previous[1])
                vb = _signed(b - previous[2])
                vg_r = vr - vg
                vg_b = vb - vg
                if -3 < vr < 2 and -3 < vg < 2 and -3 < vb < 2:
                    destination.write(to_u8bit(0x40 | (vr + 2) << 4 | (vg + 2) << 2 | (vb + 2)))
                elif -9 < vg_r < 8 and -33 < vg < 32 and -9 < vg_b < 8:
                    destination.write(to_u8bit(0x80 | (vg + 32)))
                    destination.write(to_u8bit((vg_r + 8) << 4 | (vg_b + 8)))
                else:
                    destination.write(bytes((0xfe, r, g, b)))
            else:
                destination.write(bytes((0xff, r, g, b, a)))
        previous = pixel
    write_stream_end(destination)
    return destination.getvalue()


def random_image(seed: int, count: int, opaque: bool = False) -> List[Tuple[int, int, int, int]]:
    """ pixels that exercise every chunk kind: repeats, small & medium deltas, cache hits & new colors """
    rng = random.Random(seed)
    palette = [(rng.randrange(256), rng.randrange(256), rng.randrange(256), 255 if opaque else rng.randrange(256))
               for _ in range(12)]
    pixels = []
    current = (0, 0, 0, 255)
    while len(pixels) < count:
        roll = rng.random()
        if roll < 0.15:
            pixels.extend([current] * rng.randrange(1, 80))
            continue
        if roll < 0.35:
            current = rng.choice(palette)
        elif roll < 0.55:
            current = tuple((c + rng.randrange(-2, 2)) & 0xff for c in current[:3]) + (current[3],)
        elif roll < 0.8:
            dg = rng.randrange(-32, 32)
            current = ((current[0] + dg + rng.randrange(-8, 8)) & 0xff,
                       (current[1] + dg) & 0xff,
                       (current[2] + dg + rng.randrange(-8, 8)) & 0xff,
                       current[3])
        else:
            current = (rng.randrange(256), rng.randrange(256), rng.randrange(256),
                       255 if opaque else rng.randrange(256))
        pixels.append(current)
    return pixels[:count]


@pytest.fixture
def qoi_encode():
    return encode


@pytest.fixture
def qoi_header():
    def _header(width: int, height: int, channels: int = 4, colorspace: int = 0) -> bytes:
        destination = BytesIO()
        write_header(width, height, channels, colorspace, destination)
        return destination.getvalue()
    return _header


@pytest.fixture
def make_image():
    return random_image


class ShortReads(io.RawIOBase):
    """ a raw source that hands out at most `limit` bytes per read, like a pipe or a socket """

    def __init__(self, data: bytes, limit: int):
        self._data = BytesIO(data)
        self.limit = limit

    def readable(self):
        return True

    def readinto(self, buffer):
        chunk = self._data.read(min(len(buffer), self.limit))
        buffer[:len(chunk)] = chunk
        return len(chunk)


@pytest.fixture
def short_reads():
    return ShortReads

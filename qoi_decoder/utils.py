import struct
from functools import cache
from typing import BinaryIO, List, Optional

from qoi_decoder.errors import TruncatedStreamError

QOI_MAGIC = b"qoif"
QOI_HEADER_SIZE = 14
QOI_WINDOW_SIZE = 8
QOI_END_MARKER = bytes([0, 0, 0, 0, 0, 0, 0, 1])
QOI_RUNNING_ARRAY_SIZE = 64


@cache
def to_u8bit(num: int):
    if num < 0:
        num = 256 + num
    return struct.pack("=B", num)


def read_exact(source: BinaryIO, number_of_bytes: int) -> bytes:
    """ reads until number_of_bytes bytes are gathered or the source is exhausted """
    data = bytearray()
    while len(data) < number_of_bytes:
        chunk = source.read(number_of_bytes - len(data))
        if not chunk:
            break
        data += chunk
    return bytes(data)


class WrappedU8:
    """ An unsigned 8 bit value, addition and subtraction wrap around modulo 256 """

    def __init__(self, value: int):
        self.value = value & 0xff

    def __add__(self, other: int) -> "WrappedU8":
        return WrappedU8(self.value + other)

    def __sub__(self, other: int) -> "WrappedU8":
        return WrappedU8(self.value - other)

    def __eq__(self, other):
        if isinstance(other, WrappedU8):
            return self.value == other.value
        return NotImplemented

    def __hash__(self):
        return hash(self.value)

    def __repr__(self):
        return f"WrappedU8({self.value})"


class Pixel:
    """ An immutable RGBA value, equal to any other pixel with the same components """

    __slots__ = ("r", "g", "b", "a", "qoi_index")

    def __init__(self, red: int, green: int, blue: int, alpha: int):
        object.__setattr__(self, "r", red)
        object.__setattr__(self, "g", green)
        object.__setattr__(self, "b", blue)
        object.__setattr__(self, "a", alpha)
        object.__setattr__(self, "qoi_index", self._get_hash())

    def __setattr__(self, name, value):
        raise AttributeError(f"a pixel can't be changed, build a new one instead of setting {name}")

    def __delattr__(self, name):
        raise AttributeError(f"a pixel can't be changed, {name} can't be deleted")

    def _get_hash(self) -> int:
        return (self.r * 3 + self.g * 5 + self.b * 7 + self.a * 11) % QOI_RUNNING_ARRAY_SIZE

    def to_channels3(self) -> bytes:
        return bytes((self.r, self.g, self.b))

    def to_channels4(self) -> bytes:
        return bytes((self.r, self.g, self.b, self.a))

    def to_channels(self, channels: int) -> bytes:
        """ serializes the pixel as 3 (rgb) or 4 (rgba) bytes """
        if channels == 3:
            return self.to_channels3()
        if channels == 4:
            return self.to_channels4()
        raise ValueError(f"a pixel can only be serialized to 3 or 4 channels, not {channels}")

    def to_rgba32(self) -> int:
        return int.from_bytes(self.to_channels4(), "big")

    def __eq__(self, other):
        if not isinstance(other, Pixel):
            return NotImplemented
        return (self.r, self.g, self.b, self.a) == (other.r, other.g, other.b, other.a)

    def __hash__(self):
        return hash((self.r, self.g, self.b, self.a))

    def __str__(self):
        return f"rgb: {self.r} {self.g} {self.b}, alpha: {self.a}"

    def __repr__(self):
        return f"Pixel({self.r}, {self.g}, {self.b}, {self.a})"


QOI_START_PIXEL = Pixel(0, 0, 0, 255)


class RunningArray:
    """ A 64 value long hash map that is constantly updated """

    DEFAULT_PIXEL = Pixel(0, 0, 0, 0)

    def __init__(self):
        self._pixels: List[Pixel] = [self.DEFAULT_PIXEL for _ in range(QOI_RUNNING_ARRAY_SIZE)]

    def add(self, pixel: Pixel):
        self._pixels[pixel.qoi_index] = pixel

    def get(self, qoi_index: int) -> Pixel:
        return self._pixels[qoi_index]

    def __len__(self):
        return len(self._pixels)


class StreamWindow:
    """
    An 8 byte lookahead over a binary source.
    Only the bytes consumed by the previous chunk are read again on refill.
    """

    def __init__(self, source: BinaryIO):
        self.source = source
        self.buffer = bytearray(QOI_WINDOW_SIZE)
        self.processed: int = QOI_WINDOW_SIZE

    def consume(self, number_of_bytes: int):
        """ marks number_of_bytes bytes at the front of the window as used """
        self.processed = number_of_bytes

    def refill(self, number_of_bytes: Optional[int] = None):
        """ rotates the window left by number_of_bytes & reads as many fresh bytes into its tail """
        if number_of_bytes is None:
            number_of_bytes = self.processed
        if not 0 <= number_of_bytes <= QOI_WINDOW_SIZE:
            raise ValueError(f"can't refill {number_of_bytes} bytes of an {QOI_WINDOW_SIZE} byte window")
        if number_of_bytes:
            fresh: bytes = read_exact(self.source, number_of_bytes)
            if len(fresh) != number_of_bytes:
                raise TruncatedStreamError(
                    f"expected {number_of_bytes} more bytes, the source gave {len(fresh)}"
                )
            self.buffer = self.buffer[number_of_bytes:] + fresh
        self.processed = 0

    def is_end_marker(self) -> bool:
        return self.buffer == QOI_END_MARKER

    def __getitem__(self, item):
        return self.buffer[item]


class ChunkType:
    QOI_OP_RGB = 0
    QOI_OP_RGBA = 1
    QOI_OP_INDEX = 2
    QOI_OP_DIFF = 3
    QOI_OP_LUMA = 4
    QOI_OP_RUN = 5


class Context:
    """ The mutable state of a single decode session """

    def __init__(self):
        self.previous_pixel: Pixel = QOI_START_PIXEL
        self.running_array = RunningArray()
        self.run_active: bool = False
        self.run_length: int = 0

    def apply(self, chunk) -> Pixel:
        """ reconstructs the pixel of a non run chunk, caches it & makes it the previous pixel """
        pixel: Pixel = chunk.reconstruct(self)
        self.running_array.add(pixel)
        self.previous_pixel = pixel
        return pixel

    def start_run(self, chunk) -> Pixel:
        """ queues the repetitions of a run chunk, returns the first one right away """
        self.run_active = True
        self.run_length = chunk.run
        return self.previous_pixel

    def next_run_pixel(self) -> Optional[Pixel]:
        """ returns the next repetition of the active run, None once it is exhausted """
        if not self.run_active:
            return None
        if self.run_length > 0:
            self.run_length -= 1
            return self.previous_pixel
        self.run_active = False
        return None

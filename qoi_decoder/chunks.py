from typing import List, Type

from qoi_decoder.errors import FaultyChunkError
from qoi_decoder.utils import Context, to_u8bit, Pixel, ChunkType, StreamWindow, WrappedU8


class GenericChunk:

    TAG: bytes
    TAG_BIT_MASK: bytes
    TYPE: int
    SIZE: int

    @classmethod
    def match_tag(cls, tag: int) -> bool:
        """ returns whether the given tag byte matches the chunk's tag """
        return cls.TAG == to_u8bit(tag & cls.TAG_BIT_MASK[0])

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "GenericChunk":
        """ builds the chunk from the window's leading bytes """
        raise NotImplementedError

    def reconstruct(self, context: Context) -> Pixel:
        """ returns the pixel the chunk encodes given the context """
        raise NotImplementedError

    def _payload(self) -> tuple:
        return ()

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self._payload() == other._payload()

    def __hash__(self):
        return hash((self.TYPE, self._payload()))

    def __repr__(self):
        return f"{type(self).__name__}{self._payload()}"


class RGBChunk(GenericChunk):

    TAG = to_u8bit(254)
    TAG_BIT_MASK = to_u8bit(255)
    TYPE = ChunkType.QOI_OP_RGB
    SIZE = 4

    def __init__(self, pixel: Pixel):
        self.pixel = pixel

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "RGBChunk":
        # alpha is taken now, before the previous pixel moves on
        return cls(Pixel(window[1], window[2], window[3], context.previous_pixel.a))

    def reconstruct(self, context: Context) -> Pixel:
        return self.pixel

    def _payload(self) -> tuple:
        return (self.pixel,)


class RGBAChunk(GenericChunk):

    TAG = to_u8bit(255)
    TAG_BIT_MASK = to_u8bit(255)
    TYPE = ChunkType.QOI_OP_RGBA
    SIZE = 5

    def __init__(self, pixel: Pixel):
        self.pixel = pixel

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "RGBAChunk":
        return cls(Pixel(window[1], window[2], window[3], window[4]))

    def reconstruct(self, context: Context) -> Pixel:
        return self.pixel

    def _payload(self) -> tuple:
        return (self.pixel,)


class INDEXChunk(GenericChunk):

    TAG = to_u8bit(0)
    TAG_BIT_MASK = to_u8bit(192)
    TYPE = ChunkType.QOI_OP_INDEX
    SIZE = 1

    def __init__(self, index: int):
        self.index = index

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "INDEXChunk":
        return cls(window[0] & 0x3f)

    def reconstruct(self, context: Context) -> Pixel:
        return context.running_array.get(self.index)

    def _payload(self) -> tuple:
        return (self.index,)


class DIFFChunk(GenericChunk):

    TAG = to_u8bit(64)
    TAG_BIT_MASK = to_u8bit(192)
    TYPE = ChunkType.QOI_OP_DIFF
    SIZE = 1

    def __init__(self, r_diff: int, g_diff: int, b_diff: int):
        self.r_diff = r_diff
        self.g_diff = g_diff
        self.b_diff = b_diff

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "DIFFChunk":
        byte: int = window[0]
        r_diff: int = ((byte & 0x30) >> 4) - 2
        g_diff: int = ((byte & 0x0c) >> 2) - 2
        b_diff: int = (byte & 0x03) - 2
        return cls(r_diff, g_diff, b_diff)

    def reconstruct(self, context: Context) -> Pixel:
        previous: Pixel = context.previous_pixel
        return Pixel(
            (WrappedU8(previous.r) + self.r_diff).value,
            (WrappedU8(previous.g) + self.g_diff).value,
            (WrappedU8(previous.b) + self.b_diff).value,
            previous.a
        )

    def _payload(self) -> tuple:
        return self.r_diff, self.g_diff, self.b_diff


class LUMAChunk(GenericChunk):

    TAG = to_u8bit(128)
    TAG_BIT_MASK = to_u8bit(192)
    TYPE = ChunkType.QOI_OP_LUMA
    SIZE = 2

    def __init__(self, green_diff: int, dr_dg: int, db_dg: int):
        self.green_diff = green_diff
        self.dr_dg = dr_dg
        self.db_dg = db_dg

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "LUMAChunk":
        green_diff: int = (window[0] & 0x3f) - 32
        second_byte: int = window[1]
        dr_dg: int = ((second_byte & 0xf0) >> 4) - 8
        db_dg: int = (second_byte & 0x0f) - 8
        return cls(green_diff, dr_dg, db_dg)

    def reconstruct(self, context: Context) -> Pixel:
        previous: Pixel = context.previous_pixel
        return Pixel(
            (WrappedU8(previous.r) + self.green_diff + self.dr_dg).value,
            (WrappedU8(previous.g) + self.green_diff).value,
            (WrappedU8(previous.b) + self.green_diff + self.db_dg).value,
            previous.a
        )

    def _payload(self) -> tuple:
        return self.green_diff, self.dr_dg, self.db_dg


class RUNChunk(GenericChunk):

    TAG = to_u8bit(192)
    TAG_BIT_MASK = to_u8bit(192)
    TYPE = ChunkType.QOI_OP_RUN
    SIZE = 1

    def __init__(self, run: int):
        # raw 0..61, the stream stores the repetitions minus one
        self.run = run

    @classmethod
    def from_window(cls, window: StreamWindow, context: Context) -> "RUNChunk":
        return cls(window[0] & 0x3f)

    def reconstruct(self, context: Context) -> Pixel:
        raise RuntimeError("run chunks repeat the previous pixel, they are expanded by the context")

    @property
    def repetitions(self) -> int:
        return self.run + 1

    def _payload(self) -> tuple:
        return (self.run,)


# Chunk queue, determines the priority of each chunk on the others while reading.
# The 8 bit tags come first since RUN's 2 bit tag also matches them.

READ_CHUNK_QUEUE: List[Type[GenericChunk]] = [
    RGBAChunk,
    RGBChunk,
    INDEXChunk,
    DIFFChunk,
    LUMAChunk,
    RUNChunk
]


def classify_tag(tag: int, queue: List[Type[GenericChunk]] = READ_CHUNK_QUEUE) -> Type[GenericChunk]:
    """ returns the first chunk class of the queue whose tag matches """
    for chunk in queue:
        if chunk.match_tag(tag):
            return chunk
    raise FaultyChunkError(tag)


def decode_chunk(
        window: StreamWindow,
        context: Context,
        queue: List[Type[GenericChunk]] = READ_CHUNK_QUEUE
) -> GenericChunk:
    """ classifies the window's tag byte & builds the matching chunk, doesn't touch the context """
    return classify_tag(window[0], queue).from_window(window, context)

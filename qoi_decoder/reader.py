import logging
import struct
from enum import Enum
from io import BytesIO
from typing import BinaryIO, Iterable, List, NamedTuple, Optional, Tuple, Union

from PIL import Image

from qoi_decoder.chunks import decode_chunk, RUNChunk, GenericChunk
from qoi_decoder.errors import HeaderError, IncorrectMagicError, QOIError
from qoi_decoder.utils import Context, Pixel, StreamWindow, QOI_HEADER_SIZE, QOI_MAGIC, read_exact

logger = logging.getLogger(__name__)


class Header(NamedTuple):
    width: int
    height: int
    channels: int
    colorspace: int


def read_header(source: BinaryIO) -> Header:
    """ reads & validates the 14 byte header at the start of the source """
    header_bytes: bytes = read_exact(source, QOI_HEADER_SIZE)
    if len(header_bytes) != QOI_HEADER_SIZE:
        raise HeaderError(f"expected a {QOI_HEADER_SIZE} byte header, got {len(header_bytes)} bytes")
    magic, width, height, channels, colorspace = struct.unpack(">4sIIBB", header_bytes)
    if magic != QOI_MAGIC:
        raise IncorrectMagicError(magic)
    header = Header(width, height, channels, colorspace)
    logger.debug("read header %s", header)
    return header


class DecoderState(Enum):
    """Lifecycle state of a decode session."""
    IDLE = "idle"
    STREAMING = "streaming"
    ENDED = "ended"
    FAULTED = "faulted"


class DecodeChunks:
    """
    Lazily decodes the chunks following a header into pixels.

    One pixel is produced per step, run repetitions included. Iteration stops
    on the end marker; any fault raises and leaves the session FAULTED, after
    which nothing more is read from the source.
    """

    def __init__(self, source: BinaryIO):
        self.window = StreamWindow(source)
        self.context = Context()
        self.state = DecoderState.IDLE

    def next_pixel(self) -> Optional[Pixel]:
        """ returns the next pixel, None once the end marker has been reached """
        if self.state in (DecoderState.ENDED, DecoderState.FAULTED):
            return None
        self.state = DecoderState.STREAMING
        try:
            return self._step()
        except QOIError:
            self.state = DecoderState.FAULTED
            raise

    def _step(self) -> Optional[Pixel]:
        if self.context.run_active:
            pixel = self.context.next_run_pixel()
            if pixel is not None:
                return pixel

        self.window.refill()
        if self.window.is_end_marker():
            logger.debug("found the end marker")
            self.state = DecoderState.ENDED
            return None

        try:
            chunk: GenericChunk = decode_chunk(self.window, self.context)
        except QOIError:
            logger.warning("faulty chunk in window %s", self.window.buffer.hex())
            raise
        self.window.consume(chunk.SIZE)

        if isinstance(chunk, RUNChunk):
            logger.debug("run of %d pixels", chunk.repetitions)
            return self.context.start_run(chunk)
        return self.context.apply(chunk)

    def __iter__(self):
        return self

    def __next__(self) -> Pixel:
        pixel = self.next_pixel()
        if pixel is None:
            raise StopIteration
        return pixel


class ImageDecoder:
    """ Owns a binary source positioned right after a valid header """

    def __init__(self, source: BinaryIO):
        self.source = source
        self.header: Header = read_header(source)
        self._session: Optional[DecodeChunks] = None

    def chunks_iter(self) -> DecodeChunks:
        """ returns the decode session over the source, the stream can only be read once """
        if self._session is None:
            logger.debug("starting a decode session for a %dx%d image", self.header.width, self.header.height)
            self._session = DecodeChunks(self.source)
        return self._session

    def __iter__(self):
        return self.chunks_iter()


def pixels_to_bytes(pixels: Iterable[Pixel], channels: int) -> bytes:
    """ serializes the pixels one after the other with 3 (rgb) or 4 (rgba) bytes each """
    if channels not in (3, 4):
        raise ValueError(f"channels must be 3 or 4, not {channels}")
    pixels_buffer = BytesIO()
    for pixel in pixels:
        pixels_buffer.write(pixel.to_channels(channels))
    return pixels_buffer.getvalue()


def _as_source(input_stream: Union[bytes, bytearray, BinaryIO]) -> BinaryIO:
    if isinstance(input_stream, (bytes, bytearray, memoryview)):
        return BytesIO(input_stream)
    return input_stream


def read_pixels(input_stream: Union[bytes, bytearray, BinaryIO]) -> Tuple[Header, List[Pixel]]:
    decoder = ImageDecoder(_as_source(input_stream))
    return decoder.header, list(decoder.chunks_iter())


def to_image(header: Header, pixels: Iterable[Pixel], channels: Optional[int] = None) -> Image.Image:
    """ packs decoded pixels into a Pillow image, RGBA for 4 channels & RGB for 3 """
    if channels is None:
        channels = header.channels
    mode = "RGBA" if channels == 4 else "RGB"
    return Image.frombytes(mode, (header.width, header.height), pixels_to_bytes(pixels, channels), "raw", mode)


def read(input_stream: Union[bytes, bytearray, BinaryIO], channels: Optional[int] = None) -> Image.Image:
    """
    Decodes a whole qoi stream into a Pillow image.
    The channel count is taken from the header unless overridden.
    """
    header, pixels = read_pixels(input_stream)
    return to_image(header, pixels, channels)

class QOIError(Exception):
    """ base class of every fault raised while decoding a qoi stream """


class HeaderError(QOIError):
    """ the source could not supply a full 14 byte header """


class IncorrectMagicError(HeaderError):

    def __init__(self, magic: bytes):
        super().__init__(f"expected magic b'qoif', found {magic!r}")
        self.magic = magic


class TruncatedStreamError(QOIError):
    """ the source ran out of bytes before the end marker """


class FaultyChunkError(QOIError):
    """ a tag byte didn't match any known chunk """

    def __init__(self, tag: int):
        super().__init__(f"unrecognized chunk, tag {tag:#04x}")
        self.tag = tag

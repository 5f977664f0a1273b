# icofile/core/ico_errors.py

class IconError(Exception):
    """Base class for all errors raised while decoding an ICO/CUR container."""


class HeaderError(IconError):
    """
    The container header or directory table is unusable.
    Fatal: the whole parse is aborted and no directory is returned.
    """


class DirectoryEntryError(IconError):
    """A directory record is malformed (nonzero reserved byte). The record is dropped."""

    def __init__(self, index: int, message: str):
        super().__init__(f"Directory entry {index}: {message}")
        self.index = index


class ImageDecodeError(IconError):
    """A single image block could not be decoded. Its slot is left empty."""


class TruncatedDataError(ImageDecodeError):
    """The byte source ended in the middle of a structure."""

    def __init__(self, wanted: int, got: int, offset: int):
        super().__init__(f"Expected {wanted} bytes at offset {offset}, got {got}.")
        self.wanted = wanted
        self.got = got
        self.offset = offset


class PNGDecodeError(ImageDecodeError):
    """Pillow rejected an embedded PNG payload."""

class FITSError(Exception):
    """Base class for everything fitscodec raises on purpose."""
    pass


class StructuralError(FITSError, ValueError):
    """The byte stream itself is corrupt; always fatal."""
    pass


class MisalignedFile(StructuralError):
    """
    The buffer is empty, doesn't open with a SIMPLE card, or its length is not
    an exact multiple of the 2880-byte block size.
    """
    pass


class TruncatedHeader(StructuralError):
    """A header ran out of blocks before we found its END card."""
    pass


class NonconformingHeader(StructuralError):
    """
    A header breaks the rules for its mandatory keywords, or its records
    hold something other than printable ASCII.
    """

    def __init__(self, message: str, hdu: int = None):
        super().__init__(message)
        self.hdu = hdu


class TruncatedData(StructuralError):
    """The data area is smaller than the header says it should be."""
    pass


class MisorderedHDU(StructuralError):
    """A file must open with exactly one PRIMARY HDU, extensions after it."""
    pass


class HeaderError(FITSError):
    """Header construction or mutation contract violation."""

    def __init__(self, message: str, keyword: str = None):
        super().__init__(message)
        self.keyword = keyword


class IllegalKeyword(HeaderError, ValueError):
    """Keyword is too long or contains characters outside [A-Z0-9_-]."""
    pass


class UnparsableValue(HeaderError, ValueError):
    """We can't figure out what type the value field of a record holds."""
    pass


class IllegalValue(HeaderError, ValueError):
    """This value can't be written into a header record."""
    pass


class KeywordInUse(HeaderError, KeyError):
    """The header already has this keyword."""

    def __str__(self):
        return str(self.args[0])


class KeywordNotFound(HeaderError, KeyError):
    """The header doesn't have this keyword."""

    def __str__(self):
        return str(self.args[0])


class MandatoryKeywordProtected(HeaderError):
    """
    Deleting or renaming this keyword would make the header nonconforming for
    its HDU type.
    """
    pass


class DataModelError(FITSError):
    """The typed data doesn't fit what this codec can represent."""
    pass


class UnsupportedDataType(DataModelError, TypeError):
    """No BITPIX / TFORM mapping exists for this element type."""
    pass


class TooManyDimensions(DataModelError, ValueError):
    """Primary and image HDUs are limited to three axes."""
    pass


class InconsistentRowType(DataModelError, TypeError):
    """A table row decoded to different element types than row 1 did."""
    pass


class ShapeMismatch(DataModelError, ValueError):
    """Header dimension cards disagree with the shape of the data."""
    pass


class InvalidFormatDescriptor(FITSError, ValueError):
    """A TFORM/TDISP descriptor failed validation."""

    def __init__(self, descriptor: str, reason: str):
        super().__init__(f"invalid format descriptor {descriptor!r}: {reason}")
        self.descriptor = descriptor
        self.reason = reason


class HeapNotImplemented(FITSError, NotImplementedError):
    """Variable-length array (P/Q) fields point into a heap we don't read."""
    pass


class DuplicateKeyWarning(UserWarning):
    """This header has more than one card with the same keyword."""
    pass


class NonstandardHeaderWarning(UserWarning):
    """We tolerated something the standard doesn't strictly allow."""
    pass

"""
Forward-only decoding of tar archives from any binary stream.
"""

from tarstream.fields import FieldError, TarError
from tarstream.header import (BLOCKDEV, CHARDEV, DIRECTORY, FIFO, FILE,
                              HARDLINK, SYMLINK, ChecksumMismatch, TarHeader)
from tarstream.untar import (MalformedExtendedAttribute, StreamExhausted,
                             TarReader, untar)

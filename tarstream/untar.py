"""
Streaming reader for tar archives. A TarReader is a cursor: call
read_header() to get the next member, then read_data() (or skip_data()) to
consume its body, and repeat until read_header() returns None.

Continuation records (GNU long names and long links, pax extended headers)
are folded into the header of the member they describe and never returned
on their own.
"""

import logging
from typing import Any, BinaryIO, Dict, Generator, Iterator, Optional, Tuple
from tarstream.fields import TarError, decode_string
from tarstream.header import (BLOCK_SIZE, DIRECTORY, MalformedExtendedAttribute,
                              TarHeader, decode_header, is_end_block)

LOG = logging.getLogger(__name__)

# How many continuation records may precede a single member
MAX_CONTINUATIONS = 16

class StreamExhausted(TarError):
    """The stream ended in the middle of a header or a body"""

    def __init__(self, wanted: int, got: int):
        self.wanted = wanted
        self.got = got
        super().__init__(f"Stream exhausted: wanted {wanted} bytes, got {got}")

def unpax(pax: bytes, encoding: str = "utf-8") -> Dict[str, str]:
    """Parse the body of a pax extended header. Each record reads
    "<length> <key>=<value>\\n", where length counts the whole record."""

    ret = {}

    i = 0
    while i < len(pax):
        if not any(pax[i:]):
            # Only NUL padding left
            break

        # Read the length (an integer)
        s = pax.find(b' ', i)
        if s == -1 or not pax[i:s].isdigit():
            raise MalformedExtendedAttribute(f"No length prefix at offset {i}: {pax[i:i+32]!r}")
        length = int(pax[i:s])
        if length <= s - i + 1:
            raise MalformedExtendedAttribute(f"Record length {length} at offset {i} is too short")

        # Pull the record from the pax header and drop the trailing new line
        end = i + length
        block = pax[s+1:end].rstrip(b'\0')
        if not block.endswith(b'\n'):
            if end > len(pax):
                raise MalformedExtendedAttribute(f"Record at offset {i} runs past the end of the header")
            raise MalformedExtendedAttribute(f"Record at offset {i} does not end in a new line")
        i = end

        key, sep, val = block[:-1].partition(b'=')
        if not sep:
            raise MalformedExtendedAttribute(f"Record without '=': {block!r}")

        ret[key.decode(encoding, "surrogateescape")] = val.decode(encoding, "surrogateescape")

    return ret

class TarReader:
    """Forward-only reader over a binary stream positioned at the start of
    an archive. The stream is owned by the caller and is never closed or
    seeked.

    Bodies must be consumed with read_data() or skip_data() before the next
    read_header(). If they are not, only the padding after the body is
    skipped, which keeps the stream aligned for bodies smaller than one
    block but not for larger ones."""

    def __init__(self, fp: BinaryIO, *, encoding: str = "utf-8",
                 max_continuations: int = MAX_CONTINUATIONS):
        self.fp = fp
        self.encoding = encoding
        self.max_continuations = max_continuations

        self.last_header: Optional[TarHeader] = None
        self.padding_skipped = False
        self.finished = False

    def __iter__(self) -> Iterator[TarHeader]:
        while (header := self.read_header()) is not None:
            yield header

    def _read(self, size: int) -> bytes:
        """Read size bytes; fewer are only returned at the end of the stream."""

        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self.fp.read(remaining)
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b''.join(chunks)

    def _read_exact(self, size: int) -> bytes:
        buf = self._read(size)
        if len(buf) < size:
            raise StreamExhausted(size, len(buf))
        return buf

    def _next_block(self) -> Optional[TarHeader]:
        """Decode the next header block, or return None at the end."""

        if self.last_header is not None and not self.padding_skipped:
            self.skip_padding()

        block = self._read(BLOCK_SIZE)
        if len(block) == 0:
            LOG.debug("Stream ended without an end-of-archive marker")
            self.finished = True
            return None
        if len(block) < BLOCK_SIZE:
            raise StreamExhausted(BLOCK_SIZE, len(block))

        if is_end_block(block):
            # End of archive; suck up the second marker block if it is there
            self._read(BLOCK_SIZE)
            self.finished = True
            return None

        header = decode_header(block, self.encoding)
        self.last_header = header
        self.padding_skipped = False
        return header

    def read_header(self) -> Optional[TarHeader]:
        """Return the header of the next member, with any preceding
        continuation records merged in, or None at the end of the archive."""

        if self.finished:
            return None

        # Records closer to the start of the stream win over later ones
        overrides: Dict[str, Any] = {}

        for _ in range(self.max_continuations + 1):
            header = self._next_block()
            if header is None:
                if overrides:
                    LOG.warning("Archive ended after a continuation record")
                return None

            match header.typeflag:
                case 'L' | 'K':
                    # GNU long name or long link; the body is the real value
                    key = 'path' if header.typeflag == 'L' else 'linkpath'
                    name = decode_string(self.read_data(), self.encoding)
                    LOG.debug("GNU long %s: %s", key, name)
                    overrides.setdefault(key, name)
                    continue
                case 'x':
                    pax = unpax(self.read_data(), self.encoding)
                    LOG.debug("pax extended header: %s", pax)
                    for key, val in pax.items():
                        overrides.setdefault(key, val)
                    continue
                case 'S':
                    LOG.warning("Sparse file data is not supported; %s is returned as stored", header.path)
                case 'D':
                    # GNU dumpdir, which is a directory for our purposes
                    header = header.merged({"type": DIRECTORY})

            if overrides:
                header = header.merged(overrides)
            self.last_header = header

            LOG.debug("%r", header)
            return header

        raise TarError(f"More than {self.max_continuations} continuation records before a member")

    def _body_header(self) -> TarHeader:
        if self.last_header is None:
            raise TarError("No header has been read yet")
        if self.padding_skipped:
            raise TarError(f"The body of {self.last_header.path} was already consumed")
        return self.last_header

    def read_data(self) -> bytes:
        """Return the body of the last member, exactly size bytes long."""

        header = self._body_header()

        blocks = []
        remaining = header.size
        while remaining > BLOCK_SIZE:
            blocks.append(self._read_exact(BLOCK_SIZE))
            remaining -= BLOCK_SIZE
        blocks.append(self._read_exact(remaining))

        self.skip_padding()
        return b''.join(blocks)

    def skip_data(self):
        """Discard the body of the last member without keeping it in memory."""

        header = self._body_header()

        remaining = header.size
        while remaining > 0:
            remaining -= len(self._read_exact(min(remaining, BLOCK_SIZE)))

        self.skip_padding()

    def skip_padding(self):
        """Skip the padding after the body of the last member. You don't need
        to call this explicitly."""

        if self.last_header is None:
            raise TarError("No header has been read yet")

        overflow = self.last_header.size % BLOCK_SIZE
        if overflow > 0:
            self._read_exact(BLOCK_SIZE - overflow)
        self.padding_skipped = True

def untar(fp: BinaryIO, **kwargs) -> Generator[Tuple[TarHeader, bytes], None, None]:
    """Yield (header, body) for every member of the archive in fp."""

    reader = TarReader(fp, **kwargs)
    for header in reader:
        yield header, reader.read_data()

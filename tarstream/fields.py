"""
Fixed-width field extraction and numeric decoding for tar header blocks.
Nothing in here knows what a header means; it only slices bytes and turns
octal text into integers.
"""

from typing import Dict, Iterable, Tuple

class TarError(Exception):
    """Base class of every error raised while decoding an archive"""

class FieldError(TarError):
    """A numeric header field does not hold octal digits"""

def extract(block: bytes, layout: Iterable[Tuple[str, int]], offset: int = 0) -> Dict[str, bytes]:
    """Slice consecutive fields out of block, starting at offset. The layout
    is a sequence of (name, width) pairs in the order they appear."""

    ret = {}
    for name, width in layout:
        ret[name] = block[offset:offset+width]
        offset += width
    return ret

def decode_string(raw: bytes, encoding: str = "utf-8") -> str:
    return raw.split(b'\0', 1)[0].decode(encoding, "surrogateescape")

def literal(raw: bytes) -> bytes:
    return raw.rstrip(b'\0 ')

def _digits(raw: bytes) -> str:
    s = raw.strip(b'\0 ')
    try:
        s = s.decode("ascii")
    except UnicodeDecodeError:
        raise FieldError(f"Not an octal field: {raw!r}") from None
    if s and not all(c in "01234567" for c in s):
        raise FieldError(f"Not an octal field: {raw!r}")
    return s

def parse_octal(raw: bytes) -> int:
    """Plain octal field; an empty field counts as 0."""

    s = _digits(raw)
    return int(s, base=8) if s else 0

def parse_long_octal(raw: bytes) -> int:
    """Octal field that may be wider than a 32-bit value allows.

    Values that fit in 11 digits with a leading 1-3 are decoded directly.
    Longer ones are cut from the right into 8-digit (24-bit) chunks, each
    weighted by 2**(24*i) where i counts chunks from the right."""

    s = _digits(raw).lstrip('0')

    if len(s) < 11 or (len(s) == 11 and s[0] in "123"):
        return int(s, base=8) if s else 0

    total = 0
    i = 0
    while len(s) >= 8:
        total += int(s[-8:], base=8) * 2 ** (24 * i)
        s = s[:-8]
        i += 1
    if s:
        # Leftover chunk at the left end
        total += int(s, base=8) * 2 ** (24 * i)
    return total

"""
Decoding of single 512-byte header blocks into TarHeader snapshots. Three
layouts share the block: the plain v7 header, POSIX ustar ("ustar\\0" at
offset 257) with a filename prefix, and GNU ("ustar " at offset 257) which
puts extra timestamps and sparse maps where ustar keeps the prefix.
"""

from collections.abc import Mapping
import logging
import stat
from typing import Any, Dict, Iterator, Optional, Tuple
from tarstream.fields import (TarError, decode_string, extract, literal,
                              parse_long_octal, parse_octal)

LOG = logging.getLogger(__name__)

BLOCK_SIZE = 512

FILE = '-'
HARDLINK = 'L'
SYMLINK = 'l'
CHARDEV = 'c'
BLOCKDEV = 'b'
DIRECTORY = 'd'
FIFO = 'p'

# Ordered by the type markers '0' up to '6'
FILE_TYPES = (FILE, HARDLINK, SYMLINK, CHARDEV, BLOCKDEV, DIRECTORY, FIFO)
MARKERS = dict(zip("0123456", FILE_TYPES))

TYPE_MODES = {
    FILE: stat.S_IFREG,
    HARDLINK: stat.S_IFREG,
    SYMLINK: stat.S_IFLNK,
    CHARDEV: stat.S_IFCHR,
    BLOCKDEV: stat.S_IFBLK,
    DIRECTORY: stat.S_IFDIR,
    FIFO: stat.S_IFIFO,
}

HEADER = (
    ("filename", 100), ("mode", 8), ("uid", 8), ("gid", 8), ("size", 12),
    ("mtime", 12), ("checksum", 8), ("type", 1), ("linkpath", 100),
)

USTAR = (
    ("metadata_extension_id", 6), ("metadata_extension_version", 2),
    ("uname", 32), ("gname", 32), ("major", 8), ("minor", 8), ("prefix", 155),
)

GNU = (
    ("metadata_extension_id", 6), ("metadata_extension_version", 2),
    ("uname", 32), ("gname", 32), ("major", 8), ("minor", 8),
    ("atime", 12), ("ctime", 12), ("offset", 12), ("longnames", 4), ("unused", 1),
    ("sparse1", 24), ("sparse2", 24), ("sparse3", 24), ("sparse4", 24),
    ("isextended", 1), ("realsize", 12),
)

MAGIC_OFFSET = 257
USTAR_MAGIC = b"ustar\0"
GNU_MAGIC = b"ustar "

CHECKSUM_OFFSET = 148
CHECKSUM_WIDTH = 8

class MalformedExtendedAttribute(TarError):
    """A pax record does not match its length prefix, or its value does not
    fit the field it replaces"""

def _number(val: str) -> int | float:
    return float(val) if '.' in val else int(val)

def _count(val: str) -> int:
    n = int(val)
    if n < 0:
        raise ValueError(f"negative value {n}")
    return n

def _file_type(val: str) -> str:
    """Accept a file type tag or a type marker"""
    if val in TYPE_MODES:
        return val
    if val in MARKERS:
        return MARKERS[val]
    raise ValueError(f"unknown file type {val!r}")

# Conversions for extended attributes that replace typed header fields
PAX_TYPES = {
    "size": _count,
    "uid": _count,
    "gid": _count,
    "mtime": _number,
    "mode": lambda val: int(val, base=8),
    "checksum": int,
    "type": _file_type,
}

def reconcile_mode(mode: int, type: str) -> int:
    """Keep the permission bits of mode, but take the file type from type."""
    return stat.S_IMODE(mode) | TYPE_MODES[type]

class TarHeader(Mapping):
    """The metadata of one archive member.

    The well-known fields are attributes; fields that only some dialects
    carry, and attributes added by pax records, live in extra. Both are
    reachable through the mapping interface, in header order. A TarHeader is
    never modified once created: merged() returns a new one."""

    CORE = ("filename", "mode", "uid", "gid", "size", "mtime", "checksum",
            "type", "linkpath", "path")

    def __init__(self, filename: str, mode: int, uid: int, gid: int, size: int,
                 mtime: int | float, checksum: int, type: str, linkpath: str,
                 path: Optional[str] = None, typeflag: str = '0',
                 extra: Optional[Dict[str, Any]] = None):
        self.filename = filename
        self.mode = reconcile_mode(mode, type)
        self.uid = uid
        self.gid = gid
        self.size = size
        self.mtime = mtime
        self.checksum = checksum
        self.type = type
        self.linkpath = linkpath
        self.path = path if path is not None else filename

        # The raw type marker, before mapping to a file type
        self.typeflag = typeflag

        self.extra: Dict[str, Any] = dict(extra or {})

    def __getitem__(self, key: str) -> Any:
        if key in self.CORE:
            return getattr(self, key)
        return self.extra[key]

    def __iter__(self) -> Iterator[str]:
        yield from self.CORE
        yield from self.extra

    def __len__(self) -> int:
        return len(self.CORE) + len(self.extra)

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["extra"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return "<TarHeader %o %c %s %d %d %s (%d bytes)>" % (self.mode, self.type, self.path, self.uid, self.gid, self.mtime, self.size)

    def merged(self, overrides: Dict[str, Any]) -> "TarHeader":
        """Return a copy with overrides applied. Keys naming a well-known
        field replace it, all other keys are added to or replace entries of
        extra. Pax text for numeric fields and the file type is converted;
        MalformedExtendedAttribute is raised when it does not fit."""

        core = {key: getattr(self, key) for key in self.CORE}
        extra = dict(self.extra)
        for key, val in overrides.items():
            if key in self.CORE:
                if isinstance(val, str) and key in PAX_TYPES:
                    try:
                        val = PAX_TYPES[key](val)
                    except ValueError as e:
                        raise MalformedExtendedAttribute(f"Bad value for {key}: {val!r} ({e})") from None
                core[key] = val
            else:
                extra[key] = val

        return TarHeader(**core, typeflag=self.typeflag, extra=extra)

class ChecksumMismatch(TarError):
    """The header checksum matches neither the unsigned nor the signed sum"""

    def __init__(self, expected: int, unsigned: int, signed: int, block: bytes):
        self.expected = expected
        self.unsigned = unsigned
        self.signed = signed
        self.block = block
        super().__init__(f"Checksum mismatch: {unsigned}|{signed} != {expected}; header: {escape(block)}")

def escape(block: bytes) -> str:
    """Printable dump of a raw header block"""
    return ''.join(chr(b) if 0x20 <= b < 0x7f and b != 0x5c else "\\x%02x" % b for b in block)

def checksums(block: bytes) -> Tuple[int, int]:
    """Unsigned and signed byte sums of the block, with the checksum field
    itself counted as eight spaces."""

    data = block[:CHECKSUM_OFFSET] + b' ' * CHECKSUM_WIDTH + block[CHECKSUM_OFFSET+CHECKSUM_WIDTH:]
    unsigned = sum(data)
    signed = sum(b - 256 if b > 127 else b for b in data)
    return unsigned, signed

def is_end_block(block: bytes) -> bool:
    return not any(block)

def decode_header(block: bytes, encoding: str = "utf-8") -> TarHeader:
    """Decode one header block. Raises ChecksumMismatch for a corrupt block
    and FieldError when a numeric field is not octal.

    For ustar headers path is prefix and filename joined by a single slash,
    so path stays below the prefix even if filename starts with one."""

    if len(block) != BLOCK_SIZE:
        raise ValueError(f"A header block is {BLOCK_SIZE} bytes, not {len(block)}")

    raw = extract(block, HEADER)

    # Validate before decoding anything else, so that damage to a numeric
    # field shows up as a checksum error
    expected = parse_long_octal(raw["checksum"])
    unsigned, signed = checksums(block)
    if expected != unsigned and expected != signed:
        LOG.error("Checksum mismatch: %d|%d != %d", unsigned, signed, expected)
        LOG.error("Dumping header: %s", escape(block))
        raise ChecksumMismatch(expected, unsigned, signed, block)

    typeflag = raw["type"].decode("latin-1")
    type = MARKERS.get(typeflag, FILE)
    filename = decode_string(raw["filename"], encoding)

    path = filename
    extra: Dict[str, Any] = {}
    magic = block[MAGIC_OFFSET:MAGIC_OFFSET+len(USTAR_MAGIC)]
    if magic == USTAR_MAGIC:
        ustar = extract(block, USTAR, MAGIC_OFFSET)
        extra = {
            "metadata_extension_id": literal(ustar["metadata_extension_id"]).decode("ascii"),
            "metadata_extension_version": parse_octal(ustar["metadata_extension_version"]),
            "uname": decode_string(ustar["uname"], encoding),
            "gname": decode_string(ustar["gname"], encoding),
            "major": parse_octal(ustar["major"]),
            "minor": parse_octal(ustar["minor"]),
            "prefix": decode_string(ustar["prefix"], encoding),
        }
        if extra["prefix"]:
            # The prefix is a directory; a leading slash in the filename
            # does not make it absolute
            path = extra["prefix"].rstrip("/") + "/" + filename.lstrip("/")
    elif magic == GNU_MAGIC:
        gnu = extract(block, GNU, MAGIC_OFFSET)
        extra = {
            "metadata_extension_id": literal(gnu["metadata_extension_id"]).decode("ascii"),
            "metadata_extension_version": parse_octal(gnu["metadata_extension_version"]),
            "uname": decode_string(gnu["uname"], encoding),
            "gname": decode_string(gnu["gname"], encoding),
            "major": parse_octal(gnu["major"]),
            "minor": parse_octal(gnu["minor"]),
            "atime": parse_long_octal(gnu["atime"]),
            "ctime": parse_long_octal(gnu["ctime"]),
            "offset": parse_long_octal(gnu["offset"]),
        }
        # Sparse bookkeeping is kept as stored, it is not interpreted
        for key in ("longnames", "unused", "sparse1", "sparse2", "sparse3",
                    "sparse4", "isextended", "realsize"):
            extra[key] = literal(gnu[key])

    return TarHeader(
        filename=filename,
        mode=parse_long_octal(raw["mode"]),
        uid=parse_long_octal(raw["uid"]),
        gid=parse_long_octal(raw["gid"]),
        size=parse_long_octal(raw["size"]),
        mtime=parse_long_octal(raw["mtime"]),
        checksum=expected,
        type=type,
        linkpath=decode_string(raw["linkpath"], encoding),
        path=path,
        typeflag=typeflag,
        extra=extra,
    )

"""
Pytest configuration and archive builders shared by the tests.

Most fixtures hand out builder functions rather than finished archives, so a
test can describe exactly the bytes it needs: hand-rolled header blocks for
cases the standard tarfile module refuses to write (bad checksums, odd type
markers, oversized numeric fields), and tarfile-made archives for everything
a real tar implementation would produce.
"""
import io
import os
import sys
import tarfile
import pytest

# Add the project root to the path so the package imports without installing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def make_header(name="file.txt", *, mode=0o644, uid=1000, gid=1000, size=0,
                mtime=1700000000, type=b'0', linkpath="", magic=b"ustar\0",
                version=b"00", uname="user", gname="group", prefix="",
                raw=None, signed=False):
    """Build one 512-byte header block with a valid checksum.

    raw maps offsets to bytes written over the block before the checksum is
    computed, for fields the keyword arguments do not cover."""
    block = bytearray(512)

    def put(offset, value):
        block[offset:offset + len(value)] = value

    put(0, name.encode("utf-8", "surrogateescape"))
    put(100, b"%07o\0" % mode)
    put(108, b"%07o\0" % uid)
    put(116, b"%07o\0" % gid)
    put(124, b"%011o\0" % size)
    put(136, b"%011o\0" % mtime)
    put(156, type)
    put(157, linkpath.encode())
    put(257, magic)
    if magic:
        put(263, version)
        put(265, uname.encode())
        put(297, gname.encode())
        put(329, b"0000000\0")
        put(337, b"0000000\0")
        if magic == b"ustar\0":
            put(345, prefix.encode())
    for offset, value in (raw or {}).items():
        put(offset, value)

    block[148:156] = b" " * 8
    if signed:
        checksum = sum(b - 256 if b > 127 else b for b in block)
    else:
        checksum = sum(block)
    block[148:156] = b"%06o\0 " % checksum
    return bytes(block)


def pad(data):
    """Pad data with NULs up to the next block boundary."""
    if len(data) % 512:
        data += b"\0" * (512 - len(data) % 512)
    return data


def pax_record(key, value):
    """One pax record, with the self-including length prefix."""
    payload = f" {key}={value}\n".encode()
    length = len(payload)
    while len(str(length)) + len(payload) != length:
        length = len(str(length)) + len(payload)
    return str(length).encode() + payload


def make_archive(*members, end=True):
    """Concatenate (header, body) pairs into an archive, with padding and
    the two end-of-archive blocks."""
    data = b"".join(header + pad(body) for header, body in members)
    if end:
        data += b"\0" * 1024
    return data


def make_tar(members, format=tarfile.GNU_FORMAT):
    """Build an archive with the tarfile module. members is a list of
    (TarInfo, bytes or None)."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=format) as tar:
        for info, data in members:
            if data is not None:
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
            else:
                tar.addfile(info)
    return buf.getvalue()


def tarinfo(name, *, type=tarfile.REGTYPE, mode=0o644, linkname="",
            mtime=1700000000, pax_headers=None):
    info = tarfile.TarInfo(name)
    info.type = type
    info.mode = mode
    info.linkname = linkname
    info.mtime = mtime
    info.uid = 1000
    info.gid = 1000
    info.uname = "user"
    info.gname = "group"
    if pax_headers:
        info.pax_headers = dict(pax_headers)
    return info


class ChunkedStream(io.RawIOBase):
    """A stream that hands out at most chunk bytes per read, like a pipe,
    and counts the read calls."""

    def __init__(self, data, chunk=7):
        self._buf = io.BytesIO(data)
        self.chunk = chunk
        self.reads = 0

    def readable(self):
        return True

    def read(self, size=-1):
        self.reads += 1
        if size < 0 or size > self.chunk:
            size = self.chunk
        return self._buf.read(size)

    def tell(self):
        return self._buf.tell()


@pytest.fixture
def header():
    """Builder for single header blocks."""
    return make_header


@pytest.fixture
def archive():
    """Builder for hand-rolled archives."""
    return make_archive


@pytest.fixture
def tar():
    """Builder for archives written by the tarfile module."""
    return make_tar


@pytest.fixture
def info():
    """Builder for tarfile.TarInfo members."""
    return tarinfo


@pytest.fixture
def record():
    """Builder for pax records."""
    return pax_record


@pytest.fixture
def chunked():
    """Wrap bytes in a stream with short reads."""
    return ChunkedStream


@pytest.fixture
def sample_tar(tmp_path):
    """A small GNU archive on disk: a directory, two files, a symlink."""
    path = tmp_path / "sample.tar"
    path.write_bytes(make_tar([
        (tarinfo("dir", type=tarfile.DIRTYPE, mode=0o755), None),
        (tarinfo("dir/a.txt"), b"This is file a\n"),
        (tarinfo("dir/big.bin", mode=0o600), bytes(range(256)) * 5),
        (tarinfo("dir/link", type=tarfile.SYMTYPE, mode=0o777, linkname="a.txt"), None),
    ]))
    return path

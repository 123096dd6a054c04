import logging
import os
import posixpath
import stat
from tarstream.fields import TarError
from tarstream.header import TarHeader

LOG = logging.getLogger(__name__)

def member_path(header: TarHeader) -> str:
    """The relative path a member is written to. Raises ValueError for paths
    that would escape the target directory."""

    path = posixpath.normpath(header.path)
    if posixpath.isabs(path) or path == ".." or path.startswith("../"):
        raise ValueError(f"Refusing to extract {header.path}")
    return path

def _check_inside(location: str, path: str, header: TarHeader):
    """Refuse locations that resolve outside path, which happens when an
    earlier member made a symbolic link along the way."""

    root = os.path.realpath(path)
    if os.path.commonpath([root, os.path.realpath(location)]) != root:
        raise ValueError(f"Refusing to extract {header.path} through a symbolic link")

def write(header: TarHeader, data: bytes, path: str):
    """Create the member described by header below the directory path."""

    name = member_path(header)
    target = os.path.join(path, name)
    _check_inside(os.path.dirname(target), path, header)
    if os.path.islink(target) or (os.path.lexists(target) and not os.path.isdir(target)):
        raise FileExistsError(header.path)

    parent = os.path.dirname(target)
    if parent:
        os.makedirs(parent, exist_ok=True)

    perm = stat.S_IMODE(header.mode)
    dir_fd = os.open(path, os.O_DIRECTORY)
    try:
        match header.type:
            case '-':
                f = os.open(name, os.O_CREAT | os.O_WRONLY | os.O_EXCL, perm, dir_fd=dir_fd)
                try:
                    view = memoryview(data)
                    while view:
                        view = view[os.write(f, view):]
                    atime = header.get("atime") or header.mtime
                    os.utime(f, times=(float(atime), float(header.mtime)))
                    os.chmod(f, perm)
                finally:
                    os.close(f)

            case 'L':
                source = member_path(header.merged({"path": header.linkpath}))
                _check_inside(os.path.join(path, source), path, header)
                os.link(source, name,
                        src_dir_fd=dir_fd, dst_dir_fd=dir_fd)

            case 'l':
                os.symlink(header.linkpath, name, dir_fd=dir_fd)

            case 'c' | 'b':
                if "major" not in header or "minor" not in header:
                    raise TarError(f"Device {header.path} has no device numbers")
                os.mknod(name, header.mode, os.makedev(header.major, header.minor), dir_fd=dir_fd)
                os.chmod(name, perm, dir_fd=dir_fd)

            case 'p':
                os.mkfifo(name, perm, dir_fd=dir_fd)

            case 'd':
                if not os.path.isdir(target):
                    os.mkdir(name, perm, dir_fd=dir_fd)
                os.chmod(name, perm, dir_fd=dir_fd)

            case _:
                raise NotImplementedError(f"File type {header.type} unknown")
    finally:
        os.close(dir_fd)

    LOG.debug("Extracted %s", name)

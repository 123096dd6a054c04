import argparse
from contextlib import contextmanager
from datetime import datetime, timezone
import gzip
import logging
import os
import stat
import sys
from typing import BinaryIO, Iterator
import tarstream.config as config
import tarstream.extract as extract
from tarstream.fields import TarError
from tarstream.untar import TarReader

LOG = logging.getLogger("tarstream")

@contextmanager
def open_archive(args) -> Iterator[BinaryIO]:
    """Open the archive named on the command line; '-' is stdin."""

    if args.archive == "-":
        fp = sys.stdin.buffer
        close = False
    else:
        fp = open(args.archive, "rb")
        close = True

    try:
        if args.gzip:
            with gzip.GzipFile(fileobj=fp, mode="rb") as gz:
                yield gz
        else:
            yield fp
    finally:
        if close:
            fp.close()

def list_(args) -> int:
    with open_archive(args) as fp:
        reader = TarReader(fp, **args.config.reader_options)
        for header in reader:
            owner = f"{header.get('uname') or header.uid}/{header.get('gname') or header.gid}"
            mtime = datetime.fromtimestamp(float(header.mtime), timezone.utc).strftime("%Y-%m-%d %H:%M")
            line = f"{stat.filemode(header.mode)} {owner:>17} {header.size:>10} {mtime} {header.path}"
            if header.type in ('L', 'l'):
                line += f" -> {header.linkpath}"
            print(line)
            reader.skip_data()
    return 0

def cat(args) -> int:
    with open_archive(args) as fp:
        reader = TarReader(fp, **args.config.reader_options)
        for header in reader:
            if header.path == args.member:
                sys.stdout.buffer.write(reader.read_data())
                sys.stdout.buffer.flush()
                return 0
            reader.skip_data()

    LOG.error("%s not found in %s", args.member, args.archive)
    return 1

def extract_(args) -> int:
    os.makedirs(args.directory, exist_ok=True)
    with open_archive(args) as fp:
        reader = TarReader(fp, **args.config.reader_options)
        for header in reader:
            extract.write(header, reader.read_data(), args.directory)
    return 0

def main(argv=None):
    parser = argparse.ArgumentParser(prog="tarstream", formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('--config', help="""Configuration file. The default
                        can be overridden using the $TARSTREAM_CONFIG
                        environment variable.""",
                        default=config.CONFIGPATH)
    parser.add_argument('-v', '--verbose', action='store_true', help="log debug output")
    parser.add_argument('-z', '--gzip', action='store_true',
                        help="the archive is gzip compressed")

    subparsers = parser.add_subparsers(title="actions", required=True)

    parser_list = subparsers.add_parser("list", help="list the members of an archive")
    parser_list.add_argument("archive", help="archive to read, - for stdin")
    parser_list.set_defaults(func=list_)

    parser_cat = subparsers.add_parser("cat", help="write the contents of a member to stdout")
    parser_cat.add_argument("archive", help="archive to read, - for stdin")
    parser_cat.add_argument("member", help="path of the member in the archive")
    parser_cat.set_defaults(func=cat)

    parser_extract = subparsers.add_parser("extract", help="extract all members of an archive")
    parser_extract.add_argument("archive", help="archive to read, - for stdin")
    parser_extract.add_argument("-C", "--directory", default=".", help="directory to extract to")
    parser_extract.set_defaults(func=extract_)

    args = parser.parse_args(argv)

    try:
        if args.config == config.CONFIGPATH:
            args.config = config.default_config()
        else:
            args.config = config.load_config(args.config)
    except (OSError, config.ConfigError) as e:
        print(f"tarstream: {e}", file=sys.stderr)
        return 1

    level = args.config.log_level
    if args.verbose:
        level = "DEBUG"
    logging.basicConfig(level=level, format="%(name)s: %(levelname)s: %(message)s")

    try:
        return args.func(args)
    except (OSError, TarError, ValueError) as e:
        LOG.error("%s", e)
        return 1

if __name__ == "__main__":
    sys.exit(main())

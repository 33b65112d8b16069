from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from asynczip.constants import DEFAULT_JOBS
from asynczip.errors import FormatError, ZipError
from asynczip.extract import extract_all
from asynczip.reader import ZipFileReader


def _format_time(dt) -> str:
    y, mo, d, h, mi, s = dt
    return f"{y:04d}-{mo:02d}-{d:02d} {h:02d}:{mi:02d}:{s:02d}"


async def _list(archive: str) -> None:
    r = await ZipFileReader.open(archive)
    for e in r.entries():
        kind = "dir" if e.is_dir else "file"
        size = "?" if e.uncompressed_size is None else str(e.uncompressed_size)
        flag = "*" if e.is_encrypted else ""
        print(f"{kind}\t{size}\t{e.compression_name}{flag}\t{_format_time(e.date_time)}\t{e.name}")


def cmd_list(archive: str) -> bool:
    """List archive entries, one per line: kind, size, method, mtime, name.

    Encrypted entries carry a '*' after the method name.
    """
    asyncio.run(_list(archive))
    return True


async def _cat(archive: str, name: str, password: Optional[str]) -> bool:
    r = await ZipFileReader.open(archive)
    found = r.lookup(name)
    if found is None:
        print(f"Error: no entry named {name!r}", file=sys.stderr)
        return False
    index, _entry = found
    out = sys.stdout.buffer
    async with await r.entry_reader(index, password=password) as er:
        async for chunk in er:
            out.write(chunk)
    out.flush()
    return True


def cmd_cat(archive: str, name: str, *, password: Optional[str] = None) -> bool:
    """Write one entry's decoded content to stdout."""
    return asyncio.run(_cat(archive, name, password))


async def _extract(archive: str, outdir: str, names: Optional[List[str]], jobs: int, password: Optional[str], quiet: bool) -> bool:
    r = await ZipFileReader.open(archive)
    try:
        written = await extract_all(r, outdir, jobs=jobs, names=names, password=password)
    except KeyError as exc:
        print(f"Error: {exc.args[0]}", file=sys.stderr)
        return False
    if not quiet:
        for path in written:
            print(path)
    print(f"Extracted {len(written)} entr{'y' if len(written) == 1 else 'ies'} to {outdir}")
    return True


def cmd_extract(
    archive: str,
    *,
    outdir: str = ".",
    names: Optional[List[str]] = None,
    jobs: int = DEFAULT_JOBS,
    password: Optional[str] = None,
    quiet: bool = False,
) -> bool:
    """Extract entries (all, or the given names/directories) with up to ``jobs`` entries in flight."""
    return asyncio.run(_extract(archive, outdir, names, jobs, password, quiet))


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="asynczip",
        description="Concurrent ZIP archive reader",
        epilog="Each entry is read through its own file handle; --jobs bounds how many are open at once.",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_cat = sub.add_parser("cat", help="Write one entry to stdout")
    ap_cat.add_argument("archive", help="Archive path")
    ap_cat.add_argument("name", help="Entry name (exact match)")
    ap_cat.add_argument("--password", help="Password for AES-encrypted entries")

    ap_extract = sub.add_parser("extract", help="Extract entries")
    ap_extract.add_argument("archive", help="Archive path")
    ap_extract.add_argument("names", nargs="*", help="Specific entry names or directories to extract")
    ap_extract.add_argument("--outdir", default=".", help="Output directory")
    ap_extract.add_argument("--jobs", "-j", type=int, default=DEFAULT_JOBS, help=f"Entries extracted in parallel (default {DEFAULT_JOBS})")
    ap_extract.add_argument("--password", help="Password for AES-encrypted entries")
    ap_extract.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.cmd == "list":
            ok = cmd_list(args.archive)
        elif args.cmd == "cat":
            ok = cmd_cat(args.archive, args.name, password=args.password)
        elif args.cmd == "extract":
            ok = cmd_extract(
                args.archive,
                outdir=args.outdir,
                names=args.names,
                jobs=args.jobs,
                password=args.password,
                quiet=args.quiet,
            )
        else:
            raise RuntimeError("Unknown command")
    except FormatError as e:
        print(f"Error: not a readable ZIP archive: {e}", file=sys.stderr)
        sys.exit(2)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ZipError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()

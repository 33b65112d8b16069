from __future__ import annotations

import asyncio
import logging
import os
from typing import Dict, Iterable, List, Optional, Union

import aiofiles
import aiofiles.os

from .constants import DEFAULT_JOBS
from .pathutil import destination
from .reader import ZipFileReader


logger = logging.getLogger(__name__)

_chmod = aiofiles.os.wrap(os.chmod)


def _select(reader: ZipFileReader, names: Optional[Iterable[str]]) -> List[int]:
    if not names:
        return list(range(len(reader)))
    entries = reader.entries()
    picked: List[int] = []
    for name in names:
        matches = [i for i, e in enumerate(entries) if e.name == name]
        if not matches:
            # Treat the name as a directory prefix
            prefix = name.rstrip("/") + "/"
            matches = [i for i, e in enumerate(entries) if e.name.startswith(prefix)]
            if not matches:
                raise KeyError(f"No entry named {name!r}")
        picked.extend(matches)
    return sorted(set(picked))


async def extract_entry(
    reader: ZipFileReader,
    index: int,
    outdir: str,
    *,
    password: Optional[Union[str, bytes]] = None,
) -> str:
    entry = reader.entries()[index]
    dest = destination(outdir, entry.name)
    if entry.is_dir:
        await aiofiles.os.makedirs(dest, exist_ok=True)
        return dest
    await aiofiles.os.makedirs(os.path.dirname(dest) or ".", exist_ok=True)
    async with await reader.entry_reader(index, password=password) as er:
        async with aiofiles.open(dest, "wb") as wf:
            written = await er.copy_to(wf)
    if entry.mode is not None:
        try:
            await _chmod(dest, entry.mode & 0o7777)
        except OSError as exc:
            logger.warning("failed to set mode on %s: %s", dest, exc)
    logger.debug("extracted %r (%d bytes) to %s", entry.name, written, dest)
    return dest


async def extract_all(
    reader: ZipFileReader,
    outdir: Union[str, os.PathLike],
    *,
    jobs: int = DEFAULT_JOBS,
    names: Optional[Iterable[str]] = None,
    password: Optional[Union[str, bytes]] = None,
) -> List[str]:
    """Extract entries concurrently, keeping at most ``jobs`` readers open.

    Entry names are validated before anything is written, so an archive with a
    path-traversal member writes nothing. When several entries map to the same
    path only the last one in the archive is extracted. If any entry fails the
    remaining extractions are cancelled before the error propagates. Returns
    the written paths in index order.
    """
    outdir = os.fspath(outdir)
    entries = reader.entries()
    targets: Dict[str, int] = {}
    for i in _select(reader, names):
        dest = destination(outdir, entries[i].name)
        if dest in targets:
            logger.debug("%r at index %d replaces index %d", entries[i].name, i, targets[dest])
        targets[dest] = i
    indices = sorted(targets.values())
    await aiofiles.os.makedirs(outdir, exist_ok=True)
    gate = asyncio.Semaphore(max(1, int(jobs)))

    async def run(i: int) -> str:
        async with gate:
            return await extract_entry(reader, i, outdir, password=password)

    tasks = [asyncio.ensure_future(run(i)) for i in indices]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

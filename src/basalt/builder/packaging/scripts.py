"""Concurrent collection of the event handler scripts named by a configuration."""

import asyncio
from collections.abc import Sequence
from pathlib import Path, PurePosixPath

from pyvider.telemetry import logger

from ..exceptions import ScriptCollectionError
from ..models import ArchiveEntry
from .archive import normalize_entry_path


async def _read_script(source: Path) -> bytes:
    return await asyncio.to_thread(source.read_bytes)


async def collect_event_handlers(
    declared_paths: Sequence[PurePosixPath], base_dir: Path
) -> list[ArchiveEntry]:
    """
    Reads every declared script concurrently and returns them as archive
    entries in declaration order, whatever order the reads complete in.

    Relative paths are read from ``base_dir``; the archive keeps the path
    exactly as it was declared.
    """
    if not declared_paths:
        return []

    # Fail on unrepresentable paths before touching the filesystem.
    archive_paths = [normalize_entry_path(path) for path in declared_paths]
    slots: list[bytes | None] = [None] * len(declared_paths)

    async def fill(index: int, declared: PurePosixPath) -> None:
        slots[index] = await _read_script(base_dir / Path(declared))

    logger.debug("Collecting event handler scripts", count=len(declared_paths))
    results = await asyncio.gather(
        *(fill(index, path) for index, path in enumerate(declared_paths)),
        return_exceptions=True,
    )

    failures = [
        (str(declared_paths[index]), result)
        for index, result in enumerate(results)
        if isinstance(result, BaseException)
    ]
    if failures:
        for path, error in failures:
            logger.error("Failed to read event handler script", path=path, error=str(error))
        raise ScriptCollectionError(failures)

    entries = []
    for archive_path, content in zip(archive_paths, slots):
        if content is None:
            raise AssertionError(f"Script slot for '{archive_path}' was never filled")
        entries.append(ArchiveEntry(path=archive_path, content=content))
    return entries

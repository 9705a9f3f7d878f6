"""Build backend that shells out to a daemonless builder such as podman."""

import asyncio
import contextlib
from collections import deque
from collections.abc import AsyncIterator
from pathlib import Path
import tempfile

from pyvider.telemetry import logger

from ..exceptions import BackendUnavailableError, BuildError, BuildStepFailure
from ..models import BuildLine
from ..packaging.archive import unpack_archive
from .base import ContainerBackend, normalize_line

_STREAM_LIMIT = 1024 * 1024
_STDERR_TAIL = 20


class SubprocessBackend(ContainerBackend):
    """Unpacks the archive into a temporary directory and runs `<exe> build` on it."""

    def __init__(self, executable: str = "podman") -> None:
        self.executable = executable
        self.name = executable

    async def probe(self) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                "--version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise BackendUnavailableError(
                f"Failed to spawn '{self.executable}'. Is it installed and on PATH? ({e})"
            ) from e
        returncode = await process.wait()
        if returncode != 0:
            raise BackendUnavailableError(
                f"'{self.executable} --version' exited with code {returncode}"
            )

    async def build(self, archive: bytes, tag: str) -> AsyncIterator[BuildLine]:
        with tempfile.TemporaryDirectory(prefix="basalt-build-") as temp_dir_str:
            context_dir = Path(temp_dir_str)
            await asyncio.to_thread(unpack_archive, archive, context_dir)
            command = [self.executable, "build", "-t", tag, str(context_dir)]
            logger.info(f"Running command: {' '.join(command)}")
            async with contextlib.aclosing(self._run(command)) as lines:
                async for line in lines:
                    yield line

    async def _run(self, command: list[str]) -> AsyncIterator[BuildLine]:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            raise BackendUnavailableError(f"Failed to spawn '{command[0]}': {e}") from e

        queue: asyncio.Queue[BuildLine | ValueError | None] = asyncio.Queue()

        async def pump(stream: asyncio.StreamReader, name: str) -> None:
            try:
                async for raw in stream:
                    text = normalize_line(raw.decode("utf-8", errors="replace"))
                    queue.put_nowait(BuildLine(name, text))  # type: ignore[arg-type]
            except ValueError as e:
                # Raised by readline for lines longer than the stream limit.
                queue.put_nowait(e)
            finally:
                queue.put_nowait(None)

        assert process.stdout is not None and process.stderr is not None
        streams = (process.stdout, process.stderr)
        readers = [
            asyncio.create_task(pump(process.stdout, "stdout")),
            asyncio.create_task(pump(process.stderr, "stderr")),
        ]
        stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL)
        try:
            open_streams = len(readers)
            while open_streams:
                item = await queue.get()
                if item is None:
                    open_streams -= 1
                    continue
                if isinstance(item, ValueError):
                    raise BuildError(f"Failed to read output of '{command[0]}': {item}") from item
                if item.stream == "stderr":
                    stderr_tail.append(item.text)
                yield item
            returncode = await process.wait()
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
            # The pipes only report EOF once they are read again, and wait()
            # does not return until both have closed.
            await asyncio.gather(*(_drain(stream) for stream in streams))
            await process.wait()

        logger.debug("Build command exited", command=command[0], returncode=returncode)
        if returncode != 0:
            details = "\n".join(stderr_tail)
            raise BuildStepFailure(
                f"Command failed with exit code {returncode}.\n"
                f"  Command: {' '.join(command)}\n"
                f"  Stderr:\n{details}"
            )


async def _drain(stream: asyncio.StreamReader) -> None:
    while await stream.read(_STREAM_LIMIT):
        pass

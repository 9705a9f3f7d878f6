"""Common contract for container build backends."""

import abc
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
import re

import click
from pyvider.telemetry import logger

from ..models import BuildLine

_WHITESPACE_RUN = re.compile(r"[\r\n\t]+")


def normalize_line(text: str) -> str:
    """Trims a chunk of backend output and folds embedded newlines and tabs."""
    return _WHITESPACE_RUN.sub(" ", text.strip())


def build_prefix() -> str:
    return click.style("[BUILD]", fg="blue")


class ContainerBackend(abc.ABC):
    """A strategy for turning a build-context archive into an image."""

    name: str = "backend"

    @abc.abstractmethod
    async def probe(self) -> None:
        """Raises BackendUnavailableError if the backend cannot be used."""

    @abc.abstractmethod
    def build(self, archive: bytes, tag: str) -> AsyncIterator[BuildLine]:
        """Builds ``archive`` as ``tag``, yielding output lines as they arrive."""


async def stream_build(
    backend: ContainerBackend,
    archive: bytes,
    tag: str,
    verbose: bool = False,
    echo: Callable[..., None] = click.echo,
) -> int:
    """
    Drives a backend build to completion, forwarding its output.

    Standard output lines are always echoed with the build prefix; standard
    error lines only when ``verbose`` is set, and then to the error stream.
    Returns the number of stdout lines forwarded.
    """
    prefix = build_prefix()
    forwarded = 0
    logger.info(f"Building image '{tag}' with the {backend.name} backend")
    async with aclosing(backend.build(archive, tag)) as lines:
        async for line in lines:
            if line.stream == "stdout":
                echo(f"{prefix} {line.text}")
                forwarded += 1
            elif verbose:
                echo(f"{prefix} {line.text}", err=True)
    logger.debug("Backend build finished", backend=backend.name, tag=tag, lines=forwarded)
    return forwarded

"""Build backend that streams the archive to a local Docker daemon."""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterator
import io
from typing import Any

import docker
from docker.errors import APIError, DockerException
from pyvider.telemetry import logger

from ..exceptions import BackendUnavailableError, BuildStepFailure
from ..models import BuildLine
from .base import ContainerBackend, normalize_line

_EXHAUSTED = object()


class DockerBackend(ContainerBackend):
    """Submits the archive bytes directly as a build context over the daemon API."""

    name = "docker"

    def __init__(self, client_factory: Callable[[], docker.DockerClient] = docker.from_env) -> None:
        self._client_factory = client_factory

    def _connect(self) -> docker.DockerClient:
        try:
            client = self._client_factory()
            client.ping()
        except DockerException as e:
            raise BackendUnavailableError(f"Failed to connect to docker: {e}") from e
        return client

    async def probe(self) -> None:
        client = await asyncio.to_thread(self._connect)
        client.close()

    def _start_build(self, client: docker.DockerClient, archive: bytes, tag: str) -> Iterator[dict[str, Any]]:
        try:
            return client.api.build(
                fileobj=io.BytesIO(archive),
                custom_context=True,
                dockerfile="Dockerfile",
                tag=tag,
                rm=True,
                decode=True,
            )
        except (APIError, DockerException) as e:
            raise BuildStepFailure(f"Failed to perform docker build: {e}") from e

    @staticmethod
    def _next_event(events: Iterator[dict[str, Any]]) -> Any:
        try:
            return next(events, _EXHAUSTED)
        except (APIError, DockerException) as e:
            raise BuildStepFailure(f"Failed to perform docker build: {e}") from e

    async def build(self, archive: bytes, tag: str) -> AsyncIterator[BuildLine]:
        client = await asyncio.to_thread(self._connect)
        try:
            events = await asyncio.to_thread(self._start_build, client, archive, tag)
            while True:
                event = await asyncio.to_thread(self._next_event, events)
                if event is _EXHAUSTED:
                    break
                if "error" in event or "errorDetail" in event:
                    detail = event.get("errorDetail") or {}
                    message = event.get("error") or detail.get("message", "unknown error")
                    raise BuildStepFailure(f"Docker build failed: {message.strip()}")
                chunk = event.get("stream")
                if chunk is not None:
                    yield BuildLine("stdout", normalize_line(chunk))
                elif "aux" in event:
                    logger.debug("Docker build event", aux=event["aux"])
        finally:
            client.close()

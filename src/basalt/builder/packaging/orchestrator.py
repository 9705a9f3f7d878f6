"""Sequences a build: configuration, rendering, archiving and the backend build."""

from collections.abc import Callable
import os
from pathlib import Path
import tempfile

from attrs import define
import click
from pyvider.telemetry import logger

from ..backends import ContainerBackend, DockerBackend, stream_build
from ..config import BuilderSettings, load_config
from ..exceptions import BuildError
from ..models import BuildConfig, RenderedArtifacts
from ..rendering import TemplateRegistry, build_template_context, render_artifacts
from ..tags import resolve_image_tag
from ..version import __version__
from .archive import build_archive
from .scripts import collect_event_handlers


@define(frozen=True, slots=True)
class AssembledBuild:
    config: BuildConfig
    artifacts: RenderedArtifacts
    archive: bytes


def write_archive(data: bytes, output_path: Path) -> None:
    """Writes archive bytes so that a partially written file is never left behind."""
    temp_name: str | None = None
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", dir=output_path.parent)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_name, output_path)
    except OSError as e:
        if temp_name is not None:
            Path(temp_name).unlink(missing_ok=True)
        raise BuildError(f"Failed to write archive to '{output_path}': {e}") from e


class BuildOrchestrator:
    def __init__(
        self,
        config_path: Path,
        output_path: Path | None = None,
        tag: str | None = None,
        backend: ContainerBackend | None = None,
        verbose: bool = False,
        settings: BuilderSettings | None = None,
        registry: TemplateRegistry | None = None,
        version: str = __version__,
        echo: Callable[..., None] = click.echo,
    ) -> None:
        self.config_path = config_path
        self.output_path = output_path
        self.tag = tag
        self.backend = backend or DockerBackend()
        self.verbose = verbose
        self.settings = settings or BuilderSettings.from_env()
        self.registry = registry or TemplateRegistry()
        self.version = version
        self.echo = echo

    async def assemble(self) -> AssembledBuild:
        """Builds the complete build-context archive in memory."""
        config = load_config(self.config_path)
        context = build_template_context(config, self.settings, self.version)
        artifacts = render_artifacts(self.registry, context)
        scripts = await collect_event_handlers(
            config.integrations.event_handlers, self.config_path.parent
        )
        archive = build_archive(config.raw_text, artifacts, scripts)
        return AssembledBuild(config=config, artifacts=artifacts, archive=archive)

    async def run(self) -> AssembledBuild:
        logger.info("Orchestrator starting configuration-driven build...")
        if self.output_path is None:
            await self.backend.probe()

        assembled = await self.assemble()

        if self.output_path is not None:
            write_archive(assembled.archive, self.output_path)
            logger.info(f"Wrote build archive to {self.output_path}")
            return assembled

        image_tag = resolve_image_tag(assembled.config, self.tag)
        await stream_build(
            self.backend, assembled.archive, image_tag, verbose=self.verbose, echo=self.echo
        )
        return assembled

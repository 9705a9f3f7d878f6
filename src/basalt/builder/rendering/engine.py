"""Template registry and context construction for the build artifacts."""

from pathlib import Path
from typing import Any

import jinja2
from pyvider.telemetry import logger

from ..config import BuilderSettings
from ..exceptions import RenderError
from ..models import BuildConfig, RenderedArtifacts
from ..tags import derive_server_tag
from ..version import __version__

_TEMPLATE_DIR = Path(__file__).parent / "templates"

DOCKERFILE = "Dockerfile"
INSTALL_SCRIPT = "install.sh"
ENTRYPOINT_SCRIPT = "entrypoint.sh"

TEMPLATE_FILES: dict[str, str] = {
    DOCKERFILE: "Dockerfile.j2",
    INSTALL_SCRIPT: "install.sh.j2",
    ENTRYPOINT_SCRIPT: "entrypoint.sh.j2",
}


class TemplateRegistry:
    """Compiles the artifact templates once and renders them on demand."""

    def __init__(self, template_dir: Path | None = None) -> None:
        self.template_dir = template_dir or _TEMPLATE_DIR
        self.env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(self.template_dir),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._templates: dict[str, jinja2.Template] = {}
        for name, filename in TEMPLATE_FILES.items():
            try:
                self._templates[name] = self.env.get_template(filename)
            except jinja2.TemplateError as e:
                raise RenderError(name, e) from e

    def render(self, name: str, context: dict[str, Any]) -> str:
        template = self._templates.get(name)
        if template is None:
            raise RenderError(name, KeyError(f"no template registered as '{name}'"))
        try:
            return template.render(context)
        except jinja2.TemplateError as e:
            raise RenderError(name, e) from e


def _join_commands(commands: list[str | None]) -> str:
    return "\n".join(cmd for cmd in commands if cmd).strip()


def make_base_install(config: BuildConfig) -> str:
    return _join_commands([lang.install_command() for lang in config.languages])


def make_base_init(config: BuildConfig) -> str:
    return _join_commands([lang.init_command() for lang in config.languages])


def build_template_context(
    config: BuildConfig,
    settings: BuilderSettings,
    version: str = __version__,
) -> dict[str, Any]:
    """Builds the values consumed by the Dockerfile and script templates."""
    context: dict[str, Any] = {
        "server_tag": settings.server_tag or derive_server_tag(config, version),
        "web_tag": settings.web_tag or version,
        "base_install": make_base_install(config),
        "base_init": make_base_init(config),
    }
    # Inserted as plain values so user snippets are never parsed as templates.
    if config.setup is not None:
        if config.setup.install is not None:
            context["custom_install"] = config.setup.install.strip()
        if config.setup.init is not None:
            context["custom_init"] = config.setup.init.strip()
    context["web_client"] = config.web_client
    context["port"] = config.port
    logger.debug(
        "Template context built",
        server_tag=context["server_tag"],
        web_tag=context["web_tag"],
    )
    return context


def render_artifacts(
    registry: TemplateRegistry, context: dict[str, Any]
) -> RenderedArtifacts:
    install_script = registry.render(INSTALL_SCRIPT, context)
    entrypoint_script = registry.render(ENTRYPOINT_SCRIPT, context)
    dockerfile = registry.render(DOCKERFILE, context)
    return RenderedArtifacts(
        dockerfile=dockerfile,
        install_script=install_script,
        entrypoint_script=entrypoint_script,
    )
